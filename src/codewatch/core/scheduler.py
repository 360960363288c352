"""Check scheduling with a single-flight guard (core domain)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from codewatch.core.checker import CodeChecker
from codewatch.core.models import CheckResult
from codewatch.core.ports import MessageSourcePort, NotifierPort

LOGGER = logging.getLogger(__name__)


class SingleFlightCheck:
    """Run check cycles one at a time.

    A trigger that arrives while a check is still running is skipped rather
    than queued, so two checks never race on duplicate detection.
    """

    def __init__(
        self,
        checker: CodeChecker,
        source: MessageSourcePort,
        messages_per_check: int,
    ) -> None:
        self._checker = checker
        self._source = source
        self._messages_per_check = messages_per_check
        self._lock = asyncio.Lock()
        self.last_check_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self, trigger: str = "manual") -> Optional[CheckResult]:
        """Run one check, or return None if another one is in flight."""

        if self._lock.locked():
            LOGGER.info("Skipping %s check: previous check still running", trigger)
            return None

        async with self._lock:
            LOGGER.info("Checking for codes (%s)", trigger)
            fetch_failures = 0
            try:
                messages = await self._source.fetch_recent(self._messages_per_check)
            except Exception:
                LOGGER.exception("Failed to fetch recent messages")
                messages = []
                fetch_failures = 1
            else:
                LOGGER.info("Retrieved %s messages", len(messages))

            result = await self._checker.run_check(messages)
            if fetch_failures:
                result = replace(result, failures=result.failures + fetch_failures)
            self.last_check_at = result.checked_at
            return result


class PeriodicCheck:
    """Trigger a check every interval, waiting for each one to finish first."""

    def __init__(
        self,
        runner: SingleFlightCheck,
        interval_minutes: int,
        notifier: Optional[NotifierPort] = None,
    ) -> None:
        self._runner = runner
        self._interval_seconds = max(interval_minutes, 1) * 60
        self._notifier = notifier

    async def tick(self) -> Optional[CheckResult]:
        """Run one scheduled check and notify about any new codes."""

        result = await self._runner.run(trigger="scheduled")
        if result is None or not result.new_codes or self._notifier is None:
            return result
        try:
            await self._notifier.send_codes(result.new_codes)
        except Exception:
            LOGGER.exception("Failed to notify about %s new codes", len(result.new_codes))
        return result

    async def run_forever(self) -> None:
        LOGGER.info("Codes will be checked every %s minutes", self._interval_seconds // 60)
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Scheduled check crashed")
            # Sleeping after the check finishes keeps runs from piling up.
            await asyncio.sleep(self._interval_seconds)
