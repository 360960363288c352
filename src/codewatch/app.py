"""Application entry point for the codewatch watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

from codewatch import settings
from codewatch.adapters.http_fetcher import UrlImageFetcher
from codewatch.adapters.sqlite_storage import SQLiteStorage
from codewatch.adapters.telegram_bot_notifier import TelegramBotNotifier
from codewatch.adapters.telegram_commands import TelegramCommandHandler
from codewatch.adapters.telegram_mapper import TelegramMediaFetcher, TelegramMessageSource
from codewatch.adapters.telegram_notifier import TelegramSavedMessagesNotifier
from codewatch.adapters.tesseract_reader import OcrImageReader, build_image_reader
from codewatch.client import build_client
from codewatch.core.checker import CodeChecker
from codewatch.core.commands import CodeCommands
from codewatch.core.config import CheckConfig, OcrConfig
from codewatch.core.extractor import compile_code_pattern
from codewatch.core.ports import NotifierPort
from codewatch.core.scheduler import PeriodicCheck, SingleFlightCheck
from codewatch.session import authorize

NAME = "CODEWATCH"
FONT = "tarty-1"

# Environment variables whose values must never reach the logs.
SECRET_ENV_VARS = ["API_HASH", "BOT_API", "2FA", "PHONE"]


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    names = set(SECRET_ENV_VARS) | set(redact_cfg.get("patterns", []))
    values = [os.getenv(name) for name in names]
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/codewatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO; keep our own messages readable.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _ocr_config() -> OcrConfig:
    return OcrConfig(
        enabled=settings.OCR_ENABLED,
        language=settings.OCR_LANGUAGE,
        crop_ratio=settings.OCR_CROP_RATIO,
        timeout_seconds=settings.OCR_TIMEOUT,
    )


def _check_config() -> CheckConfig:
    return CheckConfig(
        interval_minutes=settings.CHECK_INTERVAL,
        messages_per_check=settings.MESSAGES_PER_CHECK,
    )


def _build_notifier(client) -> NotifierPort:
    # Select the notification adapter based on configuration to keep the core
    # independent from delivery details.
    if settings.NOTIFICATION_METHOD == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when NOTIFICATION_METHOD=bot")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("BOT_CHAT_ID is required for bot notifications")
        return TelegramBotNotifier(bot_token=bot_token, chat_id=str(settings.BOT_CHAT_ID))
    if settings.NOTIFICATION_METHOD == "saved_messages":
        return TelegramSavedMessagesNotifier(client)
    raise RuntimeError("NOTIFICATION_METHOD must be 'saved_messages' or 'bot'")


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _require_source() -> str:
    if not settings.SOURCE:
        raise RuntimeError("SOURCE must be set to @username or chat_id:<id>")
    return settings.SOURCE


def _shutdown(
    loop: asyncio.AbstractEventLoop,
    client,
    image_reader: OcrImageReader,
    storage: SQLiteStorage,
) -> None:
    loop.run_until_complete(image_reader.shutdown())
    if client.is_connected():
        loop.run_until_complete(client.disconnect())
    storage.close()


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting codewatch")

    # Configuration and store problems are fatal before we touch the network.
    pattern = compile_code_pattern(settings.CODE_REGEX)
    source_key = _require_source()
    check_config = _check_config()
    storage = _open_storage()
    image_reader = build_image_reader(_ocr_config())
    logger.info("Watching %s with pattern %s", source_key, pattern.pattern)

    client = build_client()
    loop = client.loop
    periodic_task: Optional[asyncio.Task] = None
    try:
        loop.run_until_complete(client.connect())
        loop.run_until_complete(authorize(client))

        notifier = _build_notifier(client)
        logger.info("Selected notification method - %s", settings.NOTIFICATION_METHOD)

        checker = CodeChecker(
            storage=storage,
            pattern=pattern,
            image_reader=image_reader,
            image_fetcher=TelegramMediaFetcher(client),
        )
        runner = SingleFlightCheck(
            checker,
            TelegramMessageSource(client, source_key),
            check_config.messages_per_check,
        )
        commands = CodeCommands(runner, checker, storage, url_fetcher=UrlImageFetcher())
        TelegramCommandHandler(commands, check_config.interval_minutes).register(client)

        periodic = PeriodicCheck(runner, check_config.interval_minutes, notifier)
        periodic_task = loop.create_task(periodic.run_forever())

        logger.info("Client connected. Send /help to Saved Messages for commands")
        client.run_until_disconnected()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        if periodic_task is not None:
            periodic_task.cancel()
            loop.run_until_complete(asyncio.gather(periodic_task, return_exceptions=True))
        _shutdown(loop, client, image_reader, storage)


def _check_once() -> None:
    """Run a single check against the configured source and print the delta."""

    _configure_logging()
    pattern = compile_code_pattern(settings.CODE_REGEX)
    source_key = _require_source()
    storage = _open_storage()
    image_reader = build_image_reader(_ocr_config())
    client = build_client()
    loop = client.loop

    async def _run_check() -> None:
        await client.connect()
        await authorize(client)
        checker = CodeChecker(
            storage=storage,
            pattern=pattern,
            image_reader=image_reader,
            image_fetcher=TelegramMediaFetcher(client),
        )
        runner = SingleFlightCheck(
            checker,
            TelegramMessageSource(client, source_key),
            settings.MESSAGES_PER_CHECK,
        )
        result = await runner.run(trigger="cli")
        new_codes = result.new_codes if result else []
        if not new_codes:
            print("No new codes found.")
        for record in new_codes:
            print(record.code)

    try:
        loop.run_until_complete(_run_check())
    finally:
        _shutdown(loop, client, image_reader, storage)


def _login() -> None:
    _print_banner()
    _configure_logging()
    client = build_client()

    async def _run_login() -> None:
        await client.connect()
        await authorize(client)
        await client.disconnect()

    client.loop.run_until_complete(_run_login())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="codewatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher with periodic checks and commands")
    subparsers.add_parser("check", help="Run one check and print any new codes")
    subparsers.add_parser("login", help="Log in and store the Telegram session")

    args = parser.parse_args(argv)
    if args.command == "check":
        _check_once()
        return
    if args.command == "login":
        _login()
        return
    _run()


if __name__ == "__main__":
    main()
