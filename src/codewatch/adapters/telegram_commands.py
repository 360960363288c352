"""Telegram command adapter.

Commands are typed by the watching account into its own Saved Messages
(``/check``, ``/list``, ``/use CODE``, ``/stats``, ``/testocr URL``,
``/about``, ``/help``). Parsing and reply formatting live here; the work
itself is done by CodeCommands.
"""

from __future__ import annotations

import logging
from typing import Optional

from telethon import events

from codewatch import __version__
from codewatch.adapters.notification_formatting import (
    format_about,
    format_extraction,
    format_help,
    format_new_codes,
    format_stats,
    format_unused,
    format_use_result,
)
from codewatch.core.commands import COMMAND_HELP, CodeCommands, ParsedCommand, parse_command
from codewatch.core.extractor import normalize_code

LOGGER = logging.getLogger(__name__)


class TelegramCommandHandler:
    """Map parsed commands to CodeCommands calls and format the replies."""

    def __init__(self, commands: CodeCommands, interval_minutes: int) -> None:
        self._commands = commands
        self._interval_minutes = interval_minutes

    async def handle_text(self, text: Optional[str]) -> Optional[str]:
        """Return the reply for a command message, or None if it is not one."""

        command = parse_command(text)
        if command is None:
            return None
        try:
            return await self._dispatch(command)
        except Exception:
            LOGGER.exception("Error handling /%s", command.name)
            return "An error occurred while processing this command."

    async def _dispatch(self, command: ParsedCommand) -> str:
        if command.name == "check":
            result = await self._commands.check()
            if result is None:
                return "A check is already running, try again shortly."
            if not result.new_codes:
                return "No new codes found."
            return format_new_codes(result.new_codes, mode="markdown")

        if command.name == "list":
            return format_unused(self._commands.list_unused())

        if command.name == "use":
            if not command.arg:
                return "Please specify a code. Example: `/use ABC123`"
            changed = self._commands.use(command.arg)
            return format_use_result(normalize_code(command.arg), changed)

        if command.name == "stats":
            return format_stats(self._commands.stats(), self._commands.last_check_at)

        if command.name == "testocr":
            if not command.arg:
                return "Please specify an image URL. Example: `/testocr https://...`"
            result = await self._commands.test_extraction(command.arg)
            return format_extraction(command.arg, result)

        if command.name == "about":
            return format_about(__version__)

        if command.name == "help":
            return format_help(COMMAND_HELP, self._interval_minutes)

        return "Unknown command. Type /help for a list of available commands."

    def register(self, client) -> None:
        """Listen for commands the account sends to its own Saved Messages."""

        @client.on(events.NewMessage(chats="me", outgoing=True, pattern=r"^/"))
        async def _on_command(event) -> None:
            reply = await self.handle_text(event.raw_text)
            if reply:
                await event.reply(reply, parse_mode="md")
