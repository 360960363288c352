"""Interactive Telegram login for the watching account.

The session file created here is reused by ``codewatch run``; login is only
needed once per machine (or after the session is revoked).
"""

from __future__ import annotations

import logging
import os
from getpass import getpass

import qrcode
from telethon import TelegramClient, errors

LOGGER = logging.getLogger(__name__)

LOGIN_METHODS = {"1": "qr", "2": "phone"}
QR_TIMEOUT_SECONDS = 120


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _two_factor_password() -> str:
    return os.getenv("2FA") or getpass("2FA password: ")


def choose_login_method(prompt=input) -> str:
    """Return "qr" or "phone", from LOGIN_METHOD or by asking."""

    configured = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if configured in LOGIN_METHODS.values():
        return configured

    while True:
        print("\nLogin methods:\n[1] QR code\n[2] Phone code\n[3] Exit")
        choice = prompt("codewatch > ").strip()
        if choice == "3":
            raise SystemExit(0)
        if choice in LOGIN_METHODS:
            return LOGIN_METHODS[choice]
        print("Invalid option. Please choose 1, 2, or 3.")


async def _login_with_qr(client: TelegramClient) -> None:
    qr_login = await client.qr_login()
    _print_qr(qr_login.url)
    await qr_login.wait(timeout=QR_TIMEOUT_SECONDS)


async def _login_with_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    await client.sign_in(phone=phone, code=input("Login code: ").strip())


async def authorize(client: TelegramClient) -> None:
    """Make sure the connected client is logged in, prompting if needed."""

    if await client.is_user_authorized():
        return

    method = choose_login_method()
    try:
        if method == "phone":
            await _login_with_phone(client)
        else:
            await _login_with_qr(client)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_two_factor_password())

    me = await client.get_me()
    LOGGER.info("Logged in as %s", getattr(me, "first_name", None) or getattr(me, "id", "?"))
