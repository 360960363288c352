"""Adapters that plug Telegram, Tesseract, Pillow, and SQLite into the core."""
