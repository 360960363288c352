"""codewatch: watches a Telegram channel for promo codes in text and images."""

__version__ = "1.0.0"
