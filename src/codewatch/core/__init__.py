"""Core domain package for codewatch.

Core contains code extraction, check orchestration, and scheduling logic
without any Telegram, OCR engine, or storage-specific code.
"""
