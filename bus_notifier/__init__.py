"""Bus arrival reminder service for Telegram."""

__version__ = "0.1.0"
