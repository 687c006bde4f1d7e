"""Track a web page's product table and notify Telegram subscribers of changes."""

__version__ = "0.1.0"
__all__ = ["app", "bot", "checker", "config", "models", "parser", "repository"]