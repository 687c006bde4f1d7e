"""Application entry point: wiring, logging setup and the check schedule."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import IO, Any

from chronoflow.bot import Bot, BotError
from chronoflow.checker import Checker, CheckerError
from chronoflow.config import ConfigError, load_config
from chronoflow.models import Changes
from chronoflow.parser import Parser
from chronoflow.repository import Repository, RepositoryError

ENV_LOCAL = "local"
ENV_DEV = "development"
ENV_PROD = "production"

LOGGER_NAME = "chronoflow"

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _record_attrs(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS
    }


def _quote(value: Any) -> str:
    text = str(value)
    if not text or any(char in text for char in ' ="\t\n'):
        return json.dumps(text, ensure_ascii=False)
    return text


class _StructuredFormatter(logging.Formatter):
    """Formats records as key=value text or as one JSON object per line."""

    def __init__(self, *, as_json: bool, with_time: bool, with_source: bool) -> None:
        super().__init__()
        self.as_json = as_json
        self.with_time = with_time
        self.with_source = with_source

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {}
        if self.with_time:
            fields["time"] = (
                datetime.fromtimestamp(record.created).astimezone().isoformat()
            )
        fields["level"] = _LEVEL_NAMES.get(record.levelno, record.levelname)
        if self.with_source:
            fields["source"] = f"{record.pathname}:{record.lineno}"
        fields["msg"] = record.getMessage()
        fields.update(_record_attrs(record))
        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info)

        if self.as_json:
            return json.dumps(fields, ensure_ascii=False, default=str)
        return " ".join(f"{key}={_quote(value)}" for key, value in fields.items())


def setup_logger(env: str, stream: IO[str] | None = None) -> logging.Logger:
    """Return the application logger configured for the given environment.

    "local" logs debug text with source locations, "development" logs info
    as JSON, "production" logs warnings as JSON without timestamps; anything
    else logs only errors and reports the unknown environment.
    """
    target = stream if stream is not None else sys.stdout
    if env == ENV_LOCAL:
        level = logging.DEBUG
        formatter = _StructuredFormatter(as_json=False, with_time=True, with_source=True)
    elif env == ENV_DEV:
        level = logging.INFO
        formatter = _StructuredFormatter(as_json=True, with_time=True, with_source=False)
    elif env == ENV_PROD:
        level = logging.WARNING
        formatter = _StructuredFormatter(as_json=True, with_time=False, with_source=False)
    else:
        level = logging.ERROR
        formatter = _StructuredFormatter(as_json=True, with_time=False, with_source=False)

    logger = logging.getLogger(LOGGER_NAME)
    for old in list(logger.handlers):
        logger.removeHandler(old)
    handler = logging.StreamHandler(target)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    if env not in (ENV_LOCAL, ENV_DEV, ENV_PROD):
        logger.error(
            "The env parameter was not specified or was invalid. "
            "Logging will be minimal, by default.",
            extra={"available_envs": "local, development, production"},
        )
    return logger


def run_check(log: logging.Logger, checker: Any, notifier: Any) -> Changes | None:
    """Run one update check and notify subscribers of any changes.

    Returns the detected changes, or None when the check itself failed.
    """
    log.info("Running scheduled check for updates...")
    try:
        changes = checker.check_for_updates()
    except CheckerError as exc:
        log.error("failed to check for updates", extra={"error": str(exc)})
        return None

    if changes.has_changes():
        log.info("Changes detected, sending notification")
        try:
            notifier.send_changes_notification(changes)
        except BotError as exc:
            log.error("failed to send notification", extra={"error": str(exc)})
    else:
        log.info("No new changes found")
    return changes


def _install_signal_handlers(stop: threading.Event) -> dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def request_stop(_signum: int, _frame: Any) -> None:
        stop.set()

    return {
        sig: signal.signal(sig, request_stop) for sig in (signal.SIGINT, signal.SIGTERM)
    }


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def main(argv: list[str] | None = None) -> int:
    """Run the watcher until interrupted; return the process exit code."""
    argparse.ArgumentParser(
        prog="chronoflow",
        description="Watch a product table and notify Telegram subscribers of changes.",
    ).parse_args(argv)

    try:
        cfg = load_config()
    except ConfigError as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        return 1

    logger = setup_logger(cfg.env)
    logger.info("Initializing dependencies...")

    interval = cfg.interval.total_seconds()
    if interval <= 0:
        logger.error(
            "check interval must be positive", extra={"interval": str(cfg.interval)}
        )
        return 1

    parser = Parser(logger, cfg.url)

    try:
        repo = Repository.open(cfg.storage_path, logger)
    except RepositoryError as exc:
        logger.error("repository initialization failed", extra={"error": str(exc)})
        return 1

    with repo:
        checker = Checker(logger, parser, repo)
        try:
            notifier = Bot.create(logger, cfg.tg.token, cfg.tg.timeout, repo, cfg.allowed_ids)
        except BotError as exc:
            logger.error("bot initialization failed", extra={"error": str(exc)})
            return 1

        stop = threading.Event()
        previous = _install_signal_handlers(stop)
        try:
            logger.info(
                "Starting main application loop. Press Ctrl+C to stop.",
                extra={"interval": f"{int(interval // 60)}m"},
            )
            threading.Thread(target=notifier.start, name="telegram-bot", daemon=True).start()

            run_check(logger, checker, notifier)
            while not stop.wait(interval):
                run_check(logger, checker, notifier)

            logger.info("Shutdown signal received. Stopping application...")
        finally:
            notifier.stop()
            _restore_signal_handlers(previous)
    return 0


if __name__ == "__main__":
    sys.exit(main())