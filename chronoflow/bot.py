"""Telegram bot: subscription commands and change notifications."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import requests

from chronoflow.models import Changes
from chronoflow.repository import RepositoryError

MAX_MESSAGE_LENGTH = 4096
MESSAGE_INTERVAL = 0.1
TRUNCATION_NOTICE = "\n\n... (the message was truncated)"

Handler = Callable[["ChatContext"], None]


class BotError(Exception):
    """A Telegram request or bot action failed."""


@dataclass
class ChatContext:
    """An incoming command together with the chat it came from."""

    api: Any
    chat_id: int
    text: str = ""

    def send(self, text: str) -> None:
        """Reply to the chat with plain text."""
        self.api.send(self.chat_id, text, None)


def _seconds(value: timedelta | float | int) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class TelegramAPI:
    """A small long-polling client for the Telegram Bot API."""

    API_URL = "https://api.telegram.org"

    def __init__(
        self,
        token: str,
        timeout: timedelta | float = 15,
        session: requests.Session | None = None,
    ) -> None:
        self.token = token
        self.timeout = _seconds(timeout)
        self.session = session if session is not None else requests.Session()
        self.handlers: dict[str, Handler] = {}
        self.log = logging.getLogger(__name__)
        self._stopped = threading.Event()
        self._offset = 0

    def _call(self, method: str, **params: Any) -> Any:
        url = f"{self.API_URL}/bot{self.token}/{method}"
        try:
            response = self.session.post(url, json=params, timeout=self.timeout + 10)
        except requests.RequestException as exc:
            raise BotError(f"telegram {method}: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise BotError(f"telegram {method}: invalid response: {exc}") from exc
        if not isinstance(payload, dict) or not payload.get("ok"):
            description = (
                payload.get("description", "unknown error")
                if isinstance(payload, dict)
                else "unknown error"
            )
            code = (
                payload.get("error_code", response.status_code)
                if isinstance(payload, dict)
                else response.status_code
            )
            raise BotError(f"telegram: {description} ({code})")
        return payload.get("result")

    def get_me(self) -> dict[str, Any]:
        """Return the bot's own account description."""
        return self._call("getMe")

    def handle(self, endpoint: str, handler: Handler) -> None:
        """Register a handler for a command such as "/start"."""
        self.handlers[endpoint] = handler

    def start(self) -> None:
        """Poll for updates and dispatch commands until stop() is called."""
        while not self._stopped.is_set():
            try:
                updates = self._call(
                    "getUpdates", offset=self._offset, timeout=int(self.timeout)
                )
            except BotError as exc:
                self.log.error("failed to get updates: %s", exc)
                self._stopped.wait(1.0)
                continue
            for update in updates or ():
                self._offset = max(self._offset, int(update.get("update_id", 0)) + 1)
                self._dispatch(update)

    def _dispatch(self, update: dict[str, Any]) -> None:
        message = update.get("message") or update.get("channel_post")
        if not message:
            return
        text = message.get("text") or ""
        if not text.startswith("/"):
            return
        command = text.split()[0].split("@", 1)[0]
        handler = self.handlers.get(command)
        if handler is None:
            return
        ctx = ChatContext(api=self, chat_id=message["chat"]["id"], text=text)
        try:
            handler(ctx)
        except Exception as exc:  # a failing handler must not stop polling
            self.log.error("handler for %s failed: %s", command, exc)

    def stop(self) -> None:
        """Ask the polling loop to finish."""
        self._stopped.set()

    def leave(self, chat_id: int) -> None:
        """Leave a group or channel."""
        self._call("leaveChat", chat_id=chat_id)

    def send(self, chat_id: int, text: str, parse_mode: str | None = None) -> Any:
        """Send a text message to a chat."""
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            params["parse_mode"] = parse_mode
        return self._call("sendMessage", **params)


class Bot:
    """Handles subscriptions and sends change notifications to subscribers."""

    def __init__(
        self,
        log: logging.Logger | None,
        api: Any,
        repo: Any,
        allowed_ids: Iterable[int] = (),
    ) -> None:
        self.log = log if log is not None else logging.getLogger(__name__)
        self.api = api
        self.repo = repo
        self.allowed_chats = frozenset(allowed_ids)
        self.register_routes()

    @classmethod
    def create(
        cls,
        log: logging.Logger | None,
        token: str,
        timeout: timedelta | float,
        repo: Any,
        allowed_ids: Iterable[int] = (),
    ) -> Bot:
        """Connect to Telegram with the token and build a bot."""
        api = TelegramAPI(token, timeout)
        try:
            me = api.get_me()
        except BotError as exc:
            raise BotError(f"failed to initialize Telegram bot: {exc}") from exc
        bot = cls(log, api, repo, allowed_ids)
        bot.log.info("Authorized on account: account=%s", (me or {}).get("username", ""))
        return bot

    def start(self) -> None:
        """Start listening for commands; blocks until stopped."""
        self.log.info("Telegram bot is starting...")
        self.api.start()

    def stop(self) -> None:
        """Stop listening for commands."""
        self.log.info("Telegram bot is stopped...")
        self.api.stop()

    def register_routes(self) -> None:
        """Attach the command handlers."""
        self.api.handle("/start", self.subscribe_handler)
        self.api.handle("/subscribe", self.subscribe_handler)
        self.api.handle("/unsubscribe", self.unsubscribe_handler)

    def subscribe_handler(self, ctx: ChatContext) -> None:
        """Handle /start and /subscribe."""
        chat_id = ctx.chat_id
        if chat_id not in self.allowed_chats:
            self.log.warning("Unauthorized attempt to subscribe: chatID=%s", chat_id)
            self._send_message(
                ctx, "👮 Sorry, this bot is private and cannot be used in this chat."
            )
            try:
                self.api.leave(chat_id)
            except (BotError, requests.RequestException) as exc:
                raise BotError(f"failed to leave chat: {exc}") from exc
            return

        try:
            self.repo.subscribe_chat(chat_id)
        except RepositoryError as exc:
            self.log.error("Failed to subscribe chat: chatID=%s err=%s", chat_id, exc)
            self._send_message(ctx, "⛔ An internal error occurred. Failed to subscribe.")
            return

        self.log.info("Chat subscribed successfully: chatID=%s", chat_id)
        self._send_message(ctx, "✅ You have successfully subscribed to updates!")

    def unsubscribe_handler(self, ctx: ChatContext) -> None:
        """Handle /unsubscribe."""
        chat_id = ctx.chat_id
        try:
            self.repo.unsubscribe_chat(chat_id)
        except RepositoryError as exc:
            self.log.error("Failed to unsubscribe chat: chatID=%s", chat_id)
            self._send_message(ctx, "⛔ An error occurred while trying to unsubscribe.")
            raise BotError(f"failed to unsubscribe chat: {exc}") from exc

        self.log.info("Chat unsubscribed successfully: chatID=%s", chat_id)
        self._send_message(
            ctx,
            "💔 You have unsubscribed from updates. "
            "To subscribe again, type /start or /subscribe.",
        )

    def send_changes_notification(self, changes: Changes) -> None:
        """Send the formatted changes to every subscribed chat."""
        op = "bot.send_changes_notification"
        if not changes.has_changes():
            return

        try:
            subscribers = self.repo.get_subscribed_chats()
        except RepositoryError as exc:
            raise BotError(f"{op}: failed to get subscribers: {exc}") from exc

        if not subscribers:
            self.log.info("%s: No subscribers to notify", op)
            return

        text = self.format_changes_message(changes)
        self.log.info("%s: Sending notification to subscribers: count=%d", op, len(subscribers))

        for chat_id in subscribers:
            try:
                self.api.send(chat_id, text, "Markdown")
            except (BotError, requests.RequestException) as exc:
                self.log.error(
                    "%s: Failed to send notification to a chat: chatID=%s err=%s",
                    op,
                    chat_id,
                    exc,
                )
            time.sleep(MESSAGE_INTERVAL)

    def format_changes_message(self, changes: Changes, today: date | None = None) -> str:
        """Build the Markdown notification text, truncated to Telegram's limit."""
        day = today if today is not None else date.today()
        parts = [f"📅 *Product updates ({day.strftime('%d.%m.%Y')})*\n\n"]

        if changes.added:
            parts.append(f"✅ *Added ({len(changes.added)}):*\n")
            parts.extend(
                f"• *Model*: `{p.model}`\n  *Price*: {p.price}, *Quantity*: {p.quantity}\n"
                for p in changes.added
            )
            parts.append("\n")

        if changes.changed:
            parts.append(f"🔄 *Changed ({len(changes.changed)}):*\n")
            for change in changes.changed:
                parts.append(f"• *Model*: `{change.new.model}`\n")
                if change.new.price != change.old.price:
                    parts.append(f"  *Price*: {change.old.price} -> *{change.new.price}*\n")
                if change.new.quantity != change.old.quantity:
                    parts.append(
                        f"  *Quantity*: {change.old.quantity} -> *{change.new.quantity}*\n"
                    )
                parts.append("\n")
            parts.append("\n")

        if changes.removed:
            parts.append(f"❌ *Removed ({len(changes.removed)}):*\n")
            parts.extend(f"• *Model*: `{p.model}`\n" for p in changes.removed)
            parts.append("\n")

        message = "".join(parts)
        encoded = message.encode("utf-8")
        if len(encoded) > MAX_MESSAGE_LENGTH:
            trimmed = encoded[: MAX_MESSAGE_LENGTH - 50].decode("utf-8", errors="ignore")
            return trimmed + TRUNCATION_NOTICE
        return message

    def _send_message(self, ctx: ChatContext, text: str) -> None:
        try:
            ctx.send(text)
        except (BotError, requests.RequestException) as exc:
            self.log.error("Failed to send message: chatID=%s err=%s", ctx.chat_id, exc)