"""SQLite storage for the page state and the chat subscriptions."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from typing import Any, Union

from chronoflow.models import Product, State

StoragePath = Union[str, "os.PathLike[str]"]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS page_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    page_hash TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    model TEXT PRIMARY KEY NOT NULL,
    type TEXT,
    quantity TEXT,
    price TEXT,
    image_url TEXT
);

CREATE TABLE IF NOT EXISTS subscriptions (
    chat_id INTEGER PRIMARY KEY NOT NULL,
    subscribed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class RepositoryError(Exception):
    """A storage operation failed."""


class StateNotFoundError(RepositoryError):
    """No page state has been saved yet."""

    def __init__(self) -> None:
        super().__init__("state not found")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if value is None:
        raise TypeError("converting NULL to string is unsupported")
    raise TypeError(f"converting {type(value).__name__} to string is unsupported")


def _as_int(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return int(value.strip())
    if value is None:
        raise TypeError("converting NULL to int64 is unsupported")
    raise TypeError(f"converting {type(value).__name__} to int64 is unsupported")


class Repository:
    """Keeps the last page state and the list of subscribed chats."""

    def __init__(self, connection: Any, log: logging.Logger | None = None) -> None:
        self.connection = connection
        self.log = log if log is not None else logging.getLogger(__name__)
        self._lock = threading.RLock()

    @classmethod
    def open(cls, storage_path: StoragePath, log: logging.Logger | None = None) -> Repository:
        """Open (creating if needed) the database file and prepare its schema."""
        try:
            connection = sqlite3.connect(
                os.fspath(storage_path), isolation_level=None, check_same_thread=False
            )
        except sqlite3.Error as exc:
            raise RepositoryError(f"error opening database: {exc}") from exc

        try:
            connection.execute("PRAGMA foreign_keys = ON")
            connection.execute("SELECT 1").fetchone()
        except sqlite3.Error as exc:
            connection.close()
            raise RepositoryError(
                f"unable to establish connection to database: {exc}"
            ) from exc

        try:
            connection.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            connection.close()
            raise RepositoryError(
                f"DB schema initialization error: failed to execute migration query: {exc}"
            ) from exc

        return cls(connection, log)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            try:
                self.connection.close()
            except sqlite3.Error as exc:
                self.log.error("failed to close the database: %s", exc)
                raise RepositoryError(f"failed to close the database: {exc}") from exc

    def __enter__(self) -> Repository:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def get_state(self) -> State:
        """Return the saved page hash and products; raise StateNotFoundError if none."""
        op = "repository.get_state"
        with self._lock:
            try:
                row = self.connection.execute(
                    "SELECT page_hash FROM page_state WHERE id = 1"
                ).fetchone()
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: failed to get page hash: {exc}") from exc
            if row is None:
                raise StateNotFoundError()
            try:
                page_hash = _as_text(row[0])
            except (TypeError, ValueError) as exc:
                raise RepositoryError(f"{op}: failed to get page hash: {exc}") from exc

            try:
                cursor = self.connection.execute(
                    "SELECT model, type, quantity, price, image_url FROM products"
                )
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: failed to get products: {exc}") from exc
            try:
                rows = cursor.fetchall()
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: rows iteration error: {exc}") from exc

        products = []
        for row in rows:
            try:
                model, kind, quantity, price, image_url = (_as_text(value) for value in row)
            except (TypeError, ValueError) as exc:
                raise RepositoryError(f"{op}: failed to scan product: {exc}") from exc
            products.append(
                Product(
                    model=model,
                    type=kind,
                    quantity=quantity,
                    price=price,
                    image_url=image_url,
                )
            )
        return State(page_hash=page_hash, products=products)

    def update_state(self, state: State) -> None:
        """Replace the stored state with the given one in a single transaction."""
        op = "repository.update_state"
        with self._lock:
            try:
                self.connection.execute("BEGIN")
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: failed to begin transaction: {exc}") from exc
            try:
                self._write_state(op, state)
                try:
                    self.connection.execute("COMMIT")
                except sqlite3.Error as exc:
                    raise RepositoryError(
                        f"{op}: failed to commit transaction: {exc}"
                    ) from exc
            except BaseException:
                try:
                    self.connection.execute("ROLLBACK")
                except sqlite3.Error:
                    pass
                raise

    def _write_state(self, op: str, state: State) -> None:
        try:
            self.connection.execute(
                "INSERT OR REPLACE INTO page_state (id, page_hash) VALUES (1, ?)",
                (state.page_hash,),
            )
        except sqlite3.Error as exc:
            raise RepositoryError(f"{op}: failed to update page hash: {exc}") from exc

        try:
            self.connection.execute("DELETE FROM products")
        except sqlite3.Error as exc:
            raise RepositoryError(f"{op}: failed to delete old products: {exc}") from exc

        for product in state.products:
            try:
                self.connection.execute(
                    "INSERT INTO products (model, type, quantity, price, image_url) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        product.model,
                        product.type,
                        product.quantity,
                        product.price,
                        product.image_url,
                    ),
                )
            except sqlite3.Error as exc:
                raise RepositoryError(
                    f"{op}: failed to insert product with model {product.model}: {exc}"
                ) from exc

    def subscribe_chat(self, chat_id: int) -> None:
        """Add a chat to the subscribers; subscribing twice is harmless."""
        op = "repository.sqlite.SubscribeChat"
        with self._lock:
            try:
                self.connection.execute(
                    "INSERT OR IGNORE INTO subscriptions (chat_id) VALUES (?)", (chat_id,)
                )
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: {exc}") from exc

    def unsubscribe_chat(self, chat_id: int) -> None:
        """Remove a chat from the subscribers."""
        op = "repository.sqlite.UnsubscribeChat"
        with self._lock:
            try:
                self.connection.execute(
                    "DELETE FROM subscriptions WHERE chat_id = ?", (chat_id,)
                )
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: {exc}") from exc

    def get_subscribed_chats(self) -> list[int]:
        """Return the IDs of all subscribed chats."""
        op = "repository.sqlite.GetSubscribedChats"
        with self._lock:
            try:
                cursor = self.connection.execute("SELECT chat_id FROM subscriptions")
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: {exc}") from exc
            try:
                rows = cursor.fetchall()
            except sqlite3.Error as exc:
                raise RepositoryError(f"{op}: rows iteration error: {exc}") from exc

        chat_ids = []
        for (value,) in rows:
            try:
                chat_ids.append(_as_int(value))
            except (TypeError, ValueError) as exc:
                raise RepositoryError(f"{op}: failed to scan chat_id: {exc}") from exc
        return chat_ids