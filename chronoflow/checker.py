"""Detecting product changes between the stored state and the live page."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from typing import Any

import requests

from chronoflow.models import ChangeInfo, Changes, Product, State
from chronoflow.parser import ParserError
from chronoflow.repository import RepositoryError, StateNotFoundError


class CheckerError(Exception):
    """An update check could not be completed."""


def calculate_hash(data: bytes) -> str:
    """Return the hex SHA-256 digest of the given bytes."""
    return hashlib.sha256(data).hexdigest()


def detect_changes(
    old_products: Iterable[Product] | None, new_products: Iterable[Product] | None
) -> Changes:
    """Compare two product lists by model and report what was added, removed or changed.

    A product counts as changed when its price or quantity differs.
    """
    old_by_model = {product.model: product for product in old_products or ()}
    new_by_model = {product.model: product for product in new_products or ()}

    changes = Changes()
    for model, new_product in new_by_model.items():
        old_product = old_by_model.pop(model, None)
        if old_product is None:
            changes.added.append(new_product)
        elif (
            new_product.price != old_product.price
            or new_product.quantity != old_product.quantity
        ):
            changes.changed.append(ChangeInfo(old=old_product, new=new_product))
    changes.removed.extend(old_by_model.values())
    return changes


class Checker:
    """Runs a full check: fetch, hash, compare, parse, diff and store."""

    def __init__(self, log: logging.Logger | None, parser: Any, repo: Any) -> None:
        self.log = log if log is not None else logging.getLogger(__name__)
        self.parser = parser
        self.repo = repo

    def check_for_updates(self) -> Changes:
        """Return the changes since the last stored state, updating it if the page changed."""
        op = "checker.check_for_updates"

        self.log.info("%s: Fetching HTML page to check for updates", op)
        try:
            response = self.parser.get_html_response()
        except ParserError as exc:
            raise CheckerError(f"{op}: failed to get html response: {exc}") from exc

        try:
            body = response.content
        except (OSError, requests.RequestException) as exc:
            raise CheckerError(f"{op}: failed to read response body: {exc}") from exc
        finally:
            response.close()

        new_page_hash = calculate_hash(body)
        self.log.debug("%s: Calculated new page hash: hash=%s", op, new_page_hash)

        try:
            old_state: State | None = self.repo.get_state()
        except StateNotFoundError:
            old_state = None
        except RepositoryError as exc:
            raise CheckerError(f"{op}: failed to get old state: {exc}") from exc

        if old_state is not None and old_state.page_hash == new_page_hash:
            self.log.info("%s: Page hash has not changed. No updates.", op)
            return Changes()
        self.log.info("%s: Page hash differs or first run. Starting full analysis...", op)

        try:
            new_products = list(self.parser.parse_table_response(body) or ())
        except ParserError as exc:
            raise CheckerError(
                f"{op}: failed to parse products from new response: {exc}"
            ) from exc
        self.log.info("%s: Successfully parsed products: count=%d", op, len(new_products))

        old_products = old_state.products if old_state is not None else []
        changes = detect_changes(old_products, new_products)
        self.log.info(
            "%s: Change detection complete: added=%d removed=%d changed=%d",
            op,
            len(changes.added),
            len(changes.removed),
            len(changes.changed),
        )

        try:
            self.repo.update_state(State(page_hash=new_page_hash, products=new_products))
        except RepositoryError as exc:
            raise CheckerError(
                f"{op}: failed to update state in repository: {exc}"
            ) from exc
        self.log.info("%s: Successfully updated state in repository", op)

        return changes