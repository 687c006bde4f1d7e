"""Fetching the product page and extracting the product table."""

from __future__ import annotations

import logging
from typing import IO, Union

import requests
from bs4 import BeautifulSoup

from chronoflow.models import Product

USER_AGENT = "Mozilla/5.0 (compatible; ChronoFlow/1.0)"
NUMBER_OF_CELLS = 5
_ROW_SELECTOR = ".table-bordered tbody tr, .table-bordered > tr"

Content = Union[str, bytes, IO[str], IO[bytes]]


class ParserError(Exception):
    """The page could not be fetched or parsed."""


def _check_url(url: str) -> None:
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in url):
        raise ValueError("invalid control character in URL")
    if url.startswith(":"):
        raise ValueError("missing protocol scheme")


class Parser:
    """Downloads the destination page and reads its product table."""

    def __init__(
        self,
        log: logging.Logger | None = None,
        dest_url: str = "",
        session: requests.Session | None = None,
    ) -> None:
        self.log = log if log is not None else logging.getLogger(__name__)
        self.dest_url = dest_url
        self.session = session if session is not None else requests.Session()

    def parse_products(self) -> list[Product]:
        """Fetch the page and return the products in its table."""
        try:
            response = self.get_html_response()
        except ParserError as exc:
            raise ParserError(f"failed to get html response: {exc}") from exc
        with response:
            return self.parse_table_response(response.content)

    def get_html_response(self) -> requests.Response:
        """Request the destination URL; raise ParserError unless it answers 200."""
        try:
            _check_url(self.dest_url)
        except ValueError as exc:
            raise ParserError(
                f"failed to parse destination URL {self.dest_url}: {exc}"
            ) from exc

        headers = {"User-Agent": USER_AGENT}
        self.log.debug("Send request: method=GET URL=%s header=%s", self.dest_url, headers)

        try:
            response = self.session.get(self.dest_url, headers=headers)
        except requests.RequestException as exc:
            raise ParserError(f"failed to request {self.dest_url}: {exc}") from exc

        if response.status_code != 200:
            response.close()
            raise ParserError(
                f"status code error: [{response.status_code}] "
                f"{response.status_code} {response.reason}"
            )

        self.log.info("Successfully received http response: status code=%s", response.status_code)
        return response

    def parse_table_response(self, content: Content) -> list[Product]:
        """Extract products from rows of the ".table-bordered" table.

        Rows that do not have exactly five cells are skipped with a warning.
        """
        if hasattr(content, "read"):
            try:
                content = content.read()
            except OSError as exc:
                raise ParserError(f"data cannot be parsed as HTML: {exc}") from exc

        doc = BeautifulSoup(content, "html.parser")
        products = []
        for index, row in enumerate(doc.select(_ROW_SELECTOR)):
            cells = row.find_all("td")
            if len(cells) != NUMBER_OF_CELLS:
                self.log.warning(
                    "table row has insufficient cells: index=%d length=%d", index, len(cells)
                )
                continue
            model, kind, quantity, image_url, price = (
                cell.get_text().strip() for cell in cells
            )
            product = Product(
                model=model,
                type=kind,
                quantity=quantity,
                image_url=image_url,
                price=price,
            )
            self.log.debug(
                "Parsed product: Model=%s Price=%s Quantity=%s",
                product.model,
                product.price,
                product.quantity,
            )
            products.append(product)
        return products