"""Data types shared by the parser, the checker, the repository and the bot."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Product:
    """One row of the product table."""

    model: str = ""
    type: str = ""
    quantity: str = ""
    image_url: str = ""
    price: str = ""


@dataclass(frozen=True)
class ChangeInfo:
    """A product whose price or quantity changed between two checks."""

    old: Product
    new: Product


@dataclass
class Changes:
    """Result of comparing two product lists."""

    added: list[Product] = field(default_factory=list)
    removed: list[Product] = field(default_factory=list)
    changed: list[ChangeInfo] = field(default_factory=list)

    def has_changes(self) -> bool:
        """Return True if anything was added, removed or changed."""
        return bool(self.added or self.removed or self.changed)


@dataclass
class State:
    """The complete state kept in storage: page hash and product list."""

    page_hash: str
    products: list[Product] = field(default_factory=list)