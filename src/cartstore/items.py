"""Line items: immutable cart entries and pure CartState transitions."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

PRODUCT_FIELDS = ("id", "title", "image_url", "price")


@dataclass(frozen=True)
class Product:
    """A product as handed to ``add_to_cart``. Everything except ``id`` is opaque."""

    id: str
    title: str
    image_url: str
    price: int | float


@dataclass(frozen=True)
class LineItem:
    """One product's cart entry.

    ``quantity`` is always >= 1. Transitions below never produce
    anything smaller.
    """

    id: str
    title: str
    image_url: str
    price: int | float
    quantity: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "image_url": self.image_url,
            "price": self.price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LineItem:
        return cls(
            id=data["id"],
            title=data["title"],
            image_url=data["image_url"],
            price=data["price"],
            quantity=data["quantity"],
        )


CartState = tuple[LineItem, ...]


def _check_fields(product: Product) -> Product:
    if not isinstance(product.id, str) or not product.id:
        raise ValueError("Product id must be a non-empty string")
    for name in ("title", "image_url"):
        if not isinstance(getattr(product, name), str):
            raise ValueError(f"Product {name} must be a string, got {type(getattr(product, name)).__name__}")
    price = product.price
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise ValueError(f"Product price must be a number, got {type(price).__name__}")
    if not math.isfinite(price):
        raise ValueError(f"Product price must be finite, got {price}")
    return product


def coerce_product(product: Product | LineItem | Mapping[str, Any]) -> Product:
    """Normalize the accepted ``add_to_cart`` argument shapes into a Product.

    A LineItem's quantity is dropped: new entries always start at 1.
    Every shape is checked against the field types the persisted blob
    requires.
    """
    if isinstance(product, Product):
        return _check_fields(product)
    if isinstance(product, LineItem):
        return _check_fields(
            Product(id=product.id, title=product.title, image_url=product.image_url, price=product.price)
        )
    if not isinstance(product, Mapping):
        raise TypeError(f"Expected Product, LineItem or mapping, got {type(product).__name__}")

    missing = [name for name in PRODUCT_FIELDS if name not in product]
    if missing:
        raise ValueError(f"Product is missing field(s): {', '.join(missing)}")
    return _check_fields(
        Product(
            id=product["id"],
            title=product["title"],
            image_url=product["image_url"],
            price=product["price"],
        )
    )


def find_index(items: CartState, item_id: str) -> int:
    """Position of *item_id* in *items*, or -1."""
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return -1


def _replace_at(items: CartState, index: int, item: LineItem) -> CartState:
    return items[:index] + (item,) + items[index + 1 :]


def add_item(items: CartState, product: Product) -> CartState:
    """Append *product* with quantity 1, or bump the existing entry in place.

    An existing entry keeps its own fields; only its quantity changes.
    """
    index = find_index(items, product.id)
    if index >= 0:
        existing = items[index]
        return _replace_at(items, index, replace(existing, quantity=existing.quantity + 1))
    entry = LineItem(
        id=product.id,
        title=product.title,
        image_url=product.image_url,
        price=product.price,
        quantity=1,
    )
    return items + (entry,)


def increment_item(items: CartState, item_id: str) -> CartState | None:
    """Return the new state, or None when *item_id* is not in the cart."""
    index = find_index(items, item_id)
    if index < 0:
        return None
    existing = items[index]
    return _replace_at(items, index, replace(existing, quantity=existing.quantity + 1))


def decrement_item(items: CartState, item_id: str) -> CartState | None:
    """Return the new state, or None when *item_id* is not in the cart.

    Quantity floors at 1: decrementing a single unit returns the state
    unchanged rather than removing the entry.
    """
    index = find_index(items, item_id)
    if index < 0:
        return None
    existing = items[index]
    if existing.quantity <= 1:
        return items
    return _replace_at(items, index, replace(existing, quantity=existing.quantity - 1))
