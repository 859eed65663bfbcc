"""Tests for LineItem and the pure CartState transitions."""

from __future__ import annotations

import dataclasses

import pytest

from cartstore.items import (
    LineItem,
    Product,
    add_item,
    coerce_product,
    decrement_item,
    find_index,
    increment_item,
)


def _product(item_id: str, title: str | None = None) -> Product:
    return Product(id=item_id, title=title or item_id.upper(), image_url=f"{item_id}.png", price=1.5)


class TestLineItem:
    def test_frozen(self):
        item = LineItem(id="a", title="A", image_url="a.png", price=1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            item.quantity = 5  # type: ignore[misc]

    def test_dict_round_trip_keys(self):
        item = LineItem(id="a", title="A", image_url="a.png", price=2.5, quantity=3)
        assert item.to_dict() == {"id": "a", "title": "A", "image_url": "a.png", "price": 2.5, "quantity": 3}
        assert LineItem.from_dict(item.to_dict()) == item


class TestCoerceProduct:
    def test_product_passthrough(self):
        p = _product("a")
        assert coerce_product(p) is p

    def test_line_item_drops_quantity(self):
        item = LineItem(id="a", title="A", image_url="a.png", price=1, quantity=7)
        assert coerce_product(item) == Product(id="a", title="A", image_url="a.png", price=1)

    def test_mapping(self):
        p = coerce_product({"id": "a", "title": "A", "image_url": "a.png", "price": 3})
        assert p == Product(id="a", title="A", image_url="a.png", price=3)

    def test_mapping_quantity_ignored(self):
        p = coerce_product({"id": "a", "title": "A", "image_url": "a.png", "price": 3, "quantity": 9})
        assert not hasattr(p, "quantity")

    def test_missing_fields(self):
        with pytest.raises(ValueError, match="image_url, price"):
            coerce_product({"id": "a", "title": "A"})

    def test_empty_id(self):
        with pytest.raises(ValueError, match="non-empty"):
            coerce_product({"id": "", "title": "A", "image_url": "", "price": 1})

    def test_non_string_id(self):
        with pytest.raises(ValueError):
            coerce_product({"id": 42, "title": "A", "image_url": "", "price": 1})

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"title": None}, "title must be a string"),
            ({"image_url": 7}, "image_url must be a string"),
            ({"price": "10"}, "price must be a number"),
            ({"price": True}, "price must be a number"),
            ({"price": float("nan")}, "finite"),
        ],
    )
    def test_mapping_field_types(self, overrides, message):
        data = {"id": "a", "title": "A", "image_url": "a.png", "price": 3, **overrides}
        with pytest.raises(ValueError, match=message):
            coerce_product(data)

    def test_product_instance_is_checked(self):
        with pytest.raises(ValueError, match="non-empty"):
            coerce_product(Product(id="", title="A", image_url="", price=1))
        with pytest.raises(ValueError, match="title"):
            coerce_product(Product(id="a", title=None, image_url="", price=1))  # type: ignore[arg-type]

    def test_line_item_is_checked(self):
        with pytest.raises(ValueError, match="price"):
            coerce_product(LineItem(id="a", title="A", image_url="", price=None))  # type: ignore[arg-type]

    def test_wrong_type(self):
        with pytest.raises(TypeError, match="str"):
            coerce_product("a")  # type: ignore[arg-type]


class TestTransitions:
    def test_add_appends_with_quantity_one(self):
        items = add_item((), _product("a"))
        assert [(i.id, i.quantity) for i in items] == [("a", 1)]

    def test_add_existing_increments_in_place(self):
        items = add_item(add_item(add_item((), _product("a")), _product("b")), _product("a"))
        assert [(i.id, i.quantity) for i in items] == [("a", 2), ("b", 1)]

    def test_add_existing_keeps_existing_fields(self):
        items = add_item(add_item((), _product("a", "Old")), _product("a", "New"))
        assert items[0].title == "Old"

    def test_add_does_not_mutate_input(self):
        before = add_item((), _product("a"))
        after = add_item(before, _product("a"))
        assert before[0].quantity == 1
        assert after[0].quantity == 2

    def test_increment(self):
        items = increment_item(add_item((), _product("a")), "a")
        assert items[0].quantity == 2

    def test_increment_missing_returns_none(self):
        assert increment_item(add_item((), _product("a")), "zzz") is None

    def test_decrement(self):
        items = add_item(add_item((), _product("a")), _product("a"))
        assert decrement_item(items, "a")[0].quantity == 1

    def test_decrement_floors_at_one(self):
        items = add_item((), _product("a"))
        assert decrement_item(items, "a") == items

    def test_decrement_missing_returns_none(self):
        assert decrement_item((), "a") is None

    def test_find_index(self):
        items = add_item(add_item((), _product("a")), _product("b"))
        assert find_index(items, "b") == 1
        assert find_index(items, "c") == -1
