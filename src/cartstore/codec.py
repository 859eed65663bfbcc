"""Cart blob codec: JSON encode/decode with schema validation."""

from __future__ import annotations

import importlib.resources as _resources
import json
from collections.abc import Iterable
from typing import Any

import jsonschema

from cartstore.items import CartState, LineItem

# Lazy-loaded schema singleton
_schema_cache: dict | None = None


def _get_schema() -> dict:
    """Load and cache the JSON Schema for the persisted cart blob."""
    global _schema_cache  # noqa: PLW0603
    if _schema_cache is None:
        schema_text = _resources.files("cartstore").joinpath("cart-v1.schema.json").read_text(encoding="utf-8")
        _schema_cache = json.loads(schema_text)
    return _schema_cache


def encode_items(items: Iterable[LineItem]) -> str:
    """Serialize a CartState as the UTF-8 JSON array stored under the cart key."""
    return json.dumps([item.to_dict() for item in items], ensure_ascii=False)


def _validate_unique_ids(data: list[dict[str, Any]]) -> None:
    from cartstore import CartParseError

    seen: set[str] = set()
    for entry in data:
        item_id = entry["id"]
        if item_id in seen:
            raise CartParseError(f"Duplicate line item id: '{item_id}'")
        seen.add(item_id)


def decode_items(raw: str | bytes | None) -> CartState:
    """Parse a persisted blob into a CartState.

    ``None`` and empty/whitespace blobs decode to an empty cart.

    Raises:
        CartParseError: If the blob is not JSON, fails schema validation,
            or repeats an id.
    """
    from cartstore import CartParseError

    if raw is None:
        return ()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CartParseError(f"Cart blob is not valid UTF-8: {e}") from e
    if not raw.strip():
        return ()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CartParseError(f"Cart blob is not valid JSON: {e}") from e

    try:
        jsonschema.validate(instance=data, schema=_get_schema())
    except jsonschema.ValidationError as e:
        raise CartParseError(f"Cart blob failed schema validation: {e.message}") from e

    _validate_unique_ids(data)

    return tuple(LineItem.from_dict({**entry, "quantity": int(entry["quantity"])}) for entry in data)
