"""Settings: YAML loader for CartStore configuration."""

from __future__ import annotations

import importlib.resources as _resources
import json
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import jsonschema
import yaml

DEFAULT_KEY = "@cart/products"
MAX_SETTINGS_SIZE = 65_536

_schema_cache: dict | None = None


class OnCorrupt(StrEnum):
    """What load() does with an unreadable or malformed blob."""

    RESET = "reset"
    RAISE = "raise"


@dataclass(frozen=True)
class CartSettings:
    """Resolved CartStore settings.

    ``path`` None means an in-memory store.
    """

    path: Path | None = None
    key: str = DEFAULT_KEY
    on_corrupt: OnCorrupt = OnCorrupt.RESET
    debounce: float = 0.0


def _get_schema() -> dict:
    global _schema_cache  # noqa: PLW0603
    if _schema_cache is None:
        schema_text = _resources.files("cartstore").joinpath("settings-v1.schema.json").read_text(encoding="utf-8")
        _schema_cache = json.loads(schema_text)
    return _schema_cache


def parse_settings(data: object, base_dir: Path | None = None) -> CartSettings:
    """Validate a parsed settings document and build CartSettings.

    Relative storage paths resolve against *base_dir* when given.
    """
    from cartstore import CartConfigError

    if not isinstance(data, dict):
        raise CartConfigError("Settings document must be a mapping")

    try:
        jsonschema.validate(instance=data, schema=_get_schema())
    except jsonschema.ValidationError as e:
        raise CartConfigError(f"Schema validation failed: {e.message}") from e

    storage = data.get("storage") or {}
    load = data.get("load") or {}
    persist = data.get("persist") or {}

    path = None
    raw_path = storage.get("path")
    if raw_path:
        path = Path(raw_path).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path

    return CartSettings(
        path=path,
        key=storage.get("key", DEFAULT_KEY),
        on_corrupt=OnCorrupt(load.get("on_corrupt", OnCorrupt.RESET)),
        debounce=float(persist.get("debounce", 0.0)),
    )


def load_settings(source: str | Path) -> CartSettings:
    """Load and validate a YAML settings file.

    Raises:
        CartConfigError: If the YAML is invalid or fails schema validation.
        FileNotFoundError: If the file does not exist.
    """
    from cartstore import CartConfigError

    path = Path(source)

    file_size = path.stat().st_size
    if file_size > MAX_SETTINGS_SIZE:
        raise CartConfigError(f"Settings file too large ({file_size} bytes, max {MAX_SETTINGS_SIZE})")

    try:
        data = yaml.safe_load(path.read_bytes())
    except yaml.YAMLError as e:
        raise CartConfigError(f"YAML parse error: {e}") from e

    return parse_settings(data, base_dir=path.parent)
