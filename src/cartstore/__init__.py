"""cartstore: a persisted shopping-cart state container for asyncio apps."""

from __future__ import annotations

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("cartstore")
except Exception:  # pragma: no cover - editable installs, test envs
    __version__ = "0.0.0-dev"

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from cartstore.codec import decode_items, encode_items
from cartstore.config import DEFAULT_KEY, CartSettings, OnCorrupt, load_settings
from cartstore.items import (
    CartState,
    LineItem,
    Product,
    add_item,
    coerce_product,
    decrement_item,
    increment_item,
)
from cartstore.storage import FileBackend, MemoryBackend, StorageBackend

logger = logging.getLogger(__name__)

__all__ = [
    "__version__",
    "CartStore",
    "CartState",
    "LineItem",
    "Product",
    "CartSettings",
    "OnCorrupt",
    "load_settings",
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "DEFAULT_KEY",
    "CartError",
    "NotInitializedError",
    "CartConfigError",
    "PersistenceError",
    "PersistenceReadError",
    "PersistenceWriteError",
    "CartParseError",
]


class CartStore:
    """Owns the cart's line items and mirrors them to a StorageBackend.

    Lifecycle:
    1. open(): activate and schedule the load of the persisted blob
    2. ready(): wait for that load (optional; reads show () until then)
    3. add_to_cart() / increment() / decrement(): synchronous, each one
       publishes the new state immediately and schedules a background write
    4. close(): wait for pending writes and deactivate

    ``async with CartStore(...) as cart`` runs open() + ready() on enter
    and close() on exit.

    Writes run one at a time in the order they were scheduled. A write
    whose snapshot is already stale when its turn comes is skipped, so
    the persisted blob always ends up equal to the latest state.
    """

    def __init__(
        self,
        *,
        backend: StorageBackend | None = None,
        key: str = DEFAULT_KEY,
        on_corrupt: OnCorrupt | str = OnCorrupt.RESET,
        debounce: float = 0.0,
    ):
        if not key:
            raise CartConfigError("Persistence key must be a non-empty string")
        try:
            self._on_corrupt = OnCorrupt(on_corrupt)
        except ValueError as e:
            raise CartConfigError(f"Unknown on_corrupt policy: {on_corrupt!r}") from e
        if debounce < 0:
            raise CartConfigError(f"debounce must be >= 0, got {debounce}")

        self._backend = backend if backend is not None else MemoryBackend()
        self._key = key
        self._debounce = float(debounce)

        self._items: CartState = ()
        self._active = False
        self._load_task: asyncio.Task[CartState] | None = None
        self._write_tasks: set[asyncio.Task[None]] = set()
        self._write_lock: asyncio.Lock | None = None
        self._generation = 0
        self._persisted_generation = 0

    @classmethod
    def from_settings(cls, settings: CartSettings, *, backend: StorageBackend | None = None) -> CartStore:
        """Build a store from CartSettings.

        Without an explicit *backend*, ``settings.path`` selects a
        FileBackend; no path means a MemoryBackend.
        """
        if backend is None:
            backend = FileBackend(settings.path) if settings.path is not None else MemoryBackend()
        return cls(
            backend=backend,
            key=settings.key,
            on_corrupt=settings.on_corrupt,
            debounce=settings.debounce,
        )

    @classmethod
    def from_yaml(cls, path: str | Path, *, backend: StorageBackend | None = None) -> CartStore:
        """Build a store from a YAML settings file.

        Raises:
            CartConfigError: If the settings file is invalid.
        """
        return cls.from_settings(load_settings(path), backend=backend)

    # -- properties ---------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def active(self) -> bool:
        return self._active

    @property
    def loaded(self) -> bool:
        """True once the initial load finished without error."""
        task = self._load_task
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    @property
    def synced(self) -> bool:
        """True when the latest published state has been written to the backend."""
        return self._persisted_generation == self._generation

    @property
    def products(self) -> CartState:
        """Current line items, in cart order."""
        self._ensure_active()
        return self._items

    items = products

    # -- lifecycle ----------------------------------------------------------

    def open(self) -> None:
        """Activate the store and schedule the initial load.

        Must be called from a running event loop. A second call while
        active is a no-op.
        """
        if self._active:
            return
        loop = asyncio.get_running_loop()
        self._items = ()
        self._generation = 0
        self._persisted_generation = 0
        self._write_lock = asyncio.Lock()
        self._active = True
        self._load_task = loop.create_task(self._load(), name=f"cartstore-load:{self._key}")
        self._load_task.add_done_callback(self._on_load_done)

    async def ready(self) -> CartState:
        """Wait for the initial load and return the loaded items.

        Raises:
            NotInitializedError: If the store was never opened.
            PersistenceReadError: On an unreadable blob with ``on_corrupt="raise"``.
        """
        self._ensure_active()
        assert self._load_task is not None
        return await self._load_task

    async def flush(self) -> None:
        """Wait until every scheduled write has completed or been skipped."""
        while self._write_tasks:
            await asyncio.gather(*list(self._write_tasks))

    async def close(self) -> None:
        """Flush pending writes and deactivate. Closing twice is a no-op."""
        if not self._active:
            return
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._load_task
        await self.flush()
        self._active = False

    async def __aenter__(self) -> CartStore:
        self.open()
        try:
            await self.ready()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- mutations ----------------------------------------------------------

    def add_to_cart(self, product: Product | LineItem | Mapping[str, Any]) -> None:
        """Add one unit of *product*.

        A product already in the cart is incremented in place; a new one
        is appended with quantity 1.

        Raises:
            TypeError, ValueError: If *product* is not a usable product.
        """
        self._ensure_active()
        self._publish(add_item(self._items, coerce_product(product)))

    def increment(self, item_id: str) -> None:
        """Add one unit of an item already in the cart. Unknown ids are ignored."""
        self._ensure_active()
        new_items = increment_item(self._items, item_id)
        if new_items is None:
            logger.debug("increment(%r): not in cart", item_id)
            return
        self._publish(new_items)

    def decrement(self, item_id: str) -> None:
        """Remove one unit of an item. Unknown ids are ignored.

        Quantity never drops below 1; the entry is not removed. The state
        is re-persisted even when the floor leaves it unchanged.
        """
        self._ensure_active()
        new_items = decrement_item(self._items, item_id)
        if new_items is None:
            logger.debug("decrement(%r): not in cart", item_id)
            return
        self._publish(new_items)

    # -- internals ----------------------------------------------------------

    def _ensure_active(self) -> None:
        if not self._active:
            raise NotInitializedError()

    async def _read_blob(self) -> str | None:
        try:
            return await self._backend.get(self._key)
        except PersistenceReadError:
            raise
        except Exception as exc:
            raise PersistenceReadError(f"Reading '{self._key}' failed: {exc}") from exc

    async def _load(self) -> CartState:
        try:
            items = decode_items(await self._read_blob())
        except PersistenceReadError as exc:
            if self._on_corrupt is OnCorrupt.RAISE:
                raise
            logger.warning("Discarding unreadable cart at '%s': %s", self._key, exc)
            items = ()

        if self._generation:
            logger.warning(
                "Cart load for '%s' finished after %d mutation(s); loaded state replaces them",
                self._key,
                self._generation,
            )
            # Supersedes the queued pre-load writes.
            self._publish(items)
        else:
            self._items = items
        logger.debug("Loaded %d line item(s) from '%s'", len(items), self._key)
        return items

    def _on_load_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Loading cart from '%s' failed: %s", self._key, exc)

    def _publish(self, items: CartState) -> None:
        self._items = items
        self._generation += 1
        self._schedule_write(self._generation, encode_items(items))

    def _schedule_write(self, generation: int, blob: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._write(generation, blob), name=f"cartstore-write:{self._key}:{generation}"
        )
        self._write_tasks.add(task)
        task.add_done_callback(self._write_tasks.discard)

    async def _write(self, generation: int, blob: str) -> None:
        if self._debounce:
            await asyncio.sleep(self._debounce)

        assert self._write_lock is not None
        async with self._write_lock:
            if generation < self._generation:
                logger.debug("Skipping superseded cart write %d (latest %d)", generation, self._generation)
                return
            try:
                await self._backend.set(self._key, blob)
            except Exception as exc:
                logger.error("Persisting cart to '%s' failed (write %d): %s", self._key, generation, exc)
                return
            self._persisted_generation = generation


class CartError(Exception):
    """Base class for cartstore errors."""

    pass


class NotInitializedError(CartError):
    """Raised when a store accessor is used outside an open store."""

    def __init__(self):
        super().__init__("CartStore must be opened before use (call open() or use 'async with')")


class CartConfigError(CartError):
    """Raised for configuration errors (invalid settings file, bad options)."""

    pass


class PersistenceError(CartError):
    """Raised when the storage backend cannot be read or written."""

    pass


class PersistenceReadError(PersistenceError):
    """Raised when the persisted cart cannot be read."""

    pass


class CartParseError(PersistenceReadError):
    """Raised when the persisted blob is not a valid cart."""

    pass


class PersistenceWriteError(PersistenceError):
    """Raised by a backend when a write fails. Never reaches store callers."""

    pass
