"""Shared test fixtures."""

from __future__ import annotations

import asyncio

import pytest

from cartstore import CartStore
from cartstore.storage import MemoryBackend

KEY = "@cart/products"


class RecordingBackend(MemoryBackend):
    """MemoryBackend that records every write."""

    def __init__(self):
        super().__init__()
        self.writes: list[tuple[str, str]] = []

    async def set(self, key, value):
        self.writes.append((key, value))
        await super().set(key, value)


class FailingBackend(MemoryBackend):
    """Backend whose reads and/or writes raise until told otherwise."""

    def __init__(self, fail_reads: bool = False, fail_writes: bool = True):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def get(self, key):
        if self.fail_reads:
            raise RuntimeError("disk on fire")
        return await super().get(key)

    async def set(self, key, value):
        if self.fail_writes:
            raise RuntimeError("disk full")
        await super().set(key, value)


class GatedBackend(RecordingBackend):
    """Reads and writes block until their gate is opened."""

    def __init__(self):
        super().__init__()
        self.read_gate = asyncio.Event()
        self.write_gate = asyncio.Event()
        self.read_gate.set()
        self.write_gate.set()

    async def get(self, key):
        await self.read_gate.wait()
        return await super().get(key)

    async def set(self, key, value):
        await self.write_gate.wait()
        await super().set(key, value)


def product(item_id: str = "a", **overrides) -> dict:
    data = {
        "id": item_id,
        "title": f"Product {item_id}",
        "image_url": f"https://img.example/{item_id}.png",
        "price": 10.0,
    }
    data.update(overrides)
    return data


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
async def store(backend):
    async with CartStore(backend=backend) as cart:
        yield cart
