"""Demo: a file-backed cart that survives restarts.

Run twice and watch the quantities carry over:

    python examples/demo_cart.py
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path

from cartstore import CartStore, FileBackend

CART_FILE = Path(tempfile.gettempdir()) / "cartstore-demo.json"

MUG = {"id": "mug", "title": "Mug", "image_url": "https://img.example/mug.png", "price": 9.5}
TEE = {"id": "tee", "title": "T-shirt", "image_url": "https://img.example/tee.png", "price": 19.0}


def show(label: str, cart: CartStore) -> None:
    line = ", ".join(f"{item.id} x{item.quantity}" for item in cart.products) or "(empty)"
    print(f"{label:<22} {line}")


async def main() -> None:
    logging.basicConfig(level=logging.INFO)

    async with CartStore(backend=FileBackend(CART_FILE)) as cart:
        show("loaded", cart)

        cart.add_to_cart(MUG)
        cart.add_to_cart(TEE)
        cart.add_to_cart(MUG)
        show("after adds", cart)

        cart.decrement("tee")
        show("decrement tee (floor)", cart)

        cart.increment("missing")
        show("increment missing", cart)

    print(f"\nsaved to {CART_FILE}")


if __name__ == "__main__":
    asyncio.run(main())
