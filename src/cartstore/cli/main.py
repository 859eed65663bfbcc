"""cartstore CLI: inspect and edit a file-backed cart."""

from __future__ import annotations

import asyncio
import json
import math
import sys
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

import click

try:
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    _console = Console(highlight=False)
    _err_console = Console(stderr=True, highlight=False)
except ImportError:
    raise ImportError("The CLI requires click and rich. " "Install them with: pip install cartstore[cli]")

from cartstore import (
    CartConfigError,
    CartSettings,
    CartStore,
    PersistenceReadError,
    load_settings,
)
from cartstore.items import CartState, find_index

DEFAULT_CART_FILE = Path("~/.cartstore/cart.json")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_settings(ctx: click.Context) -> CartSettings:
    """Merge the --config file with --file/--key overrides.

    Exits 1 on an invalid settings file.
    """
    opts = ctx.find_root().params
    settings = CartSettings()

    config_path = opts.get("config_path")
    if config_path:
        try:
            settings = load_settings(config_path)
        except CartConfigError as e:
            _err_console.print(f"[red]Invalid settings file {escape(config_path)}: {escape(str(e))}[/red]")
            sys.exit(1)

    file_path = opts.get("file_path")
    if file_path:
        settings = replace(settings, path=Path(file_path).expanduser())
    elif settings.path is None:
        settings = replace(settings, path=DEFAULT_CART_FILE.expanduser())

    key = opts.get("key")
    if key:
        settings = replace(settings, key=key)

    return settings


async def _apply(settings: CartSettings, action: Callable[[CartStore], None] | None) -> tuple[CartState, bool]:
    """Open the cart, run *action* against it, and wait for the write.

    Returns (items after the action, whether the final state was persisted).
    """
    store = CartStore.from_settings(settings)
    async with store:
        if action is not None:
            action(store)
        items = store.products
    return items, store.synced


def _run(ctx: click.Context, action: Callable[[CartStore], None] | None = None) -> CartState:
    """Run *action* on the configured cart, exiting 1 on load or write failure."""
    settings = _resolve_settings(ctx)
    try:
        items, synced = asyncio.run(_apply(settings, action))
    except PersistenceReadError as e:
        _err_console.print(f"[red]Failed to load cart: {escape(str(e))}[/red]")
        sys.exit(1)
    if not synced:
        _err_console.print(f"[red]Failed to save cart to {escape(str(settings.path))}[/red]")
        sys.exit(1)
    return items


def _print_items(items: CartState) -> None:
    if not items:
        _console.print("[dim]Cart is empty.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Price", justify="right")
    table.add_column("Qty", justify="right")
    for item in items:
        table.add_row(escape(item.id), escape(item.title), str(item.price), str(item.quantity))
    _console.print(table)
    _console.print(f"{len(items)} item(s), {sum(i.quantity for i in items)} unit(s)")


def _require_item(ctx: click.Context, item_id: str) -> None:
    """Exit 1 when *item_id* is not in the cart. The store itself ignores unknown ids."""
    items = _run(ctx)
    if find_index(items, item_id) < 0:
        _err_console.print(f"[yellow]No item '{escape(item_id)}' in cart.[/yellow]")
        sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--file",
    "file_path",
    default=None,
    envvar="CARTSTORE_FILE",
    type=click.Path(dir_okay=False),
    help="Cart storage file (default ~/.cartstore/cart.json).",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML settings file.",
)
@click.option("--key", default=None, help="Persistence key inside the storage file.")
@click.pass_context
def cli(ctx: click.Context, file_path: str | None, config_path: str | None, key: str | None) -> None:
    """cartstore: a persisted shopping cart."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
def version() -> None:
    """Show the installed cartstore version."""
    from cartstore import __version__

    click.echo(f"cartstore {__version__}")


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the cart as a JSON array.")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """Show the cart contents."""
    items = _run(ctx)
    if as_json:
        click.echo(json.dumps([item.to_dict() for item in items], indent=2))
        return
    _print_items(items)


# ---------------------------------------------------------------------------
# add / increment / decrement
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("item_id")
@click.option("--title", required=True, help="Display name.")
@click.option("--image-url", default="", help="Image reference.")
@click.option("--price", required=True, type=float, help="Unit price.")
@click.pass_context
def add(ctx: click.Context, item_id: str, title: str, image_url: str, price: float) -> None:
    """Add one unit of a product (increments it if already present)."""
    if not item_id:
        _err_console.print("[red]ITEM_ID must not be empty.[/red]")
        sys.exit(2)
    if not math.isfinite(price):
        _err_console.print("[red]--price must be a finite number.[/red]")
        sys.exit(2)
    product = {"id": item_id, "title": title, "image_url": image_url, "price": price}
    items = _run(ctx, lambda store: store.add_to_cart(product))
    entry = items[find_index(items, item_id)]
    _console.print(f"[green]{escape(entry.id)}[/green] quantity {entry.quantity}")


@cli.command()
@click.argument("item_id")
@click.pass_context
def increment(ctx: click.Context, item_id: str) -> None:
    """Add one unit of an item already in the cart."""
    _require_item(ctx, item_id)
    items = _run(ctx, lambda store: store.increment(item_id))
    entry = items[find_index(items, item_id)]
    _console.print(f"[green]{escape(entry.id)}[/green] quantity {entry.quantity}")


@cli.command()
@click.argument("item_id")
@click.pass_context
def decrement(ctx: click.Context, item_id: str) -> None:
    """Remove one unit of an item (never below 1)."""
    _require_item(ctx, item_id)
    items = _run(ctx, lambda store: store.decrement(item_id))
    entry = items[find_index(items, item_id)]
    _console.print(f"[green]{escape(entry.id)}[/green] quantity {entry.quantity}")
