from __future__ import annotations

import argparse
from decimal import Decimal
from typing import Iterable, List, Optional

import yaml
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import pricing
from .cart import CartStore
from .catalog import CatalogStore, SORTERS, build_resources
from .checkout import parse_address, place_order
from .config import configure_logging, load_catalog_config, settings
from .errors import AddressValidationError, EmptyCartError
from .fetch_client import CachingFetchClient
from .schemas import Product
from .storage import SQLiteStore

console = Console()


def _product_id(raw: str) -> int | str:
    return int(raw) if raw.isdigit() else raw


def _money(amount: Decimal) -> str:
    return f"₹{pricing.round_money(amount):,}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browse the catalog and manage a persistent cart.")
    parser.add_argument("--storage", default=settings.storage_path, help="SQLite file for cache and cart")
    parser.add_argument("--catalog-config", default=None, help="YAML file with resource overrides")
    parser.add_argument("--log-level", default=settings.log_level)
    sub = parser.add_subparsers(dest="command", required=True)

    products = sub.add_parser("products", help="List products")
    products.add_argument("--limit", type=int, default=None)
    products.add_argument("--category", default=None)
    products.add_argument("--search", default=None)
    products.add_argument("--remote", action="store_true", help="Search via the API instead of locally")
    products.add_argument("--sort", choices=sorted(SORTERS), default=None)

    product = sub.add_parser("product", help="Show one product")
    product.add_argument("product_id")

    sub.add_parser("categories", help="List categories")

    cart = sub.add_parser("cart", help="Inspect or change the cart")
    cart_sub = cart.add_subparsers(dest="cart_command", required=True)
    cart_sub.add_parser("show")
    add = cart_sub.add_parser("add")
    add.add_argument("product_id")
    add.add_argument("--qty", type=int, default=1)
    remove = cart_sub.add_parser("remove")
    remove.add_argument("product_id")
    set_qty = cart_sub.add_parser("set")
    set_qty.add_argument("product_id")
    set_qty.add_argument("quantity", type=int)
    cart_sub.add_parser("clear")

    checkout = sub.add_parser("checkout", help="Place an order for the cart contents")
    checkout.add_argument("--address", required=True, help="YAML file with the shipping address")
    checkout.add_argument("--no-delay", action="store_true")

    sub.add_parser("clear-cache", help="Drop cached API responses")
    return parser


def render_products(products: Iterable[Product]) -> None:
    table = Table(title="Products")
    for column in ("ID", "Title", "Category", "Price", "Discount", "Rating", "Stock"):
        table.add_column(column)
    for p in products:
        table.add_row(
            str(p.id),
            p.title,
            p.category,
            _money(pricing.unit_price(p, settings.usd_to_inr)),
            f"{p.discount_percentage:g}%",
            f"{p.rating:.1f}",
            str(p.stock),
        )
    console.print(table)


def render_cart(cart: CartStore) -> None:
    if not cart.lines:
        rprint("[yellow]Your cart is empty.[/yellow]")
        return
    table = Table(title=f"Cart ({cart.item_count()} items)")
    for column in ("ID", "Title", "Qty", "Unit", "Line total"):
        table.add_column(column)
    for line in cart.lines:
        table.add_row(
            str(line.id),
            line.title,
            str(line.quantity),
            _money(pricing.unit_price(line, settings.usd_to_inr)),
            _money(pricing.line_total(line, settings.usd_to_inr)),
        )
    console.print(table)
    totals = cart.totals()
    rprint(f"Subtotal: {_money(totals.subtotal)}")
    rprint(f"GST: {_money(totals.gst)}")
    shipping = "[green]FREE[/green]" if totals.shipping == 0 else _money(totals.shipping)
    rprint(f"Shipping: {shipping}")
    rprint(f"[bold]Total: {_money(totals.total)}[/bold]")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    store = SQLiteStore(args.storage, quota_bytes=settings.storage_quota_bytes)
    overrides = load_catalog_config(args.catalog_config) if args.catalog_config else None
    client = CachingFetchClient(store=store)
    catalog = CatalogStore(client, resources=build_resources(overrides))
    cart = CartStore(store=store)

    if args.command == "products":
        catalog.load_products(args.limit)
        if args.category:
            catalog.filter_by_category(args.category)
        if args.search:
            if args.remote:
                catalog.search_remote(args.search)
            else:
                catalog.search(args.search)
        if args.sort:
            catalog.sort(args.sort)
        if catalog.state.error:
            rprint(f"[red]{escape(catalog.state.error or '')}[/red]")
            return 1
        render_products(catalog.state.filtered_products)

    elif args.command == "product":
        product = catalog.load_product(_product_id(args.product_id))
        if product is None:
            rprint(f"[red]{escape(catalog.state.error or '')}[/red]")
            return 1
        render_products([product])
        if product.description:
            rprint(product.description)

    elif args.command == "categories":
        for category in catalog.load_categories():
            rprint(f"- {category}")

    elif args.command == "cart":
        return run_cart_command(args, catalog, cart)

    elif args.command == "checkout":
        with open(args.address, "r", encoding="utf-8") as handle:
            address = parse_address(yaml.safe_load(handle) or {})
        try:
            confirmation = place_order(cart, address, delay=0 if args.no_delay else None)
        except AddressValidationError as exc:
            for field_name, message in exc.errors.items():
                rprint(f"[red]{field_name}[/red]: {message}")
            return 1
        except EmptyCartError as exc:
            rprint(f"[yellow]{exc}[/yellow]")
            return 1
        rprint(f"[bold green]Order #{confirmation.order_number} placed.[/bold green]")
        rprint(f"Thank you for your order, {confirmation.address.full_name}!")
        rprint(f"Amount charged: {_money(confirmation.totals.total)}")

    elif args.command == "clear-cache":
        client.clear()
        rprint("Cache cleared.")

    return 0


def run_cart_command(args: argparse.Namespace, catalog: CatalogStore, cart: CartStore) -> int:
    if args.cart_command == "add":
        product = catalog.load_product(_product_id(args.product_id))
        if product is None:
            rprint(f"[red]{escape(catalog.state.error or '')}[/red]")
            return 1
        result = cart.add(product, args.qty)
        if not result.accepted:
            rprint(f"[yellow]Cannot add {args.qty} x {product.title}: {result.reason}[/yellow]")
            return 1
        rprint(f"[green]Added {args.qty} x {product.title}[/green]")
    elif args.cart_command == "remove":
        cart.remove(_product_id(args.product_id))
    elif args.cart_command == "set":
        cart.set_quantity(_product_id(args.product_id), args.quantity)
    elif args.cart_command == "clear":
        cart.clear()
    render_cart(cart)
    return 0
