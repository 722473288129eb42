"""Product search, healthcare products, diagnostic tests and the cart."""

import logging
from typing import Any

from chatengine.flows.context import clear_flow, start_flow
from chatengine.flows.definitions import FlowName
from chatengine.handlers.base import TurnContext, handles
from chatengine.handlers.listing import money, show_page
from chatengine.pagination.cursor import ListNamespace, get_active_cursor, get_cursor
from chatengine.services.models import CatalogError

logger = logging.getLogger(__name__)

MAX_QUANTITY = 100
PRODUCT_LISTS = (ListNamespace.PRODUCTS, ListNamespace.HEALTHCARE_PRODUCTS)
PRODUCT_FOOTER = "Reply 'add <number> <qty>' to add to your cart."

PRESCRIPTION_INSTRUCTIONS = (
    "To upload a prescription, send a photo or PDF of it here.\n\n"
    "Add your order number as the caption (e.g. 'rx 10001') to link it to an "
    "order, or send it first and reply 'rx <order number>' afterwards."
)


async def search(ctx: TurnContext, query: str) -> None:
    """Show the first page of products matching a query."""
    cursor = await show_page(
        ctx,
        ListNamespace.PRODUCTS,
        f"Results for '{query}'",
        query={"query": query},
        footer=PRODUCT_FOOTER,
    )
    if cursor is None:
        ctx.reply.buttons(
            f"No products found for '{query}'. Try another name.",
            [("show_help_menu", "Main Menu")],
        )


def show_product(ctx: TurnContext, item: dict[str, Any], selection: int) -> None:
    """Describe one product from a list."""
    lines = [item["name"], f"Price: {money(item['price'])}"]
    if item.get("description"):
        lines.append(item["description"])
    lines.append(f"\nReply 'add {selection} <qty>' to add it to your cart.")
    ctx.reply.text("\n".join(lines))


@handles("search_products")
async def search_products(ctx: TurnContext) -> None:
    query = ctx.params.get("product_name")
    if query:
        await search(ctx, query)
        return
    start_flow(ctx.session, FlowName.PRODUCT_SEARCH)
    ctx.reply.text("What medicine are you looking for? Type its name.")


@handles("product_search_step_query")
async def product_search_query(ctx: TurnContext) -> None:
    query = ctx.value
    if len(query) < 2:
        ctx.reply.text("Please type at least two letters of the product name.")
        return
    clear_flow(ctx.session)
    await search(ctx, query)


@handles("healthcare_products")
async def healthcare_products(ctx: TurnContext) -> None:
    category = ctx.params.get("category")
    title = f"Healthcare Products: {category.title()}" if category else "Healthcare Products"
    query = {"category": category} if category else {}
    cursor = await show_page(
        ctx, ListNamespace.HEALTHCARE_PRODUCTS, title, query=query, footer=PRODUCT_FOOTER
    )
    if cursor is None:
        ctx.reply.text("No healthcare products are available right now.")


@handles("diagnostic_tests")
async def diagnostic_tests(ctx: TurnContext) -> None:
    cursor = await show_page(
        ctx,
        ListNamespace.DIAGNOSTICS,
        "Diagnostic Tests",
        footer="Reply with a number for details.",
    )
    if cursor is None:
        ctx.reply.text("No diagnostic tests are available right now.")


@handles("add_to_cart")
async def add_to_cart(ctx: TurnContext) -> None:
    cursor = get_active_cursor(ctx.session)
    if cursor is None or cursor.namespace not in PRODUCT_LISTS:
        ctx.reply.text("Search for a product first, then reply 'add <number> <qty>'.")
        return

    index = int(ctx.params.get("index", 0))
    quantity = int(ctx.params.get("quantity", 1))
    item = cursor.item_at(index)
    if item is None:
        ctx.reply.text(f"Invalid product number. Choose 1-{len(cursor.items)}.")
        return
    if not 1 <= quantity <= MAX_QUANTITY:
        ctx.reply.text(f"Quantity must be between 1 and {MAX_QUANTITY}.")
        return

    product = await ctx.services.catalog.get_product(item["id"])
    if product is None:
        ctx.reply.text("That product is no longer available.")
        return
    try:
        cart = await ctx.services.catalog.add_to_cart(ctx.user_id, product, quantity)
    except CatalogError as e:
        ctx.reply.text(str(e))
        return

    total = sum(line.subtotal for line in cart)
    ctx.reply.buttons(
        f"Added {quantity}x {product.name} to your cart.\nCart total: {money(total)}",
        [("show_cart", "View Cart"), ("show_checkout", "Checkout")],
    )


@handles("view_cart")
async def view_cart(ctx: TurnContext) -> None:
    page = int(ctx.params.get("page", 1))
    direction = ctx.params.get("direction")
    if direction:
        current = get_cursor(ctx.session, ListNamespace.CART)
        page = current.current_page if current else 1
        page += 1 if direction == "next" else -1

    cart = await ctx.services.catalog.get_cart(ctx.user_id)
    if not cart:
        ctx.reply.buttons(
            "Your cart is empty. Search for medicines to get started.",
            [("show_help_menu", "Main Menu")],
        )
        return

    total = sum(line.subtotal for line in cart)
    cursor = await show_page(
        ctx,
        ListNamespace.CART,
        "Your Cart",
        page=max(page, 1),
        footer=f"Total: {money(total)}\nReply 'remove <number>' to remove an item.",
    )
    if cursor is None:
        return

    buttons = [("show_checkout", "Checkout")]
    if cursor.has_previous:
        buttons.append(("cart_prev_page", "Previous Page"))
    if cursor.has_next:
        buttons.append(("cart_next_page", "Next Page"))
    ctx.reply.buttons("What would you like to do?", buttons)


@handles("remove_from_cart")
async def remove_from_cart(ctx: TurnContext) -> None:
    index = int(ctx.params.get("index", 0))
    try:
        removed = await ctx.services.catalog.remove_from_cart(ctx.user_id, index)
    except CatalogError as e:
        ctx.reply.text(str(e))
        return
    ctx.reply.buttons(
        f"Removed {removed.name} from your cart.", [("show_cart", "View Cart")]
    )


@handles("prescription_upload")
async def prescription_upload(ctx: TurnContext) -> None:
    ctx.reply.text(PRESCRIPTION_INSTRUCTIONS)
