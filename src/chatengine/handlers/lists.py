"""Paging through and selecting from the active list."""

import logging

from chatengine.handlers.appointments import choose_doctor, choose_specialty
from chatengine.handlers.base import TurnContext, handles
from chatengine.handlers.catalog import PRODUCT_FOOTER, show_product
from chatengine.handlers.listing import money, show_page
from chatengine.pagination.cursor import ListNamespace, get_active_cursor

logger = logging.getLogger(__name__)

FOOTERS = {
    ListNamespace.PRODUCTS: PRODUCT_FOOTER,
    ListNamespace.HEALTHCARE_PRODUCTS: PRODUCT_FOOTER,
    ListNamespace.CART: "Reply 'remove <number>' to remove an item.",
}


@handles("list_navigate")
async def list_navigate(ctx: TurnContext) -> None:
    cursor = get_active_cursor(ctx.session)
    if cursor is None:
        ctx.reply.text("There is no list to page through. Type 'help' to see the menu.")
        return
    shown = await show_page(
        ctx,
        cursor.namespace,
        cursor.title,
        page=int(ctx.params.get("page", cursor.current_page)),
        query=cursor.query,
        exclusive=False,
        footer=FOOTERS.get(cursor.namespace),
    )
    if shown is None:
        ctx.reply.text("That list is now empty.")


@handles("list_select")
async def list_select(ctx: TurnContext) -> None:
    namespace = ListNamespace(ctx.params["namespace"])
    item = ctx.params["item"]
    selection = int(ctx.params.get("selection", 1))

    if namespace in (ListNamespace.PRODUCTS, ListNamespace.HEALTHCARE_PRODUCTS):
        show_product(ctx, item, selection)
    elif namespace == ListNamespace.DOCTORS:
        choose_doctor(ctx, item)
    elif namespace == ListNamespace.SPECIALTIES:
        await choose_specialty(ctx, item["name"])
    elif namespace == ListNamespace.DIAGNOSTICS:
        sample = f"\nSample: {item['sample']}" if item.get("sample") else ""
        ctx.reply.buttons(
            f"{item['name']}\nPrice: {money(item['price'])}{sample}\n\n"
            "Our support team can schedule a home sample collection for you.",
            [("show_help_menu", "Main Menu")],
        )
    else:
        ctx.reply.text(
            f"{item['quantity']}x {item['name']} - {money(item['subtotal'])}\n\n"
            f"Reply 'remove {selection}' to remove it from your cart."
        )


@handles("list_error")
async def list_error(ctx: TurnContext) -> None:
    ctx.reply.text(str(ctx.params.get("error", "Invalid selection.")))
