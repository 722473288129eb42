"""Fetching and rendering pages for every list namespace."""

import logging
from typing import Any

from chatengine.handlers.base import TurnContext
from chatengine.pagination.cursor import (
    ListNamespace,
    PaginationCursor,
    build_cursor,
    page_size_for,
    paginate,
    set_cursor,
    total_pages,
)
from chatengine.pagination.navigation import format_page

logger = logging.getLogger(__name__)

DOCTOR_SPECIALTIES = (
    "General Practitioner",
    "Cardiologist",
    "Pediatrician",
    "Dermatologist",
    "Neurologist",
    "Gynecologist",
    "Orthopedic",
    "Psychiatrist",
    "Dentist",
    "Ophthalmologist",
    "Urologist",
    "Gastroenterologist",
)

CURRENCY = "₦"


def money(amount: float) -> str:
    return f"{CURRENCY}{amount:,.2f}"


def render_item(namespace: ListNamespace, item: dict[str, Any]) -> str:
    """One line for a list item."""
    if namespace in (ListNamespace.PRODUCTS, ListNamespace.HEALTHCARE_PRODUCTS):
        return f"{item['name']} - {money(item['price'])}"
    if namespace == ListNamespace.DIAGNOSTICS:
        return f"{item['name']} - {money(item['price'])}"
    if namespace == ListNamespace.DOCTORS:
        location = f" ({item['location']})" if item.get("location") else ""
        return f"{item['name']}, {item['specialty'].title()}{location}"
    if namespace == ListNamespace.CART:
        return f"{item['quantity']}x {item['name']} - {money(item['subtotal'])}"
    return str(item.get("name", item))


async def fetch_page(
    ctx: TurnContext,
    namespace: ListNamespace,
    page: int,
    page_size: int,
    query: dict[str, Any],
) -> tuple[list[dict[str, Any]], int]:
    """Fetch one page of a list.

    Returns:
        Tuple of (items on the page, total item count).
    """
    services = ctx.services
    if namespace == ListNamespace.PRODUCTS:
        result = await services.catalog.search_products(query.get("query", ""), page, page_size)
        return [p.to_item() for p in result.items], result.total
    if namespace == ListNamespace.HEALTHCARE_PRODUCTS:
        result = await services.catalog.healthcare_products(query.get("category"), page, page_size)
        return [p.to_item() for p in result.items], result.total
    if namespace == ListNamespace.DIAGNOSTICS:
        tests = await services.catalog.diagnostic_tests(page, page_size)
        return [t.to_item() for t in tests.items], tests.total
    if namespace == ListNamespace.DOCTORS:
        doctors = await services.appointments.search_doctors(
            query.get("specialty"), page, page_size
        )
        return [d.to_item() for d in doctors.items], doctors.total
    if namespace == ListNamespace.CART:
        cart = [item.to_item() for item in await services.catalog.get_cart(ctx.user_id)]
        return paginate(cart, page, page_size), len(cart)
    specialties = [{"name": s} for s in DOCTOR_SPECIALTIES]
    return paginate(specialties, page, page_size), len(specialties)


async def show_page(
    ctx: TurnContext,
    namespace: ListNamespace,
    title: str,
    page: int = 1,
    query: dict[str, Any] | None = None,
    exclusive: bool = True,
    footer: str | None = None,
) -> PaginationCursor | None:
    """Fetch a page, store its cursor and render it into the reply.

    Args:
        ctx: Turn context.
        namespace: List to show.
        title: Heading of the list.
        page: 1-based page to show.
        query: What is needed to fetch other pages.
        exclusive: Drop other cursors; True when starting a new listing.
        footer: Extra line appended to the rendered page.

    Returns:
        The stored cursor, or None if the list is empty.
    """
    query = dict(query or {})
    page_size = page_size_for(namespace, ctx.page_size)
    items, total = await fetch_page(ctx, namespace, page, page_size, query)
    if total == 0:
        return None
    last_page = total_pages(total, page_size)
    if page > last_page:
        page = last_page
        items, total = await fetch_page(ctx, namespace, page, page_size, query)

    cursor = build_cursor(namespace, items, total, page, page_size, title=title, query=query)
    set_cursor(ctx.session, cursor, exclusive=exclusive)
    body = format_page(cursor, lambda item: render_item(namespace, item))
    if footer:
        body = f"{body}\n{footer}"
    ctx.reply.text(body)
    logger.debug(
        "Showing %s page %d/%d (sender_id=%s)",
        namespace.value,
        cursor.current_page,
        cursor.total_pages,
        ctx.session.sender_id,
    )
    return cursor
