"""Pagination cursors kept in session data.

Cursors live under ``data["cursors"][<namespace>]`` as plain mappings so the
session store can snapshot them. ``data["active_list"]`` names the cursor
that navigation and selection apply to.
"""

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from chatengine.session.state import Session

CURSORS_KEY = "cursors"
ACTIVE_LIST_KEY = "active_list"

DEFAULT_PAGE_SIZE = 5
SPECIALTIES_PAGE_SIZE = 6


class ListNamespace(str, Enum):
    """Lists a sender can page through."""

    PRODUCTS = "products"
    DOCTORS = "doctors"
    CART = "cart"
    DIAGNOSTICS = "diagnostics"
    HEALTHCARE_PRODUCTS = "healthcare_products"
    SPECIALTIES = "specialties"


@dataclass
class PaginationCursor:
    """The rendered, selectable page of one list.

    Attributes:
        namespace: Which list this cursor pages through.
        current_page: 1-based page number.
        total_pages: Page count, at least 1.
        page_size: Items per page.
        total_items: Items across all pages.
        items: Snapshot of the items on the current page.
        title: Heading used when rendering.
        query: Whatever is needed to fetch another page.
    """

    namespace: ListNamespace
    current_page: int
    total_pages: int
    page_size: int
    total_items: int
    items: list[dict[str, Any]] = field(default_factory=list)
    title: str = ""
    query: dict[str, Any] = field(default_factory=dict)

    @property
    def has_next(self) -> bool:
        """Whether a later page exists."""
        return self.current_page < self.total_pages

    @property
    def has_previous(self) -> bool:
        """Whether an earlier page exists."""
        return self.current_page > 1

    def item_at(self, selection: int) -> dict[str, Any] | None:
        """Get the item for a 1-based selection on the current page."""
        if 1 <= selection <= len(self.items):
            return self.items[selection - 1]
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage in session data."""
        data = asdict(self)
        data["namespace"] = self.namespace.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaginationCursor":
        """Rebuild a cursor from session data."""
        return cls(
            namespace=ListNamespace(data["namespace"]),
            current_page=int(data["current_page"]),
            total_pages=int(data["total_pages"]),
            page_size=int(data["page_size"]),
            total_items=int(data["total_items"]),
            items=list(data.get("items", [])),
            title=data.get("title", ""),
            query=dict(data.get("query", {})),
        )


def total_pages(total_items: int, page_size: int) -> int:
    """Number of pages needed for ``total_items``; an empty list has one page."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(total_items / page_size))


def paginate(items: list[Any], page: int, page_size: int) -> list[Any]:
    """Slice the items shown on a 1-based page."""
    start = (page - 1) * page_size
    return list(items[start : start + page_size])


def page_size_for(namespace: ListNamespace, default: int = DEFAULT_PAGE_SIZE) -> int:
    """Get the page size for a list."""
    if namespace == ListNamespace.SPECIALTIES:
        return SPECIALTIES_PAGE_SIZE
    return default


def build_cursor(
    namespace: ListNamespace,
    items: list[dict[str, Any]],
    total_items: int,
    page: int,
    page_size: int,
    title: str = "",
    query: dict[str, Any] | None = None,
) -> PaginationCursor:
    """Build a cursor for a page that has already been fetched."""
    return PaginationCursor(
        namespace=namespace,
        current_page=page,
        total_pages=total_pages(total_items, page_size),
        page_size=page_size,
        total_items=total_items,
        items=list(items),
        title=title,
        query=dict(query or {}),
    )


def set_cursor(session: Session, cursor: PaginationCursor, exclusive: bool = True) -> None:
    """Store a cursor and make it the active list.

    Args:
        session: Session to update.
        cursor: Cursor to store.
        exclusive: Drop every other cursor first. Starting a new top-level
            listing is exclusive; turning a page is not.
    """
    cursors = {} if exclusive else dict(session.data.get(CURSORS_KEY, {}))
    cursors[cursor.namespace.value] = cursor.to_dict()
    session.update_data(**{CURSORS_KEY: cursors, ACTIVE_LIST_KEY: cursor.namespace.value})


def get_cursor(session: Session, namespace: ListNamespace) -> PaginationCursor | None:
    """Get the stored cursor for a namespace."""
    raw = session.data.get(CURSORS_KEY, {}).get(namespace.value)
    return PaginationCursor.from_dict(raw) if raw else None


def get_active_cursor(session: Session) -> PaginationCursor | None:
    """Get the cursor named by ``active_list``, if it still exists."""
    active = session.data.get(ACTIVE_LIST_KEY)
    if not active:
        return None
    try:
        namespace = ListNamespace(active)
    except ValueError:
        return None
    return get_cursor(session, namespace)


def clear_cursors(session: Session) -> None:
    """Drop every cursor and the active list marker."""
    session.discard_data(CURSORS_KEY, ACTIVE_LIST_KEY)
