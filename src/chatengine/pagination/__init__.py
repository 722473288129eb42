"""Paged lists with navigation and selection."""

from chatengine.pagination.cursor import (
    DEFAULT_PAGE_SIZE,
    SPECIALTIES_PAGE_SIZE,
    ListNamespace,
    PaginationCursor,
    build_cursor,
    clear_cursors,
    get_active_cursor,
    get_cursor,
    page_size_for,
    paginate,
    set_cursor,
    total_pages,
)
from chatengine.pagination.navigation import (
    NavigationAction,
    NavigationResult,
    format_page,
    is_navigation_shape,
    parse_navigation,
)

__all__ = [
    "ListNamespace",
    "PaginationCursor",
    "DEFAULT_PAGE_SIZE",
    "SPECIALTIES_PAGE_SIZE",
    "build_cursor",
    "set_cursor",
    "get_cursor",
    "get_active_cursor",
    "clear_cursors",
    "page_size_for",
    "paginate",
    "total_pages",
    "NavigationAction",
    "NavigationResult",
    "parse_navigation",
    "is_navigation_shape",
    "format_page",
]
