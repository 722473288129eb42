"""Navigation and selection parsing for the active list."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from chatengine.pagination.cursor import PaginationCursor

logger = logging.getLogger(__name__)

NEXT_WORDS = frozenset({"next", "n"})
PREVIOUS_WORDS = frozenset({"previous", "prev", "p"})
SELECTION_PATTERN = re.compile(r"^\d+$")

LAST_PAGE_ERROR = "Already on last page"
FIRST_PAGE_ERROR = "Already on first page"

NAVIGATION_HINT = "Reply with a number to select, 'next' or 'prev' to change page."


class NavigationAction(str, Enum):
    """What a navigation reply asks for."""

    NEXT = "next"
    PREVIOUS = "previous"
    SELECT = "select"
    ERROR = "error"


@dataclass
class NavigationResult:
    """Outcome of parsing a reply against the active cursor."""

    action: NavigationAction
    page: int | None = None
    selection: int | None = None
    item: dict[str, Any] | None = None
    error: str | None = None


def is_navigation_shape(text: str | None) -> bool:
    """Check whether text looks like a navigation word or a bare number."""
    if not text:
        return False
    value = text.strip().lower()
    return value in NEXT_WORDS or value in PREVIOUS_WORDS or bool(SELECTION_PATTERN.match(value))


def invalid_selection_error(cursor: PaginationCursor) -> str:
    """Error text for a number outside the current page."""
    return f"Invalid selection. Choose 1-{len(cursor.items)}"


def parse_navigation(text: str | None, cursor: PaginationCursor) -> NavigationResult | None:
    """Interpret a reply against the active cursor.

    Examples:
        "next" on page 1/3 -> NEXT, page 2
        "prev" on page 1/3 -> ERROR, "Already on first page"
        "3" with 5 items -> SELECT, items[2]
        "7" with 5 items -> ERROR, "Invalid selection. Choose 1-5"
        "paracetamol" -> None

    Returns:
        The navigation result, or None if the text is not a navigation
        shape and should fall through to normal resolution.
    """
    if not is_navigation_shape(text):
        return None
    value = text.strip().lower()

    if value in NEXT_WORDS:
        if not cursor.has_next:
            return NavigationResult(NavigationAction.ERROR, error=LAST_PAGE_ERROR)
        return NavigationResult(NavigationAction.NEXT, page=cursor.current_page + 1)

    if value in PREVIOUS_WORDS:
        if not cursor.has_previous:
            return NavigationResult(NavigationAction.ERROR, error=FIRST_PAGE_ERROR)
        return NavigationResult(NavigationAction.PREVIOUS, page=cursor.current_page - 1)

    selection = int(value)
    item = cursor.item_at(selection)
    if item is None:
        return NavigationResult(NavigationAction.ERROR, error=invalid_selection_error(cursor))
    return NavigationResult(NavigationAction.SELECT, selection=selection, item=item)


def format_page(
    cursor: PaginationCursor,
    render_item: Callable[[dict[str, Any]], str],
    hint: str = NAVIGATION_HINT,
) -> str:
    """Render the current page as numbered lines.

    Output shape::

        Title (Page x/y)

        1. first item
        2. second item

        hint
    """
    header = f"{cursor.title} (Page {cursor.current_page}/{cursor.total_pages})"
    lines = [f"{i}. {render_item(item)}" for i, item in enumerate(cursor.items, start=1)]
    if not lines:
        return f"{header}\n\nNo items found."
    return "\n\n".join([header, "\n".join(lines), hint])
