"""Tests for pagination cursors and navigation parsing."""

import pytest

from chatengine.pagination.cursor import (
    ACTIVE_LIST_KEY,
    CURSORS_KEY,
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
    FIRST_PAGE_ERROR,
    LAST_PAGE_ERROR,
    NavigationAction,
    format_page,
    is_navigation_shape,
    parse_navigation,
)
from chatengine.session.state import Session


def items(count: int, start: int = 1) -> list[dict]:
    return [{"id": f"p-{i:03d}", "name": f"Item {i}"} for i in range(start, start + count)]


def cursor_on(page: int, total: int = 12, page_size: int = 5) -> PaginationCursor:
    start = (page - 1) * page_size + 1
    count = min(page_size, total - start + 1)
    return build_cursor(
        ListNamespace.PRODUCTS, items(count, start), total, page, page_size, title="Medicines"
    )


class TestCursor:
    """Tests for cursor arithmetic and storage."""

    @pytest.mark.parametrize(
        "total, size, expected", [(0, 5, 1), (1, 5, 1), (5, 5, 1), (6, 5, 2), (12, 5, 3)]
    )
    def test_total_pages(self, total, size, expected):
        """Test page counts, with one page for an empty list."""
        assert total_pages(total, size) == expected

    def test_total_pages_rejects_zero_size(self):
        """Test a non-positive page size is an error."""
        with pytest.raises(ValueError):
            total_pages(10, 0)

    def test_paginate(self):
        """Test slicing a page."""
        assert paginate(list(range(12)), 3, 5) == [10, 11]
        assert paginate(list(range(12)), 4, 5) == []

    def test_page_size_for(self):
        """Test specialties use their own page size."""
        assert page_size_for(ListNamespace.SPECIALTIES) == 6
        assert page_size_for(ListNamespace.PRODUCTS) == 5
        assert page_size_for(ListNamespace.DOCTORS, 8) == 8

    def test_boundaries(self):
        """Test has_next and has_previous."""
        assert cursor_on(1).has_next and not cursor_on(1).has_previous
        assert cursor_on(3).has_previous and not cursor_on(3).has_next

    def test_item_at(self):
        """Test 1-based selection on the current page."""
        cursor = cursor_on(3)

        assert cursor.item_at(1)["id"] == "p-011"
        assert cursor.item_at(3) is None
        assert cursor.item_at(0) is None

    def test_dict_round_trip(self):
        """Test cursors survive storage as plain mappings."""
        cursor = cursor_on(2)
        cursor.query = {"query": "para"}

        assert PaginationCursor.from_dict(cursor.to_dict()) == cursor
        assert cursor.to_dict()["namespace"] == "products"

    def test_set_cursor_exclusive(self):
        """Test a new listing replaces other cursors."""
        session = Session(sender_id="s")
        set_cursor(session, build_cursor(ListNamespace.CART, items(1), 1, 1, 5))

        set_cursor(session, cursor_on(1))

        assert list(session.data[CURSORS_KEY]) == ["products"]
        assert session.data[ACTIVE_LIST_KEY] == "products"
        assert get_cursor(session, ListNamespace.CART) is None

    def test_set_cursor_keeps_others(self):
        """Test turning a page keeps other cursors."""
        session = Session(sender_id="s")
        set_cursor(session, build_cursor(ListNamespace.CART, items(1), 1, 1, 5))

        set_cursor(session, cursor_on(2), exclusive=False)

        assert get_cursor(session, ListNamespace.CART) is not None
        assert get_active_cursor(session).current_page == 2

    def test_active_cursor_missing(self):
        """Test a dangling or unknown active list resolves to None."""
        session = Session(sender_id="s", data={ACTIVE_LIST_KEY: "products"})
        assert get_active_cursor(session) is None

        session = Session(sender_id="s", data={ACTIVE_LIST_KEY: "planets"})
        assert get_active_cursor(session) is None

    def test_clear_cursors(self):
        """Test clearing drops cursors and the active marker."""
        session = Session(sender_id="s")
        set_cursor(session, cursor_on(1))

        clear_cursors(session)

        assert session.data == {}


class TestNavigation:
    """Tests for navigation parsing."""

    @pytest.mark.parametrize("text", ["next", "N", " prev ", "previous", "p", "3", "12"])
    def test_navigation_shapes(self, text):
        """Test words and bare numbers are navigation shaped."""
        assert is_navigation_shape(text)

    @pytest.mark.parametrize("text", ["paracetamol", "add 1", "3 please", "", None])
    def test_other_text(self, text):
        """Test other text falls through."""
        assert not is_navigation_shape(text)
        assert parse_navigation(text, cursor_on(1)) is None

    def test_next(self):
        """Test moving forward."""
        result = parse_navigation("next", cursor_on(1))

        assert result.action == NavigationAction.NEXT
        assert result.page == 2

    def test_next_on_last_page(self):
        """Test moving past the last page."""
        result = parse_navigation("next", cursor_on(3))

        assert result.action == NavigationAction.ERROR
        assert result.error == LAST_PAGE_ERROR

    def test_previous(self):
        """Test moving back, and the first page boundary."""
        assert parse_navigation("prev", cursor_on(2)).page == 1
        assert parse_navigation("prev", cursor_on(1)).error == FIRST_PAGE_ERROR

    def test_select(self):
        """Test selecting an item on the page."""
        result = parse_navigation("3", cursor_on(1))

        assert result.action == NavigationAction.SELECT
        assert result.selection == 3
        assert result.item["id"] == "p-003"

    def test_select_out_of_range(self):
        """Test a number beyond the page."""
        result = parse_navigation("7", cursor_on(1))

        assert result.action == NavigationAction.ERROR
        assert result.error == "Invalid selection. Choose 1-5"

    def test_format_page(self):
        """Test rendering numbered lines with a header."""
        body = format_page(cursor_on(3), lambda item: item["name"])

        assert body.startswith("Medicines (Page 3/3)")
        assert "1. Item 11\n2. Item 12" in body

    def test_format_empty_page(self):
        """Test rendering a page with no items."""
        cursor = build_cursor(ListNamespace.CART, [], 0, 1, 5, title="Your Cart")

        assert format_page(cursor, str) == "Your Cart (Page 1/1)\n\nNo items found."
