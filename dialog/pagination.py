"""Paginated inline lists with a fixed-width navigation row."""
from __future__ import annotations

from typing import Sequence, TypeVar

from dialog.callbacks import ACTION_NOOP, ACTION_PAGE, ACTION_SELECT, build_callback
from models.schemas import InlineButton

T = TypeVar("T")

DEFAULT_ITEMS_PER_PAGE = 5

PREV_TEXT = "◀️ Назад"
NEXT_TEXT = "Далі ▶️"
PLACEHOLDER_TEXT = " "


def total_pages(total_items: int, items_per_page: int) -> int:
    """Ceil division, never below 1."""
    if items_per_page <= 0:
        return 1
    pages = -(-total_items // items_per_page)
    return max(pages, 1)


def page_slice(items: Sequence[T], page: int, items_per_page: int = DEFAULT_ITEMS_PER_PAGE) -> list[T]:
    """Items on 1-based ``page``; empty when the page starts past the end."""
    if page < 1:
        page = 1
    start = (page - 1) * items_per_page
    if start >= len(items):
        return []
    return list(items[start:start + items_per_page])


def nav_row(current_page: int, pages: int) -> list[InlineButton]:
    """
    ``[prev] [p/t] [next]``, always three buttons; missing neighbours become
    noop placeholders. Empty when there is a single page.
    """
    if pages <= 1:
        return []
    noop = build_callback(ACTION_NOOP)
    placeholder = InlineButton(text=PLACEHOLDER_TEXT, data=noop)

    prev_btn = (
        InlineButton(text=PREV_TEXT, data=build_callback(ACTION_PAGE, str(current_page - 1)))
        if current_page > 1 else placeholder
    )
    next_btn = (
        InlineButton(text=NEXT_TEXT, data=build_callback(ACTION_PAGE, str(current_page + 1)))
        if current_page < pages else placeholder
    )
    return [prev_btn, InlineButton(text=f"{current_page}/{pages}", data=noop), next_btn]


def paginated_rows(
    items: Sequence[tuple[str, str]],
    current_page: int,
    items_per_page: int = DEFAULT_ITEMS_PER_PAGE,
    extra_row: Sequence[InlineButton] = (),
) -> list[list[InlineButton]]:
    """
    One ``wf:select:<id>`` button per ``(id, text)`` on the current page,
    then the navigation row, then an optional extra row.
    """
    pages = total_pages(len(items), items_per_page)
    current_page = min(max(current_page, 1), pages)
    rows = [
        [InlineButton(text=text, data=build_callback(ACTION_SELECT, item_id))]
        for item_id, text in page_slice(items, current_page, items_per_page)
    ]
    nav = nav_row(current_page, pages)
    if nav:
        rows.append(nav)
    if extra_row:
        rows.append(list(extra_row))
    return rows
