"""Ready-made button rows carrying ``wf:`` tokens."""
from __future__ import annotations

from typing import Sequence

from dialog.callbacks import (
    ACTION_CANCEL, ACTION_CONFIRM, ACTION_MENU, ACTION_NO, ACTION_PRODUCTS,
    ACTION_RATE, ACTION_SELECT, ACTION_YES, build_callback,
)
from models.schemas import InlineButton, MenuButton


def yes_no_row(yes_text: str = "✅ Так", no_text: str = "❌ Ні") -> list[InlineButton]:
    return [
        InlineButton(text=yes_text, data=build_callback(ACTION_YES)),
        InlineButton(text=no_text, data=build_callback(ACTION_NO)),
    ]


def confirm_cancel_row(confirm_text: str = "✅ Підтвердити",
                       cancel_text: str = "❌ Скасувати") -> list[InlineButton]:
    return [
        InlineButton(text=confirm_text, data=build_callback(ACTION_CONFIRM)),
        InlineButton(text=cancel_text, data=build_callback(ACTION_CANCEL)),
    ]


def single_button(text: str, data: str) -> list[list[InlineButton]]:
    return [[InlineButton(text=text, data=data)]]


def selection_rows(items: Sequence[tuple[str, str]]) -> list[list[InlineButton]]:
    """One row per ``(id, text)`` item."""
    return [
        [InlineButton(text=text, data=build_callback(ACTION_SELECT, item_id))]
        for item_id, text in items
    ]


def main_menu_rows(rows: Sequence[Sequence[tuple[str, str]]]) -> list[list[InlineButton]]:
    return [
        [InlineButton(text=text, data=build_callback(ACTION_MENU, item_id)) for item_id, text in row]
        for row in rows
    ]


def rating_row() -> list[InlineButton]:
    return [InlineButton(text=str(i), data=build_callback(ACTION_RATE, str(i))) for i in range(1, 6)]


def products_button(order_id: str, text: str = "📋 Товари") -> InlineButton:
    return InlineButton(text=text, data=build_callback(ACTION_PRODUCTS, order_id))


def reply_rows(rows: Sequence[Sequence[str]]) -> list[list[MenuButton]]:
    return [[MenuButton(text=text) for text in row] for row in rows]
