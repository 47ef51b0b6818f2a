"""
Input normalisation helpers.

Text-only channels render buttons as numbered lists; these helpers build
those lists and map a typed number back to the button the user meant.
"""
from __future__ import annotations

import re
from typing import Sequence

from dialog.callbacks import ACTION_NOOP, parse_callback
from models.schemas import InlineButton, MenuButton, UserInput

CHOOSE_PROMPT = "Оберіть опцію:"

_PHONE_RE = re.compile(r"^\+?[0-9]{10,15}$")


# ── Phone numbers ─────────────────────────────────────────────

def _digits(value: str) -> str:
    return "".join(ch for ch in value if "0" <= ch <= "9")


def normalize_phone(phone: str) -> str:
    """Keep digits only and prefix with '+'. Empty stays empty."""
    digits = _digits(phone)
    return f"+{digits}" if digits else ""


def is_valid_phone(phone: str) -> bool:
    digits = _digits(phone)
    if len(digits) < 10:
        return False
    return bool(_PHONE_RE.match(f"+{digits}"))


# ── Numbered menus ────────────────────────────────────────────

def _parse_number(text: str) -> int:
    text = (text or "").strip()
    if not (text.isascii() and text.isdigit()):
        return 0
    return int(text)


def _numbered(text: str, labels: Sequence[str]) -> str:
    lines = [f"{i}. {label}\n" for i, label in enumerate(labels, start=1)]
    return f"{text}\n\n{''.join(lines)}\n{CHOOSE_PROMPT}"


def _is_placeholder(btn: InlineButton) -> bool:
    cb = parse_callback(btn.data)
    return cb is not None and cb.action == ACTION_NOOP


def _grid_buttons(rows: Sequence[Sequence[InlineButton]]) -> list[InlineButton]:
    """Flatten a grid, dropping noop placeholders and page indicators."""
    return [btn for row in rows for btn in row if not _is_placeholder(btn)]


def format_numbered_menu(text: str, rows: Sequence[Sequence[MenuButton]]) -> str:
    return _numbered(text, [btn.text for row in rows for btn in row])


def format_numbered_inline(text: str, buttons: Sequence[InlineButton]) -> str:
    return _numbered(text, [btn.text for btn in buttons])


def format_numbered_grid(text: str, rows: Sequence[Sequence[InlineButton]]) -> str:
    return _numbered(text, [btn.text.strip() for btn in _grid_buttons(rows)])


def match_number_to_option(text: str, rows: Sequence[Sequence[MenuButton]]) -> str:
    """'2' → text of the second button in row-major order, else ""."""
    num = _parse_number(text)
    if num < 1:
        return ""
    flat = [btn.text for row in rows for btn in row]
    return flat[num - 1] if num <= len(flat) else ""


def match_number_to_inline(text: str, buttons: Sequence[InlineButton]) -> str:
    num = _parse_number(text)
    if num < 1 or num > len(buttons):
        return ""
    return buttons[num - 1].data


def match_number_to_grid(text: str, rows: Sequence[Sequence[InlineButton]]) -> str:
    return match_number_to_inline(text, _grid_buttons(rows))


def resolve_choice(user_input: UserInput, buttons: Sequence[InlineButton]) -> str:
    """
    The token the user picked, whichever way it arrived: a button press
    (``callback_data``) or a typed number on a text-only channel.
    """
    if user_input.callback_data:
        return user_input.callback_data
    return match_number_to_inline(user_input.text, buttons)


def resolve_menu_choice(user_input: UserInput, rows: Sequence[Sequence[MenuButton]]) -> str:
    """Exact button text, or the button a typed number points at."""
    text = (user_input.text or "").strip()
    labels = {btn.text for row in rows for btn in row}
    if text in labels:
        return text
    return match_number_to_option(text, rows)
