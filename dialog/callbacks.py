"""
Callback tokens — ``wf:<action>[:<value>]``.

Inline buttons carry these tokens; the numbered-text fallback on
WhatsApp/Instagram resolves a typed number back to the same token so
steps never care which encoding arrived.
"""
from __future__ import annotations

from typing import Optional

from models.schemas import CallbackData

PREFIX = "wf:"

ACTION_YES = "yes"
ACTION_NO = "no"
ACTION_CONFIRM = "confirm"
ACTION_CANCEL = "cancel"
ACTION_PAGE = "page"
ACTION_SELECT = "select"
ACTION_MENU = "menu"
ACTION_NOOP = "noop"
ACTION_RATE = "rate"
ACTION_PRODUCTS = "products"


def build_callback(action: str, value: str = "") -> str:
    if value:
        return f"{PREFIX}{action}:{value}"
    return f"{PREFIX}{action}"


def is_workflow_callback(data: str) -> bool:
    return data.startswith(PREFIX)


def parse_callback(data: str) -> Optional[CallbackData]:
    """Split a token into action/value. Returns None for foreign data."""
    if not is_workflow_callback(data):
        return None
    parts = data[len(PREFIX):].split(":", 1)
    return CallbackData(action=parts[0], value=parts[1] if len(parts) > 1 else "")


# ── Predicates ────────────────────────────────────────────────

def is_yes(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_YES


def is_no(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_NO


def is_confirm(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_CONFIRM


def is_cancel(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_CANCEL


def is_page(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_PAGE


def is_select(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_SELECT


def is_menu(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_MENU


def is_noop(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_NOOP


def is_rate(cb: Optional[CallbackData]) -> bool:
    return cb is not None and cb.action == ACTION_RATE


# ── Typed accessors ───────────────────────────────────────────

def page_number(cb: Optional[CallbackData]) -> int:
    """Page number for ``page`` tokens; 0 for anything else."""
    if not is_page(cb):
        return 0
    try:
        return int(cb.value)
    except ValueError:
        return 0


def selected_id(cb: Optional[CallbackData]) -> str:
    return cb.value if is_select(cb) else ""


def menu_id(cb: Optional[CallbackData]) -> str:
    return cb.value if is_menu(cb) else ""


def rating(cb: Optional[CallbackData]) -> int:
    """Rating 1..5 for ``rate`` tokens; 0 when absent or out of range."""
    if not is_rate(cb):
        return 0
    try:
        value = int(cb.value)
    except ValueError:
        return 0
    return value if 1 <= value <= 5 else 0
