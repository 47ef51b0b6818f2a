"""Helpers shared by the shipped workflows."""
from __future__ import annotations

import html
import structlog
from typing import Optional

from dialog.inputs import normalize_phone
from models.schemas import ChatState, Platform
from workflows.services import AuthService, User

logger = structlog.get_logger()

USER_NOT_FOUND_TEXT = "Не вдалося отримати інформацію про користувача."


def telegram_id(state: ChatState) -> int:
    """Numeric Telegram id of the user, 0 on other platforms."""
    if state.platform != Platform.TELEGRAM.value:
        return 0
    try:
        return int(state.user_id)
    except ValueError:
        return 0


def escape_for(platform: str, value: str) -> str:
    """Make external text safe for the platform's parse mode (Telegram sends HTML)."""
    if platform == Platform.TELEGRAM.value:
        return html.escape(value, quote=False)
    return value


async def resolve_user(state: ChatState, auth: AuthService) -> Optional[User]:
    """
    Find the user behind a chat: by platform id first (Instagram id,
    Telegram id, WhatsApp number), then by a phone stored in state.
    """
    user = None
    if state.platform == Platform.INSTAGRAM.value:
        user = await auth.find_user(instagram_id=state.user_id)
    elif state.platform == Platform.TELEGRAM.value and telegram_id(state):
        user = await auth.find_user(telegram_id=telegram_id(state))
    elif state.platform == Platform.WHATSAPP.value:
        user = await auth.find_user(phone=normalize_phone(state.user_id))
    if user is not None:
        return user

    phone = state.get_str("phone")
    if phone:
        return await auth.find_user(phone=phone)
    logger.debug("user_not_resolved", platform=state.platform, user_id=state.user_id)
    return None
