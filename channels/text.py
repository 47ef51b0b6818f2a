"""
Text-only Messenger for WhatsApp and Instagram.

Menus and buttons become numbered lists; the user answers with a number
and the step maps it back through ``dialog.inputs``. Contact requests
degrade to a plain prompt and typing indicators are not available.
"""
from __future__ import annotations

import structlog
from typing import Any, Protocol, Sequence

from channels.base import ChannelError, Messenger
from dialog.inputs import format_numbered_grid, format_numbered_inline, format_numbered_menu
from models.schemas import FileMessage, InlineButton, MenuButton

logger = structlog.get_logger()


class TextSender(Protocol):
    async def send_message(self, recipient: str, text: str) -> Any:
        ...

    async def send_media(
        self, recipient: str, media_type: str, url: str, caption: str = "", filename: str = "",
    ) -> Any:
        ...


class TextMessenger(Messenger):
    """Numbered plain-text rendering over any TextSender."""

    def __init__(self, sender: TextSender, platform: str):
        self.sender = sender
        self.platform = platform

    async def send_text(self, chat_id: str, text: str) -> None:
        await self.sender.send_message(chat_id, text)

    async def send_menu(self, chat_id: str, text: str, rows: Sequence[Sequence[MenuButton]]) -> None:
        await self.sender.send_message(chat_id, format_numbered_menu(text, rows))

    async def send_inline_options(self, chat_id: str, text: str, buttons: Sequence[InlineButton]) -> None:
        await self.sender.send_message(chat_id, format_numbered_inline(text, buttons))

    async def send_inline_grid(self, chat_id: str, text: str, rows: Sequence[Sequence[InlineButton]]) -> None:
        await self.sender.send_message(chat_id, format_numbered_grid(text, rows))

    async def edit_inline_grid(
        self, chat_id: str, message_id: str, text: str, rows: Sequence[Sequence[InlineButton]],
    ) -> None:
        # No message editing on these platforms
        await self.send_inline_grid(chat_id, text, rows)

    async def send_contact_request(self, chat_id: str, text: str, button_text: str) -> None:
        await self.sender.send_message(chat_id, text)

    async def send_file(self, chat_id: str, file: FileMessage) -> None:
        if not file.url:
            raise ChannelError(
                f"{self.platform} media requires a public URL ({file.filename})",
                channel=self.platform,
            )
        await self.sender.send_media(chat_id, file.media_type, file.url, file.caption, file.filename)

    async def send_typing(self, chat_id: str) -> None:
        return None
