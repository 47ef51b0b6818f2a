"""
Channel contracts — how steps talk to users on any platform.

Provides:
- ChannelError: structured error for channel HTTP failures
- Messenger: abstract UI adapter every platform implements
- MessageListener: optional hook mirroring chat text to another system
- ListenerMessenger: Messenger decorator that reports outgoing text
"""
from __future__ import annotations

import abc
import structlog
from typing import Optional, Protocol, Sequence, runtime_checkable

from models.schemas import (
    ChatMessage, FileMessage, InlineButton, MenuButton, MessageDirection,
)

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class ChannelError(Exception):
    """Base exception for all channel operations."""

    def __init__(self, message: str, channel: str = "", retryable: bool = False):
        self.channel = channel
        self.retryable = retryable
        super().__init__(message)


class InvalidChatIdError(ChannelError):
    def __init__(self, chat_id: str, channel: str = ""):
        super().__init__(f"Invalid chat id for {channel}: {chat_id!r}", channel)


# ══════════════════════════════════════════════════════════════
#  MESSENGER
# ══════════════════════════════════════════════════════════════

class Messenger(abc.ABC):
    """
    Platform UI adapter. Steps call these; the engine never does.

    Platforms with native buttons render menus as keyboards; text-only
    platforms render the same options as numbered lists.
    """

    platform: str = ""

    @abc.abstractmethod
    async def send_text(self, chat_id: str, text: str) -> None:
        ...

    @abc.abstractmethod
    async def send_menu(self, chat_id: str, text: str, rows: Sequence[Sequence[MenuButton]]) -> None:
        """Reply keyboard; the user's answer arrives as the button text."""

    @abc.abstractmethod
    async def send_inline_options(self, chat_id: str, text: str, buttons: Sequence[InlineButton]) -> None:
        """A single row of callback buttons."""

    @abc.abstractmethod
    async def send_inline_grid(self, chat_id: str, text: str, rows: Sequence[Sequence[InlineButton]]) -> None:
        ...

    @abc.abstractmethod
    async def edit_inline_grid(
        self, chat_id: str, message_id: str, text: str, rows: Sequence[Sequence[InlineButton]],
    ) -> None:
        """Replace a previously sent grid in place (used for page flips)."""

    @abc.abstractmethod
    async def send_contact_request(self, chat_id: str, text: str, button_text: str) -> None:
        ...

    @abc.abstractmethod
    async def send_file(self, chat_id: str, file: FileMessage) -> None:
        ...

    @abc.abstractmethod
    async def send_typing(self, chat_id: str) -> None:
        ...


# ══════════════════════════════════════════════════════════════
#  MESSAGE LISTENER
# ══════════════════════════════════════════════════════════════

@runtime_checkable
class MessageListener(Protocol):
    """Receives every chat text, inbound and outbound. Fire-and-forget."""

    async def on_chat_message(self, message: ChatMessage) -> None:
        ...


async def notify_listener(listener: Optional[MessageListener], message: ChatMessage) -> None:
    """Deliver to the listener; its failures are logged, never propagated."""
    if listener is None:
        return
    try:
        await listener.on_chat_message(message)
    except Exception as e:
        logger.warning("message_listener_failed",
                       platform=message.platform, user_id=message.user_id,
                       direction=message.direction.value, error=str(e))


class ListenerMessenger(Messenger):
    """
    Wraps a Messenger and mirrors outgoing text to a MessageListener.
    Buttons are mirrored as the prompt text only.
    """

    def __init__(self, inner: Messenger, listener: MessageListener, user_id: str = ""):
        self._inner = inner
        self._listener = listener
        self._user_id = user_id
        self.platform = inner.platform

    async def _mirror(self, chat_id: str, text: str) -> None:
        await notify_listener(self._listener, ChatMessage(
            platform=self.platform,
            user_id=self._user_id or chat_id,
            chat_id=chat_id,
            direction=MessageDirection.OUTGOING,
            sender="bot",
            text=text,
        ))

    async def send_text(self, chat_id: str, text: str) -> None:
        await self._inner.send_text(chat_id, text)
        await self._mirror(chat_id, text)

    async def send_menu(self, chat_id, text, rows) -> None:
        await self._inner.send_menu(chat_id, text, rows)
        await self._mirror(chat_id, text)

    async def send_inline_options(self, chat_id, text, buttons) -> None:
        await self._inner.send_inline_options(chat_id, text, buttons)
        await self._mirror(chat_id, text)

    async def send_inline_grid(self, chat_id, text, rows) -> None:
        await self._inner.send_inline_grid(chat_id, text, rows)
        await self._mirror(chat_id, text)

    async def edit_inline_grid(self, chat_id, message_id, text, rows) -> None:
        await self._inner.edit_inline_grid(chat_id, message_id, text, rows)

    async def send_contact_request(self, chat_id, text, button_text) -> None:
        await self._inner.send_contact_request(chat_id, text, button_text)
        await self._mirror(chat_id, text)

    async def send_file(self, chat_id, file) -> None:
        await self._inner.send_file(chat_id, file)
        if file.caption:
            await self._mirror(chat_id, file.caption)

    async def send_typing(self, chat_id) -> None:
        await self._inner.send_typing(chat_id)
