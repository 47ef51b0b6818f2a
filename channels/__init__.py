"""Messengers and inbound parsers for Telegram, WhatsApp and Instagram."""
from channels.base import (
    ChannelError,
    InvalidChatIdError,
    ListenerMessenger,
    MessageListener,
    Messenger,
    notify_listener,
)
from channels.inbound import (
    EventKind,
    InboundEvent,
    dispatch_event,
    parse_instagram_webhook,
    parse_telegram_update,
    parse_whatsapp_webhook,
)
from channels.meta import MetaGraphClient
from channels.telegram import TelegramClient, TelegramMessenger
from channels.text import TextMessenger, TextSender

__all__ = [
    "Messenger", "MessageListener", "ListenerMessenger", "notify_listener",
    "ChannelError", "InvalidChatIdError",
    "TelegramClient", "TelegramMessenger",
    "MetaGraphClient", "TextMessenger", "TextSender",
    "EventKind", "InboundEvent", "dispatch_event",
    "parse_telegram_update", "parse_whatsapp_webhook", "parse_instagram_webhook",
]
