"""
Inbound normalisation — platform webhooks → InboundEvent → engine.

Each parser turns one platform payload into zero or more InboundEvents;
``dispatch_event`` routes an event to the right engine entry point and
mirrors inbound text to the MessageListener.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from channels.base import ListenerMessenger, MessageListener, Messenger, notify_listener
from dialog.deeplink import extract_start_param, parse_deep_link
from models.schemas import ChatMessage, MessageDirection, Platform

if TYPE_CHECKING:
    from dialog.engine import WorkflowEngine

logger = structlog.get_logger()


class EventKind(str, Enum):
    MESSAGE = "message"
    CALLBACK = "callback"
    CONTACT = "contact"


@dataclass
class InboundEvent:
    platform: str
    user_id: str
    chat_id: str
    kind: EventKind
    text: str = ""
    callback_data: str = ""
    phone: str = ""
    message_id: str = ""
    callback_query_id: str = ""         # Telegram only; must be answered
    sender_name: str = ""

    @property
    def is_start_command(self) -> bool:
        return self.kind == EventKind.MESSAGE and self.text.strip().startswith("/start")


# ══════════════════════════════════════════════════════════════
#  PARSERS
# ══════════════════════════════════════════════════════════════

def parse_telegram_update(update: dict[str, Any]) -> Optional[InboundEvent]:
    """Parse a Telegram Bot API ``Update``."""
    platform = Platform.TELEGRAM.value

    if "callback_query" in update:
        cq = update["callback_query"]
        message = cq.get("message") or {}
        sender = cq.get("from") or {}
        user_id = str(sender.get("id", ""))
        chat_id = str((message.get("chat") or {}).get("id", user_id))
        return InboundEvent(
            platform=platform, user_id=user_id, chat_id=chat_id,
            kind=EventKind.CALLBACK,
            callback_data=cq.get("data", ""),
            message_id=str(message.get("message_id", "")),
            callback_query_id=str(cq.get("id", "")),
            sender_name=sender.get("first_name", ""),
        )

    message = update.get("message")
    if not message:
        return None
    sender = message.get("from") or {}
    user_id = str(sender.get("id", ""))
    chat_id = str((message.get("chat") or {}).get("id", user_id))
    if not user_id:
        return None

    if "contact" in message:
        return InboundEvent(
            platform=platform, user_id=user_id, chat_id=chat_id,
            kind=EventKind.CONTACT,
            phone=message["contact"].get("phone_number", ""),
            message_id=str(message.get("message_id", "")),
            sender_name=sender.get("first_name", ""),
        )

    text = message.get("text", "")
    if not text:
        return None
    return InboundEvent(
        platform=platform, user_id=user_id, chat_id=chat_id,
        kind=EventKind.MESSAGE, text=text,
        message_id=str(message.get("message_id", "")),
        sender_name=sender.get("first_name", ""),
    )


def parse_whatsapp_webhook(payload: dict[str, Any]) -> list[InboundEvent]:
    """Parse a WhatsApp Cloud API webhook body. Status updates yield nothing."""
    platform = Platform.WHATSAPP.value
    events: list[InboundEvent] = []

    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            names = {
                c.get("wa_id", ""): (c.get("profile") or {}).get("name", "")
                for c in value.get("contacts", [])
            }
            for msg in value.get("messages", []):
                sender = msg.get("from", "")
                if not sender:
                    continue
                base = dict(
                    platform=platform, user_id=sender, chat_id=sender,
                    message_id=msg.get("id", ""), sender_name=names.get(sender, ""),
                )
                msg_type = msg.get("type", "text")

                if msg_type == "text":
                    events.append(InboundEvent(
                        kind=EventKind.MESSAGE, text=(msg.get("text") or {}).get("body", ""), **base,
                    ))
                elif msg_type == "interactive":
                    interactive = msg.get("interactive", {})
                    reply = interactive.get(interactive.get("type", ""), {})
                    events.append(InboundEvent(
                        kind=EventKind.CALLBACK, callback_data=reply.get("id", ""), **base,
                    ))
                elif msg_type == "button":
                    events.append(InboundEvent(
                        kind=EventKind.MESSAGE, text=(msg.get("button") or {}).get("text", ""), **base,
                    ))
                elif msg_type == "contacts":
                    phones = (msg.get("contacts") or [{}])[0].get("phones") or [{}]
                    events.append(InboundEvent(
                        kind=EventKind.CONTACT, phone=phones[0].get("phone", ""), **base,
                    ))
                else:
                    logger.debug("whatsapp_message_ignored", type=msg_type, sender=sender)
    return events


def parse_instagram_webhook(payload: dict[str, Any]) -> list[InboundEvent]:
    """Parse an Instagram Messaging webhook body. Echoes of our own sends are skipped."""
    platform = Platform.INSTAGRAM.value
    events: list[InboundEvent] = []

    for entry in payload.get("entry", []):
        for item in entry.get("messaging", []):
            sender = (item.get("sender") or {}).get("id", "")
            if not sender:
                continue

            if "postback" in item:
                postback = item["postback"]
                events.append(InboundEvent(
                    platform=platform, user_id=sender, chat_id=sender,
                    kind=EventKind.CALLBACK, callback_data=postback.get("payload", ""),
                    message_id=postback.get("mid", ""),
                ))
                continue

            message = item.get("message") or {}
            if not message or message.get("is_echo"):
                continue
            quick_reply = message.get("quick_reply")
            if quick_reply:
                events.append(InboundEvent(
                    platform=platform, user_id=sender, chat_id=sender,
                    kind=EventKind.CALLBACK, callback_data=quick_reply.get("payload", ""),
                    message_id=message.get("mid", ""),
                ))
            elif message.get("text"):
                events.append(InboundEvent(
                    platform=platform, user_id=sender, chat_id=sender,
                    kind=EventKind.MESSAGE, text=message["text"],
                    message_id=message.get("mid", ""),
                ))
    return events


# ══════════════════════════════════════════════════════════════
#  DISPATCH
# ══════════════════════════════════════════════════════════════

async def dispatch_event(
    engine: WorkflowEngine,
    messenger: Messenger,
    event: InboundEvent,
    listener: Optional[MessageListener] = None,
) -> None:
    """
    Route one event to the engine. ``/start [param]`` restarts the default
    workflow, carrying the parsed deep link.
    """
    if listener is not None:
        if event.kind == EventKind.MESSAGE and event.text:
            await notify_listener(listener, ChatMessage(
                platform=event.platform,
                user_id=event.user_id,
                chat_id=event.chat_id,
                direction=MessageDirection.INCOMING,
                text=event.text,
                metadata={"sender_name": event.sender_name} if event.sender_name else {},
            ))
        messenger = ListenerMessenger(messenger, listener, user_id=event.user_id)

    logger.info("inbound_event",
                platform=event.platform, user_id=event.user_id, kind=event.kind.value)

    if event.is_start_command:
        deep_link = parse_deep_link(extract_start_param(event.text))
        await engine.start_workflow(
            messenger, event.platform, event.user_id, event.chat_id, deep_link=deep_link,
        )
    elif event.kind == EventKind.CALLBACK:
        await engine.handle_callback(
            messenger, event.platform, event.user_id, event.chat_id,
            event.callback_data, event.message_id,
        )
    elif event.kind == EventKind.CONTACT:
        await engine.handle_contact(
            messenger, event.platform, event.user_id, event.chat_id, event.phone,
        )
    else:
        await engine.handle_message(
            messenger, event.platform, event.user_id, event.chat_id, event.text,
        )
