"""Tests for webhook parsing and event dispatch."""
import pytest

from channels.inbound import (
    EventKind, InboundEvent, dispatch_event, parse_instagram_webhook,
    parse_telegram_update, parse_whatsapp_webhook,
)
from models.schemas import MessageDirection

from tests.conftest import FakeMessenger, RecordingListener


def tg_message(**extra):
    message = {
        "message_id": 11,
        "from": {"id": 42, "first_name": "Olena"},
        "chat": {"id": 4242},
    }
    message.update(extra)
    return {"update_id": 1, "message": message}


def wa_payload(*messages, contacts=None):
    return {"entry": [{"changes": [{"value": {
        "contacts": contacts or [{"wa_id": "380501112233", "profile": {"name": "Ira"}}],
        "messages": list(messages),
    }}]}]}


class TestTelegramParsing:
    def test_text(self):
        event = parse_telegram_update(tg_message(text="hello"))
        assert event == InboundEvent(
            platform="telegram", user_id="42", chat_id="4242", kind=EventKind.MESSAGE,
            text="hello", message_id="11", sender_name="Olena",
        )
        assert not event.is_start_command

    def test_start_command(self):
        assert parse_telegram_update(tg_message(text="/start school_abc")).is_start_command

    def test_contact(self):
        event = parse_telegram_update(tg_message(contact={"phone_number": "380501112233"}))
        assert event.kind == EventKind.CONTACT
        assert event.phone == "380501112233"

    def test_callback(self):
        event = parse_telegram_update({"callback_query": {
            "id": "cq-9",
            "from": {"id": 42},
            "data": "wf:page:2",
            "message": {"message_id": 77, "chat": {"id": 4242}},
        }})
        assert event.kind == EventKind.CALLBACK
        assert event.callback_data == "wf:page:2"
        assert event.message_id == "77"
        assert event.callback_query_id == "cq-9"
        assert event.chat_id == "4242"

    @pytest.mark.parametrize("update", [
        {"update_id": 1},
        {"edited_message": {"text": "x"}},
        tg_message(sticker={"file_id": "abc"}),
    ])
    def test_unsupported_updates(self, update):
        assert parse_telegram_update(update) is None


class TestWhatsAppParsing:
    def test_text(self):
        events = parse_whatsapp_webhook(wa_payload(
            {"from": "380501112233", "id": "wamid.1", "type": "text", "text": {"body": "2"}},
        ))
        assert len(events) == 1
        assert events[0].kind == EventKind.MESSAGE
        assert events[0].text == "2"
        assert events[0].user_id == events[0].chat_id == "380501112233"
        assert events[0].sender_name == "Ira"

    def test_interactive_reply_is_callback(self):
        events = parse_whatsapp_webhook(wa_payload({
            "from": "380501112233", "id": "wamid.2", "type": "interactive",
            "interactive": {"type": "button_reply", "button_reply": {"id": "wf:yes", "title": "Yes"}},
        }))
        assert events[0].kind == EventKind.CALLBACK
        assert events[0].callback_data == "wf:yes"

    def test_shared_contact(self):
        events = parse_whatsapp_webhook(wa_payload({
            "from": "380501112233", "id": "wamid.3", "type": "contacts",
            "contacts": [{"phones": [{"phone": "+380 50 999 88 77"}]}],
        }))
        assert events[0].kind == EventKind.CONTACT
        assert events[0].phone == "+380 50 999 88 77"

    def test_status_updates_and_unknown_types_are_ignored(self):
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}
        assert parse_whatsapp_webhook(payload) == []
        assert parse_whatsapp_webhook(wa_payload({"from": "380", "type": "sticker"})) == []
        assert parse_whatsapp_webhook({}) == []


class TestInstagramParsing:
    def test_text_and_echo(self):
        payload = {"entry": [{"messaging": [
            {"sender": {"id": "ig1"}, "message": {"mid": "m1", "text": "hi"}},
            {"sender": {"id": "page"}, "message": {"mid": "m2", "text": "bot says", "is_echo": True}},
        ]}]}
        events = parse_instagram_webhook(payload)
        assert [(e.user_id, e.kind, e.text) for e in events] == [("ig1", EventKind.MESSAGE, "hi")]

    def test_quick_reply_and_postback(self):
        payload = {"entry": [{"messaging": [
            {"sender": {"id": "ig1"}, "message": {"mid": "m1", "text": "Yes", "quick_reply": {"payload": "wf:yes"}}},
            {"sender": {"id": "ig1"}, "postback": {"mid": "m2", "payload": "wf:menu:orders"}},
        ]}]}
        events = parse_instagram_webhook(payload)
        assert [(e.kind, e.callback_data) for e in events] == [
            (EventKind.CALLBACK, "wf:yes"), (EventKind.CALLBACK, "wf:menu:orders"),
        ]


class RecordingEngine:
    def __init__(self):
        self.calls = []

    async def start_workflow(self, messenger, platform, user_id, chat_id, workflow_id=None,
                             initial_data=None, deep_link=None):
        self.calls.append(("start", user_id, deep_link))

    async def handle_message(self, messenger, platform, user_id, chat_id, text):
        self.calls.append(("message", user_id, text))
        await messenger.send_text(chat_id, f"echo {text}")

    async def handle_callback(self, messenger, platform, user_id, chat_id, callback_data, message_id=""):
        self.calls.append(("callback", user_id, callback_data, message_id))

    async def handle_contact(self, messenger, platform, user_id, chat_id, phone):
        self.calls.append(("contact", user_id, phone))


class TestDispatch:
    @pytest.mark.asyncio
    async def test_routes_by_kind(self):
        engine, chat = RecordingEngine(), FakeMessenger()
        base = dict(platform="telegram", user_id="42", chat_id="42")

        await dispatch_event(engine, chat, InboundEvent(kind=EventKind.MESSAGE, text="hi", **base))
        await dispatch_event(engine, chat, InboundEvent(
            kind=EventKind.CALLBACK, callback_data="wf:yes", message_id="9", **base))
        await dispatch_event(engine, chat, InboundEvent(kind=EventKind.CONTACT, phone="+380", **base))

        assert engine.calls == [
            ("message", "42", "hi"),
            ("callback", "42", "wf:yes", "9"),
            ("contact", "42", "+380"),
        ]

    @pytest.mark.asyncio
    async def test_start_command_carries_deep_link(self):
        engine = RecordingEngine()
        await dispatch_event(engine, FakeMessenger(), InboundEvent(
            platform="telegram", user_id="42", chat_id="42", kind=EventKind.MESSAGE,
            text="/start school_abc",
        ))
        (kind, _, link), = engine.calls
        assert kind == "start"
        assert (link.type, link.code) == ("school", "abc")

    @pytest.mark.asyncio
    async def test_bare_start_has_no_deep_link(self):
        engine = RecordingEngine()
        await dispatch_event(engine, FakeMessenger(), InboundEvent(
            platform="telegram", user_id="42", chat_id="42", kind=EventKind.MESSAGE, text="/start",
        ))
        assert engine.calls == [("start", "42", None)]

    @pytest.mark.asyncio
    async def test_listener_sees_both_directions(self):
        engine, chat, listener = RecordingEngine(), FakeMessenger(), RecordingListener()
        await dispatch_event(engine, chat, InboundEvent(
            platform="telegram", user_id="42", chat_id="42", kind=EventKind.MESSAGE,
            text="hi", sender_name="Olena",
        ), listener)

        assert [(m.direction, m.text) for m in listener.messages] == [
            (MessageDirection.INCOMING, "hi"),
            (MessageDirection.OUTGOING, "echo hi"),
        ]
        assert listener.messages[0].metadata == {"sender_name": "Olena"}
        assert chat.texts() == ["echo hi"]
