"""
Tests for the Messenger implementations.

Covers:
  - TelegramMessenger over TelegramClient (httpx MockTransport)
  - TextMessenger numbered rendering
  - MetaGraphClient payload shapes
  - ListenerMessenger mirroring
"""
import json

import httpx
import pytest

from channels.base import ChannelError, InvalidChatIdError, ListenerMessenger, notify_listener
from channels.meta import MetaGraphClient
from channels.telegram import TelegramClient, TelegramMessenger
from channels.text import TextMessenger
from dialog.keyboards import rating_row, reply_rows
from dialog.pagination import paginated_rows
from models.schemas import ChatMessage, FileMessage, InlineButton, MessageDirection

from tests.conftest import FakeMessenger, RecordingListener


class MockApi:
    """Collects requests and answers with a canned response."""

    def __init__(self, status=200, body=None):
        self.requests: list[httpx.Request] = []
        self.status = status
        self.body = body if body is not None else {"ok": True, "result": {"message_id": 5}}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    def payload(self, i=-1) -> dict:
        return json.loads(self.requests[i].content)

    def method(self, i=-1) -> str:
        return self.requests[i].url.path.rsplit("/", 1)[-1]


# ──────────────────────────────────────────────────────────────
#  Telegram
# ──────────────────────────────────────────────────────────────

class TestTelegramMessenger:
    @pytest.fixture
    def api(self):
        return MockApi()

    @pytest.fixture
    def tg(self, api):
        return TelegramMessenger(TelegramClient("123:abc", transport=httpx.MockTransport(api)))

    @pytest.mark.asyncio
    async def test_send_text_uses_html(self, tg, api):
        await tg.send_text("42", "<b>hi</b>")
        assert api.method() == "sendMessage"
        assert api.requests[-1].url.path == "/bot123:abc/sendMessage"
        assert api.payload() == {"chat_id": 42, "text": "<b>hi</b>", "parse_mode": "HTML"}

    @pytest.mark.asyncio
    async def test_send_menu_builds_reply_keyboard(self, tg, api):
        await tg.send_menu("42", "Menu", reply_rows([["A", "B"], ["C"]]))
        markup = api.payload()["reply_markup"]
        assert markup == {
            "keyboard": [[{"text": "A"}, {"text": "B"}], [{"text": "C"}]],
            "resize_keyboard": True,
        }

    @pytest.mark.asyncio
    async def test_inline_options_single_row(self, tg, api):
        await tg.send_inline_options("42", "Rate us", rating_row())
        rows = api.payload()["reply_markup"]["inline_keyboard"]
        assert len(rows) == 1
        assert rows[0][0] == {"text": "1", "callback_data": "wf:rate:1"}
        assert api.payload()["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_edit_grid(self, tg, api):
        rows = paginated_rows([("a", "A")], 1)
        await tg.edit_inline_grid("42", "77", "Pick", rows)
        assert api.method() == "editMessageText"
        assert api.payload()["message_id"] == 77
        assert api.payload()["parse_mode"] == "HTML"
        assert api.payload()["reply_markup"] == {
            "inline_keyboard": [[{"text": "A", "callback_data": "wf:select:a"}]],
        }

    @pytest.mark.asyncio
    async def test_edit_without_message_id_sends_new(self, tg, api):
        await tg.edit_inline_grid("42", "", "Pick", [[InlineButton("A", "wf:select:a")]])
        assert api.method() == "sendMessage"

    @pytest.mark.asyncio
    async def test_contact_request(self, tg, api):
        await tg.send_contact_request("42", "Share?", "📱 Share")
        markup = api.payload()["reply_markup"]
        assert markup["keyboard"] == [[{"text": "📱 Share", "request_contact": True}]]
        assert markup["one_time_keyboard"] is True

    @pytest.mark.asyncio
    async def test_typing(self, tg, api):
        await tg.send_typing("42")
        assert api.method() == "sendChatAction"
        assert api.payload() == {"chat_id": 42, "action": "typing"}

    @pytest.mark.asyncio
    async def test_send_file_by_url(self, tg, api):
        await tg.send_file("42", FileMessage(filename="a.png", mime_type="image/png",
                                             url="https://x/a.png", caption="pic"))
        assert api.method() == "sendPhoto"
        assert api.payload() == {"chat_id": 42, "caption": "pic", "photo": "https://x/a.png"}

    @pytest.mark.asyncio
    async def test_send_file_upload(self, tg, api):
        await tg.send_file("42", FileMessage(filename="r.pdf", mime_type="application/pdf", content=b"%PDF"))
        assert api.method() == "sendDocument"
        assert api.requests[-1].headers["content-type"].startswith("multipart/form-data")

    @pytest.mark.asyncio
    async def test_invalid_chat_id(self, tg, api):
        with pytest.raises(InvalidChatIdError):
            await tg.send_text("not-a-number", "hi")
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_api_error_raises_channel_error(self):
        api = MockApi(status=400, body={"ok": False, "description": "Bad Request: chat not found"})
        tg = TelegramMessenger(TelegramClient("t", transport=httpx.MockTransport(api)))
        with pytest.raises(ChannelError) as exc:
            await tg.send_text("42", "hi")
        assert exc.value.channel == "telegram"
        assert not exc.value.retryable
        assert "chat not found" in str(exc.value)

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self):
        api = MockApi(status=429, body={"ok": False, "description": "Too Many Requests"})
        tg = TelegramMessenger(TelegramClient("t", transport=httpx.MockTransport(api)))
        with pytest.raises(ChannelError) as exc:
            await tg.send_text("42", "hi")
        assert exc.value.retryable

    @pytest.mark.asyncio
    async def test_answer_callback_query(self, api):
        client = TelegramClient("t", transport=httpx.MockTransport(api))
        await client.answer_callback_query("cq-1")
        assert api.method() == "answerCallbackQuery"
        assert api.payload() == {"callback_query_id": "cq-1"}
        await client.close()


# ──────────────────────────────────────────────────────────────
#  Text-only platforms
# ──────────────────────────────────────────────────────────────

class FakeSender:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.media: list[tuple] = []

    async def send_message(self, recipient, text):
        self.sent.append((recipient, text))

    async def send_media(self, recipient, media_type, url, caption="", filename=""):
        self.media.append((recipient, media_type, url, caption, filename))


class TestTextMessenger:
    @pytest.fixture
    def sender(self):
        return FakeSender()

    @pytest.fixture
    def wa(self, sender):
        return TextMessenger(sender, "whatsapp")

    @pytest.mark.asyncio
    async def test_menu_is_numbered(self, wa, sender):
        await wa.send_menu("380", "Menu", reply_rows([["A", "B"], ["C"]]))
        assert sender.sent == [("380", "Menu\n\n1. A\n2. B\n3. C\n\nОберіть опцію:")]

    @pytest.mark.asyncio
    async def test_grid_edit_sends_new_numbered_list(self, wa, sender):
        rows = paginated_rows([(f"s{i}", f"S{i}") for i in range(1, 7)], 2)
        await wa.edit_inline_grid("380", "mid", "Pick", rows)
        text = sender.sent[-1][1]
        assert text.startswith("Pick\n\n1. S6\n2. ◀️ Назад\n")

    @pytest.mark.asyncio
    async def test_contact_request_is_plain_text(self, wa, sender):
        await wa.send_contact_request("380", "Type your phone", "📱 Share")
        assert sender.sent == [("380", "Type your phone")]

    @pytest.mark.asyncio
    async def test_typing_is_silent(self, wa, sender):
        await wa.send_typing("380")
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_file_needs_url(self, wa, sender):
        with pytest.raises(ChannelError):
            await wa.send_file("380", FileMessage(filename="a.pdf", content=b"x"))
        await wa.send_file("380", FileMessage(filename="a.pdf", url="https://x/a.pdf", caption="doc"))
        assert sender.media == [("380", "document", "https://x/a.pdf", "doc", "a.pdf")]


class TestMetaGraphClient:
    @pytest.fixture
    def api(self):
        return MockApi(body={"messages": [{"id": "wamid.1"}]})

    @pytest.mark.asyncio
    async def test_whatsapp_text_payload(self, api):
        client = MetaGraphClient("whatsapp", "PNID", "tok", transport=httpx.MockTransport(api))
        await client.send_message("380501112233", "hi")
        req = api.requests[-1]
        assert req.url.path == "/v18.0/PNID/messages"
        assert req.headers["authorization"] == "Bearer tok"
        assert api.payload() == {
            "messaging_product": "whatsapp", "to": "380501112233", "type": "text", "text": {"body": "hi"},
        }

    @pytest.mark.asyncio
    async def test_instagram_text_payload(self, api):
        client = MetaGraphClient("instagram", "PAGE", "tok", transport=httpx.MockTransport(api))
        await client.send_message("igsid", "hi")
        assert api.payload() == {"recipient": {"id": "igsid"}, "message": {"text": "hi"}}

    @pytest.mark.asyncio
    async def test_whatsapp_document_payload(self, api):
        client = MetaGraphClient("whatsapp", "PNID", "tok", transport=httpx.MockTransport(api))
        await client.send_media("380", "document", "https://x/a.pdf", caption="doc", filename="a.pdf")
        assert api.payload()["document"] == {"link": "https://x/a.pdf", "caption": "doc", "filename": "a.pdf"}

    @pytest.mark.asyncio
    async def test_http_error(self):
        api = MockApi(status=500, body={"error": {"message": "boom"}})
        client = MetaGraphClient("instagram", "PAGE", "tok", transport=httpx.MockTransport(api))
        with pytest.raises(ChannelError) as exc:
            await client.send_message("igsid", "hi")
        assert exc.value.retryable

    def test_rejects_other_platforms(self):
        with pytest.raises(ValueError):
            MetaGraphClient("telegram", "x", "y")


# ──────────────────────────────────────────────────────────────
#  Listener mirroring
# ──────────────────────────────────────────────────────────────

class TestListenerMessenger:
    @pytest.mark.asyncio
    async def test_outgoing_text_is_mirrored(self):
        inner = FakeMessenger("telegram")
        listener = RecordingListener()
        mirrored = ListenerMessenger(inner, listener, user_id="42")

        await mirrored.send_text("42", "hello")
        await mirrored.send_inline_options("42", "pick", rating_row())
        await mirrored.send_typing("42")

        assert inner.methods() == ["send_text", "send_inline_options", "send_typing"]
        assert [m.text for m in listener.messages] == ["hello", "pick"]
        assert all(m.direction == MessageDirection.OUTGOING for m in listener.messages)
        assert listener.messages[0].sender == "bot"
        assert listener.messages[0].user_id == "42"

    @pytest.mark.asyncio
    async def test_listener_failure_is_swallowed(self):
        class Broken:
            async def on_chat_message(self, message):
                raise RuntimeError("down")

        await notify_listener(Broken(), ChatMessage(
            platform="telegram", user_id="1", chat_id="1",
            direction=MessageDirection.INCOMING, text="hi",
        ))
