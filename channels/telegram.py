"""
Telegram channel — Bot API client and native-keyboard Messenger.

Reply keyboards carry menu choices (answer arrives as text), inline
keyboards carry ``wf:`` callback tokens, and the contact button shares
the user's phone number.

API Docs: https://core.telegram.org/bots/api
"""
from __future__ import annotations

import structlog
from typing import Any, Optional, Sequence

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from channels.base import ChannelError, InvalidChatIdError, Messenger
from models.schemas import FileMessage, InlineButton, MenuButton, Platform

logger = structlog.get_logger()

_MEDIA_METHODS = {
    "image": ("sendPhoto", "photo"),
    "video": ("sendVideo", "video"),
    "audio": ("sendAudio", "audio"),
    "document": ("sendDocument", "document"),
}


# ══════════════════════════════════════════════════════════════
#  BOT API CLIENT
# ══════════════════════════════════════════════════════════════

class TelegramClient:
    """Minimal Telegram Bot API client."""

    BASE_URL = "https://api.telegram.org"

    def __init__(self, bot_token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bot_token = bot_token
        self.base_url = f"{self.BASE_URL}/bot{bot_token}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(self, method: str, **kwargs) -> Any:
        client = await self._get_client()
        resp = await client.post(f"{self.base_url}/{method}", **kwargs)
        body = resp.json() if resp.content else {}
        if resp.status_code >= 400 or not body.get("ok", False):
            logger.error("telegram_api_error",
                         method=method, status=resp.status_code,
                         description=body.get("description", resp.text[:500]))
            raise ChannelError(
                f"Telegram {method} failed: {body.get('description', resp.status_code)}",
                channel=Platform.TELEGRAM.value,
                retryable=resp.status_code == 429 or resp.status_code >= 500,
            )
        return body.get("result")

    async def send_message(
        self, chat_id: int, text: str,
        reply_markup: Optional[dict[str, Any]] = None, parse_mode: Optional[str] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return await self._request("sendMessage", json=payload)

    async def edit_message_text(
        self, chat_id: int, message_id: int, text: str,
        reply_markup: Optional[dict[str, Any]] = None, parse_mode: Optional[str] = None,
    ) -> Any:
        payload: dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return await self._request("editMessageText", json=payload)

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> Any:
        return await self._request("sendChatAction", json={"chat_id": chat_id, "action": action})

    async def answer_callback_query(self, callback_query_id: str, text: str = "") -> Any:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self._request("answerCallbackQuery", json=payload)

    async def send_media(self, chat_id: int, file: FileMessage) -> dict[str, Any]:
        method, field_name = _MEDIA_METHODS[file.media_type]
        data: dict[str, Any] = {"chat_id": chat_id}
        if file.caption:
            data["caption"] = file.caption
        if file.url:
            data[field_name] = file.url
            return await self._request(method, json=data)
        files = {field_name: (file.filename, file.content, file.mime_type or "application/octet-stream")}
        return await self._request(method, data=data, files=files)


# ══════════════════════════════════════════════════════════════
#  MESSENGER
# ══════════════════════════════════════════════════════════════

def _inline_keyboard(rows: Sequence[Sequence[InlineButton]]) -> dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": btn.text, "callback_data": btn.data} for btn in row] for row in rows
        ]
    }


class TelegramMessenger(Messenger):
    """
    Messenger with native Telegram keyboards. Message text (not button
    labels) is sent as HTML, so callers escape anything user-supplied.
    """

    platform = Platform.TELEGRAM.value
    parse_mode = "HTML"

    def __init__(self, client: TelegramClient):
        self.client = client

    def _chat(self, chat_id: str) -> int:
        try:
            return int(chat_id)
        except (TypeError, ValueError):
            raise InvalidChatIdError(chat_id, self.platform) from None

    async def send_text(self, chat_id: str, text: str) -> None:
        await self.client.send_message(self._chat(chat_id), text, parse_mode=self.parse_mode)

    async def send_menu(self, chat_id: str, text: str, rows: Sequence[Sequence[MenuButton]]) -> None:
        keyboard = {
            "keyboard": [[{"text": btn.text} for btn in row] for row in rows],
            "resize_keyboard": True,
        }
        await self.client.send_message(self._chat(chat_id), text, reply_markup=keyboard)

    async def send_inline_options(self, chat_id: str, text: str, buttons: Sequence[InlineButton]) -> None:
        await self.client.send_message(
            self._chat(chat_id), text, reply_markup=_inline_keyboard([buttons]), parse_mode=self.parse_mode,
        )

    async def send_inline_grid(self, chat_id: str, text: str, rows: Sequence[Sequence[InlineButton]]) -> None:
        await self.client.send_message(
            self._chat(chat_id), text, reply_markup=_inline_keyboard(rows), parse_mode=self.parse_mode,
        )

    async def edit_inline_grid(
        self, chat_id: str, message_id: str, text: str, rows: Sequence[Sequence[InlineButton]],
    ) -> None:
        try:
            msg_id = int(message_id)
        except (TypeError, ValueError):
            await self.send_inline_grid(chat_id, text, rows)
            return
        await self.client.edit_message_text(
            self._chat(chat_id), msg_id, text, reply_markup=_inline_keyboard(rows), parse_mode=self.parse_mode,
        )

    async def send_contact_request(self, chat_id: str, text: str, button_text: str) -> None:
        keyboard = {
            "keyboard": [[{"text": button_text, "request_contact": True}]],
            "resize_keyboard": True,
            "one_time_keyboard": True,
        }
        await self.client.send_message(self._chat(chat_id), text, reply_markup=keyboard)

    async def send_file(self, chat_id: str, file: FileMessage) -> None:
        await self.client.send_media(self._chat(chat_id), file)

    async def send_typing(self, chat_id: str) -> None:
        await self.client.send_chat_action(self._chat(chat_id), "typing")
