"""
Meta Graph API client — WhatsApp Cloud API and Instagram Messaging.

Both products send through ``POST /{sender_id}/messages`` with different
payload shapes; ``platform`` selects which one this client speaks.

API Docs:
  https://developers.facebook.com/docs/whatsapp/cloud-api/reference/messages
  https://developers.facebook.com/docs/messenger-platform/instagram
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from channels.base import ChannelError
from models.schemas import Platform

logger = structlog.get_logger()

_INSTAGRAM_ATTACHMENT = {"image": "image", "video": "video", "audio": "audio", "document": "file"}


class MetaGraphClient:
    """Sends text and media on WhatsApp or Instagram."""

    BASE_URL = "https://graph.facebook.com/v18.0"

    def __init__(
        self,
        platform: str,
        sender_id: str,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if platform not in (Platform.WHATSAPP.value, Platform.INSTAGRAM.value):
            raise ValueError(f"Unsupported Meta platform: {platform}")
        self.platform = platform
        self.sender_id = sender_id            # WhatsApp phone_number_id or Instagram page id
        self.access_token = access_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=httpx.Timeout(30.0, connect=10.0),
                headers={"Authorization": f"Bearer {self.access_token}"},
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
    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        resp = await client.post(f"/{self.sender_id}/messages", json=payload)
        if resp.status_code >= 400:
            logger.error("meta_api_error",
                         platform=self.platform, status=resp.status_code, body=resp.text[:500])
            raise ChannelError(
                f"{self.platform} send failed with HTTP {resp.status_code}",
                channel=self.platform,
                retryable=resp.status_code == 429 or resp.status_code >= 500,
            )
        return resp.json() if resp.content else {}

    async def send_message(self, recipient: str, text: str) -> dict[str, Any]:
        if self.platform == Platform.WHATSAPP.value:
            payload = {
                "messaging_product": "whatsapp",
                "to": recipient,
                "type": "text",
                "text": {"body": text},
            }
        else:
            payload = {"recipient": {"id": recipient}, "message": {"text": text}}
        return await self._request(payload)

    async def send_media(
        self, recipient: str, media_type: str, url: str, caption: str = "", filename: str = "",
    ) -> dict[str, Any]:
        if self.platform == Platform.WHATSAPP.value:
            media: dict[str, Any] = {"link": url}
            if caption and media_type != "audio":
                media["caption"] = caption
            if filename and media_type == "document":
                media["filename"] = filename
            payload = {
                "messaging_product": "whatsapp",
                "to": recipient,
                "type": media_type,
                media_type: media,
            }
        else:
            payload = {
                "recipient": {"id": recipient},
                "message": {
                    "attachment": {
                        "type": _INSTAGRAM_ATTACHMENT.get(media_type, "file"),
                        "payload": {"url": url},
                    }
                },
            }
        return await self._request(payload)
