"""
FastAPI Application — platform webhooks and operator endpoints.

Provides:
- Webhook endpoints for Telegram, WhatsApp and Instagram
- State inspection and reset per (platform, user_id)
- Health check

The dialog collaborators (user directory, CRM, AI assistant, schools) are
supplied by the hosting process, so the app is built by a factory rather
than at import time.
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from channels.base import MessageListener, Messenger
from channels.inbound import (
    InboundEvent, dispatch_event, parse_instagram_webhook, parse_telegram_update, parse_whatsapp_webhook,
)
from channels.meta import MetaGraphClient
from channels.telegram import TelegramClient, TelegramMessenger
from channels.text import TextMessenger
from config.settings import Settings, get_settings
from database.session import close_db, init_db
from database.store_factory import create_store
from dialog.engine import WorkflowEngine
from models.schemas import Platform
from workflows import build_registry
from workflows.services import AIService, AuthService, CrmService, SchoolDirectory

logger = structlog.get_logger()


# ──────────────────────────────────────────────────────────────
#  App factory
# ──────────────────────────────────────────────────────────────

def create_app(
    engine: WorkflowEngine,
    messengers: dict[str, Messenger],
    listener: Optional[MessageListener] = None,
    verify_token: str = "",
    telegram_client: Optional[TelegramClient] = None,
    lifespan: Optional[Callable[[FastAPI], Any]] = None,
) -> FastAPI:
    """
    Build the HTTP surface around an engine.

    ``messengers`` maps platform name → Messenger; webhooks for platforms
    without a messenger are acknowledged and ignored.
    """
    app = FastAPI(
        title="Guidebot API",
        description="Multi-platform guided dialog engine",
        version="1.0.0",
        lifespan=lifespan,
    )

    async def _dispatch_all(platform: str, events: list[InboundEvent]) -> dict[str, Any]:
        messenger = messengers.get(platform)
        if messenger is None:
            logger.warning("platform_not_configured", platform=platform, events=len(events))
            return {"status": "ignored"}

        for event in events:
            try:
                await dispatch_event(engine, messenger, event, listener)
            except Exception as e:
                # Acknowledge anyway; platforms redeliver non-2xx responses
                logger.error("webhook_dispatch_failed",
                             platform=platform, user_id=event.user_id,
                             kind=event.kind.value, error=str(e),
                             error_type=type(e).__name__)
        return {"status": "ok", "events": len(events)}

    # ══════════════════════════════════════════════════════════
    #  HEALTH
    # ══════════════════════════════════════════════════════════

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "workflows": engine.registry.ids(),
            "platforms": sorted(messengers),
        }

    # ══════════════════════════════════════════════════════════
    #  WEBHOOKS
    # ══════════════════════════════════════════════════════════

    @app.post("/webhook/telegram")
    async def telegram_webhook(request: Request):
        update = await request.json()
        event = parse_telegram_update(update)
        if event is None:
            return {"status": "ignored"}

        if event.callback_query_id and telegram_client is not None:
            try:
                await telegram_client.answer_callback_query(event.callback_query_id)
            except Exception as e:
                logger.warning("telegram_callback_answer_failed",
                               user_id=event.user_id, error=str(e))

        return await _dispatch_all(Platform.TELEGRAM.value, [event])

    @app.get("/webhook/whatsapp")
    async def whatsapp_verify(request: Request):
        params = request.query_params
        if (
            verify_token
            and params.get("hub.mode") == "subscribe"
            and params.get("hub.verify_token") == verify_token
        ):
            return PlainTextResponse(params.get("hub.challenge", ""))
        logger.warning("whatsapp_webhook_verification_failed")
        raise HTTPException(403, "Verification failed")

    @app.post("/webhook/whatsapp")
    async def whatsapp_webhook(request: Request):
        body = await request.json()
        return await _dispatch_all(Platform.WHATSAPP.value, parse_whatsapp_webhook(body))

    @app.post("/webhook/instagram")
    async def instagram_webhook(request: Request):
        body = await request.json()
        return await _dispatch_all(Platform.INSTAGRAM.value, parse_instagram_webhook(body))

    # ══════════════════════════════════════════════════════════
    #  STATES
    # ══════════════════════════════════════════════════════════

    @app.get("/states/{platform}/{user_id}")
    async def get_state(platform: str, user_id: str):
        state = await engine.get_state(platform, user_id)
        if state is None:
            raise HTTPException(404, "No active workflow")
        return state.model_dump(mode="json")

    @app.delete("/states/{platform}/{user_id}")
    async def clear_state(platform: str, user_id: str):
        await engine.clear_state(platform, user_id)
        return {"status": "cleared"}

    return app


# ──────────────────────────────────────────────────────────────
#  Bootstrap from settings
# ──────────────────────────────────────────────────────────────

def create_messengers(settings: Settings) -> tuple[dict[str, Messenger], list[Any]]:
    """Messengers for every enabled channel, plus the HTTP clients to close at shutdown."""
    messengers: dict[str, Messenger] = {}
    clients: list[Any] = []

    telegram = settings.channel(Platform.TELEGRAM.value)
    if telegram.enabled:
        client = TelegramClient(telegram.credentials.get("bot_token", ""))
        messengers[Platform.TELEGRAM.value] = TelegramMessenger(client)
        clients.append(client)

    meta_senders = {
        Platform.WHATSAPP.value: "phone_number_id",
        Platform.INSTAGRAM.value: "page_id",
    }
    for platform, sender_key in meta_senders.items():
        cfg = settings.channel(platform)
        if not cfg.enabled:
            continue
        client = MetaGraphClient(
            platform,
            cfg.credentials.get(sender_key, ""),
            cfg.credentials.get("access_token", ""),
        )
        messengers[platform] = TextMessenger(client, platform)
        clients.append(client)

    logger.info("messengers_created", platforms=sorted(messengers))
    return messengers, clients


def create_app_from_settings(
    auth: AuthService,
    crm: CrmService,
    ai: AIService,
    schools: SchoolDirectory,
    settings: Optional[Settings] = None,
    listener: Optional[MessageListener] = None,
) -> FastAPI:
    """Wire store, registry, engine and messengers from ``settings.yaml``."""
    settings = settings or get_settings()
    db_cfg = settings.database
    store = create_store(db_cfg)
    registry = build_registry(auth, crm, ai, schools, settings.engine)
    engine = WorkflowEngine(registry, store, settings.engine)
    messengers, clients = create_messengers(settings)
    telegram_client = next((c for c in clients if isinstance(c, TelegramClient)), None)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if db_cfg.store_backend == "sql":
            await init_db(db_cfg.url, echo=settings.debug)
        logger.info("guidebot_started",
                    app_name=settings.app_name,
                    store_backend=db_cfg.store_backend,
                    platforms=sorted(messengers))
        yield
        for client in clients:
            await client.close()
        if db_cfg.store_backend == "sql":
            await close_db()
        logger.info("guidebot_stopped")

    return create_app(
        engine,
        messengers,
        listener=listener,
        verify_token=settings.channel(Platform.WHATSAPP.value).credentials.get("verify_token", ""),
        telegram_client=telegram_client,
        lifespan=lifespan,
    )
