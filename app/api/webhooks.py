"""Instagram webhook endpoints"""
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Callable, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from app.config import settings
from app.clients import InstagramClient, OpenAIReplyGenerator
from app.db.connection import get_session_maker
from app.domain.events import InboundEvent
from app.repositories.automation_repository import AutomationRepository
from app.rules.event_router import WebhookEventRouter, handle_verification, parse_envelope
from app.rules.reply_dispatcher import ReplyDispatcher
import logging
import httpx
import hmac
import hashlib
import json

logger = logging.getLogger(__name__)

router = APIRouter()

EventRouterOpener = Callable[[], AsyncContextManager[WebhookEventRouter]]


class WebhookAck(BaseModel):
    """Acknowledgement returned for every accepted delivery"""
    status: str = "ok"
    events_received: int = Field(0, description="Comment and message events queued for dispatch")


@asynccontextmanager
async def open_event_router():
    """
    Build the automation pipeline with its own database session and HTTP client.

    Background dispatch runs after the request-scoped session is closed, so
    it cannot reuse request resources.
    """
    session_maker = get_session_maker()
    async with session_maker() as db:
        async with httpx.AsyncClient() as http_client:
            dispatcher = ReplyDispatcher(
                sender=InstagramClient(
                    http_client=http_client,
                    settings=settings,
                    logger_instance=logger
                ),
                generator=OpenAIReplyGenerator(settings),
            )
            yield WebhookEventRouter.build(
                AutomationRepository(db),
                dispatcher,
                dedupe_events=settings.dedupe_events,
                record_failures=settings.record_failed_replies,
            )


def get_event_router_opener() -> EventRouterOpener:
    """Dependency providing the pipeline factory (overridden in tests)."""
    return open_event_router


async def process_delivery(
    events: List[InboundEvent],
    items_skipped: int,
    opener: EventRouterOpener
) -> None:
    """
    Run decoded events through the pipeline.

    Safe to use as a background task - errors are logged, never raised.
    """
    try:
        async with opener() as event_router:
            await event_router.handle_events(events, items_skipped=items_skipped)
    except Exception as e:
        logger.error(f"❌ Error processing webhook delivery: {e}", exc_info=True)


@router.get("/instagram")
async def verify_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge")
):
    """
    Webhook verification endpoint.

    Instagram sends a GET request with verification parameters; the
    challenge is echoed back as plain text when the verify token matches.
    """
    logger.info(f"Webhook verification request received - mode: {hub_mode}")

    challenge = handle_verification(hub_mode, hub_verify_token, hub_challenge, settings.webhook_verify_token)
    if challenge is None:
        logger.warning("❌ Webhook verification failed - invalid mode or token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )

    logger.info("✅ Webhook verified")
    return PlainTextResponse(challenge)


@router.post("/instagram", response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    opener: EventRouterOpener = Depends(get_event_router_opener)
):
    """
    Webhook endpoint for comment and direct-message notifications.

    Always answers 200 once the request is authentic: a non-2xx response
    makes Instagram redeliver the batch. Automations run in the background
    after the response is sent.
    """
    raw_body = await request.body()

    if settings.instagram_app_secret:
        signature_header = request.headers.get("X-Hub-Signature-256", "")
        if not _validate_webhook_signature(raw_body, signature_header):
            logger.warning("❌ Invalid webhook signature - potential security threat")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid signature"
            )

    try:
        body = json.loads(raw_body)
        events, items_skipped = parse_envelope(body)
    except Exception as e:
        logger.warning(f"Could not decode webhook payload: {e}")
        return WebhookAck(events_received=0)

    entry_count = len(body.get("entry") or []) if isinstance(body, dict) else 0
    logger.info(
        f"📨 Webhook received - entries: {entry_count}, events: {len(events)}, skipped items: {items_skipped}"
    )

    if events:
        background_tasks.add_task(process_delivery, events, items_skipped, opener)

    return WebhookAck(events_received=len(events))


def _validate_webhook_signature(payload: bytes, signature_header: str) -> bool:
    """
    Validate the X-Hub-Signature-256 header ("sha256=<hex>") of a delivery.

    Uses constant-time comparison; a missing or malformed header fails.
    """
    if not settings.instagram_app_secret:
        logger.error("INSTAGRAM_APP_SECRET not configured - cannot validate webhook signature")
        return False

    if not signature_header or not signature_header.startswith("sha256="):
        logger.warning("Missing or malformed signature header")
        expected_signature = "invalid"  # Will fail compare_digest below
    else:
        expected_signature = signature_header[7:]  # len("sha256=") = 7

    computed_signature = hmac.new(
        settings.instagram_app_secret.encode('utf-8'),
        payload,
        hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(computed_signature, expected_signature)
