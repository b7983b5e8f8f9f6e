"""
Webhook for the Meta WhatsApp Cloud API.

Only button replies matter to the engine: each one becomes a ReplyEvent for
the conditional step activator. Everything else is acknowledged and ignored.
"""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from leadflow.core.config import settings
from leadflow.core.timezone import utc_now
from leadflow.repositories.deps import get_db
from leadflow.repositories.executions import ExecutionRepository
from leadflow.repositories.leads import LeadRepository
from leadflow.services.automations.conditional import ConditionalStepActivator
from leadflow.services.automations.reply_queue import ReplyQueue
from leadflow.services.automations.types import Channel, ReplyEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/meta", tags=["meta-webhook"])


def get_reply_queue(request: Request) -> Optional[ReplyQueue]:
    """Queue started by the app lifespan, if any."""
    return getattr(request.app.state, "reply_queue", None)


@router.get("")
@router.get("/")
async def verify_webhook(request: Request):
    """
    Webhook verification challenge.

    Meta sends GET with hub.mode, hub.verify_token, hub.challenge.
    """
    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token")
    challenge = request.query_params.get("hub.challenge")

    if (
        mode == "subscribe"
        and settings.META_WEBHOOK_VERIFY_TOKEN
        and token == settings.META_WEBHOOK_VERIFY_TOKEN
    ):
        logger.info("[WebhookMeta] Webhook verified")
        return PlainTextResponse(challenge or "")

    logger.warning(f"[WebhookMeta] Verification failed: mode={mode}")
    return PlainTextResponse("Verification failed", status_code=403)


@router.post("")
@router.post("/")
async def webhook_meta(
    request: Request,
    db: Any = Depends(get_db),
    queue: Optional[ReplyQueue] = Depends(get_reply_queue),
):
    """
    Receive Meta webhooks.

    Button replies (`button`, `interactive.button_reply`, `interactive.list_reply`)
    are resolved to a lead and handed to the reply queue.
    """
    body = await request.body()
    if not validate_signature(request, body):
        logger.warning("[WebhookMeta] Invalid signature")
        return PlainTextResponse("Invalid signature", status_code=403)

    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.error(f"[WebhookMeta] Invalid JSON: {e}")
        # 200 so Meta does not retry
        return {"status": "ok"}

    if payload.get("object") != "whatsapp_business_account":
        return {"status": "ignored", "reason": "not_whatsapp"}

    replies = extract_button_replies(payload)
    accepted = 0
    for message in replies:
        event = await _build_event(db, message)
        if event is None:
            continue

        if queue is not None:
            if queue.submit(event):
                accepted += 1
        else:
            await ConditionalStepActivator(db).handle_reply(event)
            accepted += 1

    return {"status": "ok", "replies": len(replies), "accepted": accepted}


def validate_signature(request: Request, body: bytes) -> bool:
    """
    Check X-Hub-Signature-256 (HMAC SHA256 of the raw body).

    Returns:
        True when valid, or when META_APP_SECRET is not configured
    """
    app_secret = settings.META_APP_SECRET
    if not app_secret:
        logger.warning(
            "[WebhookMeta] META_APP_SECRET not configured, signature validation disabled"
        )
        return True

    signature_header = request.headers.get("X-Hub-Signature-256", "")
    if not signature_header.startswith("sha256="):
        return False

    expected_signature = signature_header[7:]
    computed = hmac.new(
        app_secret.encode("utf-8"),
        body,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(computed, expected_signature)


def button_text(message: dict) -> Optional[str]:
    """Text of a button reply, or None for any other message."""
    msg_type = message.get("type")
    if msg_type == "button":
        button = message.get("button") or {}
        return button.get("text") or button.get("payload")
    if msg_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("title") or reply.get("id")
    return None


def extract_button_replies(payload: dict) -> List[dict]:
    """
    Button replies of a webhook payload.

    Returns:
        [{"from", "text", "message_id", "context_id", "timestamp"}]
    """
    replies = []
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            if change.get("field") != "messages":
                continue
            for message in change.get("value", {}).get("messages", []):
                text = button_text(message)
                if not text:
                    continue
                replies.append({
                    "from": message.get("from", ""),
                    "text": text,
                    "message_id": message.get("id"),
                    "context_id": (message.get("context") or {}).get("id"),
                    "timestamp": message.get("timestamp"),
                })
    return replies


def _message_time(timestamp: Optional[str]) -> datetime:
    """Meta timestamps are unix seconds as strings."""
    try:
        return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    except (TypeError, ValueError):
        return utc_now()


async def _build_event(db: Any, reply: dict) -> Optional[ReplyEvent]:
    lead = await LeadRepository(db).find_by_phone(reply["from"])
    if lead is None:
        logger.info("[WebhookMeta] Button reply from unknown number, ignored")
        return None

    # The replied message identifies the step when we sent it
    step_id = None
    if reply.get("context_id"):
        executions = ExecutionRepository(db, Channel.WHATSAPP)
        replied = await executions.get_by_provider_message_id(reply["context_id"])
        if replied is not None and replied.lead_id == lead.id:
            step_id = replied.step_id

    logger.info(f"[WebhookMeta] Button reply '{reply['text']}' from lead {lead.id}")
    return ReplyEvent(
        lead_id=lead.id,
        payload=reply["text"],
        occurred_at=_message_time(reply.get("timestamp")),
        step_id=step_id,
        message_id=reply.get("message_id"),
        channel=Channel.WHATSAPP,
    )
