"""Telegram webhook endpoint — push delivery of bot updates."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import ValidationError

from botvip.api.deps import get_bot_handlers, get_telegram_webhook_secret
from botvip.schemas.billing import WebhookAck
from botvip.schemas.telegram import Update
from botvip.telegram.handlers import BotHandlers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook", response_model=WebhookAck)
async def telegram_webhook(
    payload: dict,
    handlers: BotHandlers = Depends(get_bot_handlers),
    expected_secret: str = Depends(get_telegram_webhook_secret),
    secret_token: str | None = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
) -> WebhookAck:
    """Receive one update pushed by Telegram."""
    if expected_secret and not hmac.compare_digest(secret_token or "", expected_secret):
        logger.warning("Rejected Telegram update with bad secret token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid secret token")

    try:
        update = Update.model_validate(payload)
    except ValidationError:
        logger.warning("Ignoring malformed Telegram update")
        return WebhookAck(status="ignored")

    try:
        await handlers.handle_update(update)
    except Exception:
        # Telegram retries non-2xx responses; one bad update must not loop forever.
        logger.exception("Error handling Telegram update %s", update.update_id)
        return WebhookAck(status="failed")
    return WebhookAck(status="processed")
