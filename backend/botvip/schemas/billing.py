"""Pydantic v2 response schemas for the webhook endpoints."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe or Telegram.

    ``status`` is one of processed, ignored, duplicate, unresolved, failed.
    Every value is sent with HTTP 200 so the sender does not redeliver.
    """

    status: str
