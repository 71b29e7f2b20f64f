"""Stripe webhook endpoint — receives and processes Stripe events."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from botvip.api.deps import get_reconciler
from botvip.billing.webhooks import WebhookReconciler
from botvip.schemas.billing import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
) -> WebhookAck:
    """Receive and process Stripe webhook events.

    Processing errors after verification are still acknowledged with 200:
    the failure is logged and sent to the ops chat for manual remediation
    instead of triggering Stripe's redelivery schedule.
    """
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    # 2. Verify signature
    try:
        event = reconciler.verify_event(payload, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {e}",
        ) from e
    except ValueError as e:
        logger.warning("Invalid webhook payload: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {e}",
        ) from e

    # 3. Dispatch (never raises)
    outcome = await reconciler.process(event)
    return WebhookAck(status=outcome)
