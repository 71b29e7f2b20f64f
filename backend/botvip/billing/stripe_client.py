"""Async Stripe API wrapper for BOTVIP."""

import json
import logging
from typing import Any

import stripe
from stripe import StripeClient

logger = logging.getLogger(__name__)


def get_stripe_client(secret_key: str) -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        secret_key,
        http_client=stripe.HTTPXClient(),
    )


class StripeGateway:
    """Payment provider backed by Stripe.

    ``construct_event`` verifies the ``Stripe-Signature`` header over the
    raw request bytes. Without a webhook secret the payload is parsed as-is
    and a warning is logged for every event.
    """

    def __init__(self, secret_key: str, webhook_secret: str = "") -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._client = get_stripe_client(secret_key)
        if not webhook_secret:
            logger.warning(
                "STRIPE_WEBHOOK_SECRET is not configured — webhook events will NOT be "
                "signature-verified. Anyone who can reach /webhook can grant VIP access."
            )

    @property
    def verifies_signatures(self) -> bool:
        return bool(self._webhook_secret)

    async def create_checkout_session(self, params: dict[str, Any]) -> stripe.checkout.Session:
        """Create a Stripe Checkout Session."""
        logger.info(
            "Creating checkout session (mode=%s) for reference %s",
            params.get("mode"),
            params.get("client_reference_id"),
        )
        return await self._client.v1.checkout.sessions.create_async(params=params)

    async def retrieve_subscription(self, subscription_id: str) -> stripe.Subscription:
        """Retrieve a Stripe subscription by ID."""
        return await self._client.v1.subscriptions.retrieve_async(subscription_id)

    def construct_event(self, payload: bytes, sig_header: str) -> stripe.Event:
        """Verify and construct a Stripe webhook event (synchronous)."""
        if self._webhook_secret:
            return self._client.construct_event(payload, sig_header, self._webhook_secret)

        logger.warning("Accepting UNVERIFIED Stripe webhook payload (no signing secret)")
        try:
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid payload: {e}") from e
        if not isinstance(data, dict) or "type" not in data:
            raise ValueError("Invalid payload: not a Stripe event")
        return stripe.Event.construct_from(data, self._secret_key)
