"""Checkout session factory — binds a Stripe Checkout Session to a Telegram user."""

import logging
from dataclasses import dataclass

import stripe

from botvip.errors import UpstreamUnavailable
from botvip.interfaces import PaymentProvider

logger = logging.getLogger(__name__)

VALID_MODES = ("subscription", "payment")


@dataclass(frozen=True)
class CheckoutSession:
    """What the chat front-end needs to show a pay button."""

    session_id: str
    url: str


class CheckoutSessionFactory:
    """Create Stripe Checkout sessions carrying the buyer's Telegram id.

    The user id goes into ``client_reference_id`` and again into
    ``metadata.telegram_id``; the price goes into ``metadata.price_id``.
    Subscription checkouts also copy the metadata onto the subscription so
    invoice and subscription events can be resolved back to the user.
    """

    def __init__(self, provider: PaymentProvider, success_url: str, cancel_url: str) -> None:
        self._provider = provider
        self._success_url = success_url
        self._cancel_url = cancel_url

    async def create_checkout_session(
        self, user_id: str, plan_ref: str, mode: str = "subscription"
    ) -> CheckoutSession:
        if mode not in VALID_MODES:
            raise ValueError(f"Unsupported checkout mode: {mode}")

        metadata = {"telegram_id": str(user_id), "price_id": plan_ref}
        params = {
            "mode": mode,
            "line_items": [{"price": plan_ref, "quantity": 1}],
            "client_reference_id": str(user_id),
            "metadata": metadata,
            "success_url": self._success_url,
            "cancel_url": self._cancel_url,
        }
        if mode == "subscription":
            params["subscription_data"] = {"metadata": dict(metadata)}
        else:
            params["payment_intent_data"] = {"metadata": dict(metadata)}

        try:
            session = await self._provider.create_checkout_session(params)
        except stripe.StripeError as e:
            logger.error("Stripe checkout error for user %s (price %s): %s", user_id, plan_ref, e)
            raise UpstreamUnavailable(f"Stripe checkout failed: {e}") from e

        logger.info("Checkout session %s created for user %s", session.id, user_id)
        return CheckoutSession(session_id=session.id, url=session.url)
