"""Stripe webhook reconciler — turn provider events into grant/revoke calls.

Each handled event type has one resolution function that extracts the facts
it needs with explicit field precedence, and one handler that acts on them.
Stripe may deliver events twice and in any order; the ledger merge and the
grant fingerprint make the handlers safe to repeat.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from botvip.billing.access import AccessEngine, GrantFacts
from botvip.billing.plans import get_plan_by_price_id
from botvip.interfaces import PaymentProvider
from botvip.notifications import OpsNotifier
from botvip.services.ledger import ProcessedEventStore, SubscriberLedger

logger = logging.getLogger(__name__)

REVOKING_STATUSES = frozenset({"canceled", "unpaid", "incomplete_expired"})
GRANTING_STATUSES = frozenset({"active", "trialing"})

# Outcomes reported back to the HTTP layer
PROCESSED = "processed"
IGNORED = "ignored"
DUPLICATE = "duplicate"
UNRESOLVED = "unresolved"
FAILED = "failed"


def _field(obj: Any, name: str) -> Any:
    """Read a field from a Stripe object, a plain dict or a namespace."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _ref(value: Any) -> str | None:
    """Stripe expands some references into objects; keep just the id."""
    if value is None or isinstance(value, str):
        return value or None
    return _field(value, "id")


def _metadata_value(obj: Any, key: str) -> str | None:
    value = _field(_field(obj, "metadata"), key)
    return str(value) if value else None


def _get_first_item(stripe_sub: Any) -> Any:
    """Get the first subscription item, reading ``items`` as a key to avoid
    collision with Python dict .items() on Stripe objects.
    """
    sub_items = _field(stripe_sub, "items")
    data = _field(sub_items, "data") if sub_items is not None else None
    if data:
        return data[0]
    return None


def get_price_id_from_subscription(stripe_sub: Any) -> str | None:
    """Extract the first price ID from a Stripe subscription's items."""
    item = _get_first_item(stripe_sub)
    return _ref(_field(item, "price")) if item is not None else None


def get_period_end(stripe_sub: Any) -> int | None:
    """Current period end of a subscription, in epoch seconds.

    In Stripe API 2025-08-27 (basil), current_period_end moved from the
    subscription object to the subscription item; accept both.
    """
    period_end = _field(stripe_sub, "current_period_end")
    if period_end is None:
        period_end = _field(_get_first_item(stripe_sub), "current_period_end")
    return int(period_end) if period_end is not None else None


def _invoice_subscription_details(invoice: Any) -> Any:
    details = _field(invoice, "subscription_details")
    if details is None:
        details = _field(_field(invoice, "parent"), "subscription_details")
    return details


@dataclass(frozen=True)
class CheckoutFacts:
    user_id: str | None
    customer_ref: str | None
    subscription_ref: str | None
    plan_ref: str | None
    session_id: str | None
    mode: str | None


@dataclass(frozen=True)
class InvoiceFacts:
    user_id: str | None
    customer_ref: str | None
    subscription_ref: str | None
    invoice_id: str | None


@dataclass(frozen=True)
class SubscriptionFacts:
    user_id: str | None
    customer_ref: str | None
    subscription_ref: str | None
    status: str | None
    plan_ref: str | None
    period_end_epoch: int | None


def resolve_checkout_session(session: Any) -> CheckoutFacts:
    """checkout.session.completed: user from client_reference_id, else metadata."""
    user_id = _field(session, "client_reference_id") or _metadata_value(session, "telegram_id")
    return CheckoutFacts(
        user_id=str(user_id) if user_id else None,
        customer_ref=_ref(_field(session, "customer")),
        subscription_ref=_ref(_field(session, "subscription")),
        plan_ref=_metadata_value(session, "price_id"),
        session_id=_field(session, "id"),
        mode=_field(session, "mode"),
    )


def resolve_invoice(invoice: Any) -> InvoiceFacts:
    """invoice.*: user from invoice metadata, else the subscription details metadata."""
    details = _invoice_subscription_details(invoice)
    subscription_ref = _ref(_field(invoice, "subscription")) or _ref(_field(details, "subscription"))
    user_id = _metadata_value(invoice, "telegram_id") or _metadata_value(details, "telegram_id")
    return InvoiceFacts(
        user_id=user_id,
        customer_ref=_ref(_field(invoice, "customer")),
        subscription_ref=subscription_ref,
        invoice_id=_field(invoice, "id"),
    )


def resolve_subscription(stripe_sub: Any) -> SubscriptionFacts:
    """customer.subscription.*: user from subscription metadata."""
    return SubscriptionFacts(
        user_id=_metadata_value(stripe_sub, "telegram_id"),
        customer_ref=_ref(_field(stripe_sub, "customer")),
        subscription_ref=_field(stripe_sub, "id"),
        status=_field(stripe_sub, "status"),
        plan_ref=get_price_id_from_subscription(stripe_sub) or _metadata_value(stripe_sub, "price_id"),
        period_end_epoch=get_period_end(stripe_sub),
    )


class WebhookReconciler:
    """Verify, dedupe and dispatch Stripe events."""

    def __init__(
        self,
        provider: PaymentProvider,
        ledger: SubscriberLedger,
        events: ProcessedEventStore,
        access: AccessEngine,
        ops: OpsNotifier,
    ) -> None:
        self._provider = provider
        self._ledger = ledger
        self._events = events
        self._access = access
        self._ops = ops
        self._handlers: dict[str, Callable[[Any, str], Awaitable[str]]] = {
            "checkout.session.completed": self.handle_checkout_session_completed,
            "invoice.payment_succeeded": self.handle_invoice_paid,
            "invoice.paid": self.handle_invoice_paid,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "customer.subscription.updated": self.handle_subscription_updated,
        }

    def verify_event(self, payload: bytes, sig_header: str) -> Any:
        """Verify the signature over the raw bytes and parse the event.

        Raises ``stripe.SignatureVerificationError`` or ``ValueError``.
        """
        return self._provider.construct_event(payload, sig_header)

    async def process(self, event: Any) -> str:
        """Handle one verified event. Never raises; the caller always acks."""
        event_type = _field(event, "type")
        event_id = _field(event, "id")

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled webhook event type: %s (id=%s)", event_type, event_id)
            await self._ops.notify(f"ℹ️ Evento Stripe ignorado: {event_type} ({event_id})")
            return IGNORED

        claimed = False
        try:
            if event_id:
                if not await self._events.claim(event_id, event_type):
                    return DUPLICATE
                claimed = True
            logger.info("Processing webhook event: %s (id=%s)", event_type, event_id)
            return await handler(_field(_field(event, "data"), "object"), event_type)
        except Exception as e:
            # Acknowledged anyway: a 5xx would make Stripe redeliver for days.
            logger.exception("Error processing webhook event %s (%s)", event_id, event_type)
            if claimed:
                try:
                    await self._events.release(event_id)
                except Exception:
                    logger.exception("Could not release claim on event %s", event_id)
            await self._ops.notify(
                f"🚨 Falha ao processar evento {event_type} ({event_id}): {e}. "
                "Reconciliação manual necessária."
            )
            return FAILED

    async def _unresolved(self, event_type: str, **refs: Any) -> str:
        details = " ".join(f"{k}={v}" for k, v in refs.items())
        logger.warning("Could not resolve Telegram user for %s: %s", event_type, details)
        await self._ops.notify(f"⚠️ Usuário não identificado em {event_type}: {details}")
        return UNRESOLVED

    async def _subscription_ended(self, event_type: str, subscription_ref: str, status: str) -> str:
        """A grant arrived for a subscription Stripe already ended; keep it revoked."""
        logger.warning(
            "Skipping grant from %s: subscription %s is %s", event_type, subscription_ref, status
        )
        await self._ops.notify(
            f"ℹ️ {event_type} ignorado: assinatura {subscription_ref} já está {status}"
        )
        return IGNORED

    async def handle_checkout_session_completed(
        self, session: Any, event_type: str = "checkout.session.completed"
    ) -> str:
        """Grant access for a completed checkout."""
        facts = resolve_checkout_session(session)
        if facts.user_id is None:
            return await self._unresolved(
                event_type,
                session=facts.session_id,
                customer=facts.customer_ref,
                subscription=facts.subscription_ref,
            )

        plan_ref = facts.plan_ref
        period_end = None
        if facts.subscription_ref:
            stripe_sub = await self._provider.retrieve_subscription(facts.subscription_ref)
            status = _field(stripe_sub, "status")
            if status in REVOKING_STATUSES:
                return await self._subscription_ended(event_type, facts.subscription_ref, status)
            period_end = get_period_end(stripe_sub)
            plan_ref = plan_ref or get_price_id_from_subscription(stripe_sub)

        plan = get_plan_by_price_id(plan_ref)
        if plan_ref and plan is None:
            logger.warning("Unknown price ID %s in checkout %s", plan_ref, facts.session_id)
        lifetime = facts.subscription_ref is None and (
            facts.mode == "payment" or (plan is not None and plan.mode == "payment")
        )

        await self._access.grant_access(
            facts.user_id,
            GrantFacts(
                payment_customer_ref=facts.customer_ref,
                subscription_ref=facts.subscription_ref,
                plan_ref=plan_ref,
                period_end_epoch=period_end,
                lifetime=lifetime,
            ),
        )
        logger.info(
            "Checkout completed: user %s subscription %s plan %s",
            facts.user_id,
            facts.subscription_ref,
            plan.display_name if plan else plan_ref,
        )
        return PROCESSED

    async def handle_invoice_paid(self, invoice: Any, event_type: str = "invoice.paid") -> str:
        """Grant (or extend) access for a paid subscription invoice."""
        facts = resolve_invoice(invoice)
        if not facts.subscription_ref:
            logger.info("Invoice %s has no subscription (one-time), skipping", facts.invoice_id)
            return IGNORED

        stripe_sub = await self._provider.retrieve_subscription(facts.subscription_ref)
        sub_facts = resolve_subscription(stripe_sub)
        if sub_facts.status in REVOKING_STATUSES:
            return await self._subscription_ended(event_type, facts.subscription_ref, sub_facts.status)
        customer_ref = sub_facts.customer_ref or facts.customer_ref

        user_id = (
            facts.user_id
            or sub_facts.user_id
            or await self._ledger.find_by_payment_customer_ref(customer_ref)
            or await self._ledger.find_by_subscription_ref(facts.subscription_ref)
        )
        if user_id is None:
            return await self._unresolved(
                event_type,
                invoice=facts.invoice_id,
                customer=customer_ref,
                subscription=facts.subscription_ref,
            )

        await self._access.grant_access(
            user_id,
            GrantFacts(
                payment_customer_ref=customer_ref,
                subscription_ref=facts.subscription_ref,
                plan_ref=sub_facts.plan_ref,
                period_end_epoch=sub_facts.period_end_epoch,
            ),
        )
        logger.info("Invoice paid: subscription %s confirmed for user %s", facts.subscription_ref, user_id)
        return PROCESSED

    async def handle_invoice_payment_failed(
        self, invoice: Any, event_type: str = "invoice.payment_failed"
    ) -> str:
        """Tell the user the charge failed. Access is only revoked on deletion."""
        facts = resolve_invoice(invoice)
        user_id = (
            facts.user_id
            or await self._ledger.find_by_payment_customer_ref(facts.customer_ref)
            or await self._ledger.find_by_subscription_ref(facts.subscription_ref)
        )
        if user_id is None:
            return await self._unresolved(
                event_type,
                invoice=facts.invoice_id,
                customer=facts.customer_ref,
                subscription=facts.subscription_ref,
            )

        await self._access.notify_payment_failed(user_id)
        await self._ops.notify(
            f"💳 Pagamento falhou: user={user_id} customer={facts.customer_ref} invoice={facts.invoice_id}"
        )
        logger.info("Payment failed for user %s (subscription %s)", user_id, facts.subscription_ref)
        return PROCESSED

    async def handle_subscription_deleted(
        self, stripe_sub: Any, event_type: str = "customer.subscription.deleted"
    ) -> str:
        """Revoke access when the subscription ends."""
        facts = resolve_subscription(stripe_sub)
        user_id = await self._resolve_subscription_user(facts)
        if user_id is None:
            return await self._unresolved(
                event_type,
                customer=facts.customer_ref,
                subscription=facts.subscription_ref,
            )

        revoked = await self._access.revoke_access(
            user_id, subscription_ref=facts.subscription_ref, reason="subscription deleted"
        )
        logger.info("Subscription deleted: %s (user %s, revoked=%s)", facts.subscription_ref, user_id, revoked)
        return PROCESSED

    async def handle_subscription_updated(
        self, stripe_sub: Any, event_type: str = "customer.subscription.updated"
    ) -> str:
        """Follow status changes: terminal statuses revoke, active ones extend."""
        facts = resolve_subscription(stripe_sub)
        if facts.status not in REVOKING_STATUSES and facts.status not in GRANTING_STATUSES:
            logger.info("Subscription %s now %s; no access change", facts.subscription_ref, facts.status)
            return IGNORED

        user_id = await self._resolve_subscription_user(facts)
        if user_id is None:
            return await self._unresolved(
                event_type,
                customer=facts.customer_ref,
                subscription=facts.subscription_ref,
                status=facts.status,
            )

        if facts.status in REVOKING_STATUSES:
            await self._access.revoke_access(
                user_id, subscription_ref=facts.subscription_ref, reason=f"status {facts.status}"
            )
        else:
            await self._access.grant_access(
                user_id,
                GrantFacts(
                    payment_customer_ref=facts.customer_ref,
                    subscription_ref=facts.subscription_ref,
                    plan_ref=facts.plan_ref,
                    period_end_epoch=facts.period_end_epoch,
                ),
            )
        logger.info("Subscription updated: %s -> %s (user %s)", facts.subscription_ref, facts.status, user_id)
        return PROCESSED

    async def _resolve_subscription_user(self, facts: SubscriptionFacts) -> str | None:
        return (
            facts.user_id
            or await self._ledger.find_by_payment_customer_ref(facts.customer_ref)
            or await self._ledger.find_by_subscription_ref(facts.subscription_ref)
        )
