"""Tests for POST /webhook (Stripe events, signed over the raw body)."""

import json

import pytest
from httpx import AsyncClient

from botvip.services.ledger import SubscriberLedger
from fakes import OPS_CHAT_ID, FakeMessenger, FakePaymentProvider, make_event, make_stripe_sub, sign_payload

pytestmark = pytest.mark.asyncio


def _checkout_event(event_id: str = "evt_checkout_1") -> bytes:
    session = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "client_reference_id": "555",
        "customer": "cus_1",
        "subscription": "sub_1",
        "metadata": {"telegram_id": "555", "price_id": "price_weekly"},
    }
    return json.dumps(make_event("checkout.session.completed", session, event_id=event_id)).encode()


async def _post(client: AsyncClient, payload: bytes, signature: str | None = None):
    headers = {"content-type": "application/json"}
    headers["stripe-signature"] = signature if signature is not None else sign_payload(payload)
    return await client.post("/webhook", content=payload, headers=headers)


class TestStripeWebhook:

    async def test_signed_checkout_grants_access(
        self,
        client: AsyncClient,
        payments: FakePaymentProvider,
        ledger: SubscriberLedger,
        messenger: FakeMessenger,
    ) -> None:
        payments.subscriptions["sub_1"] = make_stripe_sub(period_end=1_800_000_000)

        response = await _post(client, _checkout_event())

        assert response.status_code == 200
        assert response.json() == {"status": "processed"}
        record = await ledger.get("555")
        assert record.active_subscription_ref == "sub_1"
        assert record.period_end_epoch == 1_800_000_000
        assert len(messenger.invites) == 1

    async def test_redelivery_is_acknowledged_without_effect(
        self, client: AsyncClient, payments: FakePaymentProvider, messenger: FakeMessenger
    ) -> None:
        payments.subscriptions["sub_1"] = make_stripe_sub(period_end=1_800_000_000)
        payload = _checkout_event("evt_twice")

        await _post(client, payload)
        response = await _post(client, payload)

        assert response.status_code == 200
        assert response.json() == {"status": "duplicate"}
        assert len(messenger.invites) == 1

    async def test_bad_signature_is_rejected(
        self, client: AsyncClient, ledger: SubscriberLedger, messenger: FakeMessenger
    ) -> None:
        payload = _checkout_event()
        response = await _post(client, payload, signature=sign_payload(payload, secret="whsec_wrong"))

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Webhook Error:")
        assert await ledger.get("555") is None
        assert messenger.sent == []

    async def test_missing_signature_is_rejected(self, client: AsyncClient, ledger: SubscriberLedger) -> None:
        response = await _post(client, _checkout_event(), signature="")
        assert response.status_code == 400
        assert await ledger.get("555") is None

    async def test_malformed_body_is_rejected(self, client: AsyncClient) -> None:
        payload = b"{not json"
        response = await _post(client, payload)
        assert response.status_code == 400

    async def test_unresolvable_payment_failed_is_acknowledged(
        self, client: AsyncClient, messenger: FakeMessenger
    ) -> None:
        invoice = {"id": "in_1", "object": "invoice", "customer": "cus_nobody", "metadata": {}}
        payload = json.dumps(make_event("invoice.payment_failed", invoice)).encode()

        response = await _post(client, payload)

        assert response.status_code == 200
        assert response.json() == {"status": "unresolved"}
        assert len(messenger.messages_to(OPS_CHAT_ID)) == 1

    async def test_handler_failure_still_returns_200(
        self, client: AsyncClient, messenger: FakeMessenger
    ) -> None:
        # no canned subscription for sub_1, so the handler raises
        response = await _post(client, _checkout_event("evt_broken"))

        assert response.status_code == 200
        assert response.json() == {"status": "failed"}
        assert any("evt_broken" in text for text in messenger.messages_to(OPS_CHAT_ID))

    async def test_unhandled_event_type(self, client: AsyncClient) -> None:
        payload = json.dumps(make_event("customer.created", {"id": "cus_1", "object": "customer"})).encode()
        response = await _post(client, payload)
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}


class TestHealth:

    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
