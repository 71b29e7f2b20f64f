"""Tests for service wiring in ``build_services``."""

import asyncio

import pytest

from botvip.billing.webhooks import PROCESSED
from botvip.config import Settings
from botvip.runtime import build_services
from fakes import CHANNEL_ID, OPS_CHAT_ID, FakeMessenger, FakePaymentProvider, make_event, make_stripe_sub


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        telegram_bot_token="123:ABC",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret="whsec_test_secret",
        vip_channel_id=CHANNEL_ID,
        logs_chat_id=OPS_CHAT_ID,
        followup_first_delay_seconds=0.01,
        followup_max_sends=1,
    )


@pytest.fixture
def services(settings, session_factory, messenger, payments):
    return build_services(settings, session_factory, telegram=messenger, payments=payments)


class TestBuildServices:

    @pytest.mark.asyncio
    async def test_checkout_event_flows_to_invite(
        self, services, payments: FakePaymentProvider, messenger: FakeMessenger
    ):
        payments.subscriptions["sub_1"] = make_stripe_sub(period_end=4_000_000_000)
        session = {
            "id": "cs_1",
            "client_reference_id": "555",
            "customer": "cus_1",
            "subscription": "sub_1",
            "metadata": {"price_id": "price_weekly"},
        }

        outcome = await services.reconciler.process(make_event("checkout.session.completed", session))

        assert outcome == PROCESSED
        assert await services.ledger.is_entitled("555") is True
        assert len(messenger.invites) == 1
        assert any("555" in text for text in messenger.messages_to(OPS_CHAT_ID))
        await services.close()

    @pytest.mark.asyncio
    async def test_followup_nudge_carries_checkout_link(
        self, services, payments: FakePaymentProvider, messenger: FakeMessenger, configured_plans
    ):
        assert await services.scheduler.start("555") is True
        chain = services.scheduler.get("555")
        await asyncio.wait_for(chain.task, 1.0)

        assert payments.checkout_params[0]["line_items"][0]["price"] == "price_weekly"
        _, _, markup = messenger.sent[0]
        assert markup["inline_keyboard"][0][0]["url"] == "https://checkout.stripe.com/c/pay/cs_test_1"
        await services.close()

    @pytest.mark.asyncio
    async def test_close_cancels_chains_and_closes_transport(self, services, messenger: FakeMessenger):
        await services.scheduler.start("555")

        await services.close()

        assert services.scheduler.active_users() == []
        assert messenger.sent == []
        assert messenger.closed is True
