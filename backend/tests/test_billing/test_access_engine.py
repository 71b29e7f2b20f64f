"""Tests for the access grant/revoke engine."""

import asyncio

import pytest

from botvip import messages
from botvip.billing.access import AccessEngine, GrantFacts, grant_fingerprint
from botvip.notifications import OpsNotifier
from botvip.services.followup import FollowUpScheduler
from botvip.services.ledger import SubscriberLedger, SubscriberRecord
from fakes import CHANNEL_ID, OPS_CHAT_ID, FakeMessenger

FACTS = GrantFacts(
    payment_customer_ref="cus_1",
    subscription_ref="sub_1",
    plan_ref="price_weekly",
    period_end_epoch=1_800_000_000,
)


class TestGrantAccess:
    """grant_access: ledger first, then exactly one user-visible outcome."""

    @pytest.mark.asyncio
    async def test_grant_issues_one_invite(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        result = await access.grant_access("555", FACTS)

        record = await ledger.get("555")
        assert record.active_subscription_ref == "sub_1"
        assert record.payment_customer_ref == "cus_1"
        assert record.plan_ref == "price_weekly"
        assert record.period_end_epoch == 1_800_000_000
        assert record.grant_fingerprint == grant_fingerprint(record)

        assert result.delivered == "invite"
        assert messenger.invites == [result.invite_link]
        user_messages = messenger.messages_to("555")
        assert len(user_messages) == 1
        assert result.invite_link in user_messages[0]
        assert len(messenger.messages_to(OPS_CHAT_ID)) == 1

    @pytest.mark.asyncio
    async def test_repeated_grant_is_deduped(
        self, access: AccessEngine, messenger: FakeMessenger
    ):
        await access.grant_access("555", FACTS)
        second = await access.grant_access("555", FACTS)

        assert second.duplicate is True
        assert len(messenger.invites) == 1
        assert len(messenger.messages_to("555")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_grants_issue_one_invite(
        self, access: AccessEngine, messenger: FakeMessenger
    ):
        results = await asyncio.gather(*(access.grant_access("555", FACTS) for _ in range(4)))

        assert len(messenger.invites) == 1
        assert len(messenger.messages_to("555")) == 1
        assert sum(1 for r in results if r.duplicate) == 3

    @pytest.mark.asyncio
    async def test_older_period_end_does_not_regress_or_resend(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await access.grant_access("555", FACTS)
        stale = GrantFacts(subscription_ref="sub_1", period_end_epoch=1_750_000_000)
        result = await access.grant_access("555", stale)

        assert result.duplicate is True
        assert (await ledger.get("555")).period_end_epoch == 1_800_000_000
        assert len(messenger.messages_to("555")) == 1

    @pytest.mark.asyncio
    async def test_renewal_confirms_without_new_invite(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await access.grant_access("555", FACTS)
        renewed = GrantFacts(subscription_ref="sub_1", period_end_epoch=1_900_000_000)
        result = await access.grant_access("555", renewed)

        assert result.renewal is True
        assert len(messenger.invites) == 1
        assert (await ledger.get("555")).period_end_epoch == 1_900_000_000
        assert messenger.messages_to("555")[-1].startswith("🔁")

    @pytest.mark.asyncio
    async def test_invite_failure_sends_manual_notice(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        messenger.fail_invite = True
        result = await access.grant_access("555", FACTS)

        assert result.delivered == "manual"
        assert messenger.messages_to("555") == [messages.GRANT_MANUAL]
        assert await ledger.is_entitled("555") is True
        ops_messages = messenger.messages_to(OPS_CHAT_ID)
        assert any("manualmente" in text for text in ops_messages)

    @pytest.mark.asyncio
    async def test_no_channel_sends_plain_confirmation(
        self,
        ledger: SubscriberLedger,
        messenger: FakeMessenger,
        scheduler: FollowUpScheduler,
        ops: OpsNotifier,
    ):
        engine = AccessEngine(ledger, messenger, scheduler, ops, channel_id="")
        result = await engine.grant_access("555", FACTS)

        assert result.delivered == "confirmation"
        assert messenger.invites == []
        assert messenger.messages_to("555") == [messages.GRANT_NO_CHANNEL]

    @pytest.mark.asyncio
    async def test_grant_cancels_pending_followups(
        self, access: AccessEngine, scheduler: FollowUpScheduler
    ):
        await scheduler.start("555")
        assert scheduler.get("555") is not None

        await access.grant_access("555", FACTS)
        assert scheduler.get("555") is None

    @pytest.mark.asyncio
    async def test_ops_failure_does_not_fail_grant(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        messenger.blocked.add(OPS_CHAT_ID)
        result = await access.grant_access("555", FACTS)
        assert result.delivered == "invite"
        assert await ledger.get("555") is not None

    @pytest.mark.asyncio
    async def test_blocked_user_still_recorded(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        messenger.blocked.add("555")
        await access.grant_access("555", FACTS)
        assert await ledger.is_entitled("555") is True

    @pytest.mark.asyncio
    async def test_lifetime_grant_has_no_expiry(
        self, access: AccessEngine, ledger: SubscriberLedger, clock
    ):
        await access.grant_access("777", GrantFacts(payment_customer_ref="cus_7", plan_ref="price_life"))
        clock.now += 10 * 365 * 24 * 3600
        assert await ledger.is_entitled("777") is True


LIFETIME = GrantFacts(payment_customer_ref="cus_1", plan_ref="price_life", lifetime=True)


class TestLifetimeUpgrade:
    """A one-time purchase on top of a weekly or monthly subscription."""

    @pytest.mark.asyncio
    async def test_upgrade_while_subscribed_confirms_without_invite(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger, clock
    ):
        await access.grant_access("555", FACTS)
        result = await access.grant_access("555", LIFETIME)

        assert result.duplicate is False
        assert result.delivered == "lifetime"
        assert len(messenger.invites) == 1
        assert messenger.messages_to("555")[-1] == messages.LIFETIME_UPGRADE

        record = await ledger.get("555")
        assert record.lifetime is True
        assert record.period_end_epoch is None
        assert record.plan_ref == "price_life"
        clock.now = 1_900_000_000
        assert await ledger.is_entitled("555") is True

    @pytest.mark.asyncio
    async def test_lapsed_subscriber_buying_lifetime_gets_invite(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger, clock
    ):
        await access.grant_access(
            "555", GrantFacts(subscription_ref="sub_1", period_end_epoch=1_700_100_000)
        )
        clock.now = 1_700_200_000
        assert await ledger.is_entitled("555") is False

        result = await access.grant_access("555", LIFETIME)

        assert result.delivered == "invite"
        assert len(messenger.invites) == 2
        assert result.invite_link in messenger.messages_to("555")[-1]
        assert await ledger.is_entitled("555") is True

    @pytest.mark.asyncio
    async def test_later_subscription_grant_keeps_lifetime(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await access.grant_access("555", FACTS)
        await access.grant_access("555", LIFETIME)
        sent = len(messenger.messages_to("555"))

        renewed = GrantFacts(subscription_ref="sub_1", period_end_epoch=1_900_000_000)
        result = await access.grant_access("555", renewed)

        assert result.duplicate is True
        record = await ledger.get("555")
        assert record.lifetime is True
        assert record.period_end_epoch is None
        assert len(messenger.messages_to("555")) == sent

    @pytest.mark.asyncio
    async def test_old_subscription_ending_keeps_lifetime(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await access.grant_access("555", FACTS)
        await access.grant_access("555", LIFETIME)

        assert await access.revoke_access("555", subscription_ref="sub_1") is False
        assert await ledger.is_entitled("555") is True
        assert messenger.removed == []
        assert messages.REVOKED not in messenger.messages_to("555")

    @pytest.mark.asyncio
    async def test_unscoped_revoke_still_removes_lifetime(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await access.grant_access("555", LIFETIME)

        assert await access.revoke_access("555", reason="refund") is True
        assert await ledger.get("555") is None
        assert messenger.removed == [(CHANNEL_ID, "555")]


class TestRevokeAccess:
    """revoke_access: clear entitlement, remove from channel, tell the user."""

    @pytest.mark.asyncio
    async def test_revoke_removes_record_and_member(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await ledger.upsert(
            SubscriberRecord(user_id="555", payment_customer_ref="cus_9", active_subscription_ref="sub_9")
        )
        assert await access.revoke_access("555") is True

        assert await ledger.is_entitled("555") is False
        assert messenger.removed == [(CHANNEL_ID, "555")]
        assert messenger.messages_to("555") == [messages.REVOKED]

    @pytest.mark.asyncio
    async def test_revoke_unknown_user(self, access: AccessEngine, messenger: FakeMessenger):
        assert await access.revoke_access("404") is False
        assert messenger.removed == []

    @pytest.mark.asyncio
    async def test_stale_revoke_is_ignored(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await ledger.upsert(SubscriberRecord(user_id="555", active_subscription_ref="sub_new"))
        assert await access.revoke_access("555", subscription_ref="sub_old") is False
        assert await ledger.get("555") is not None
        assert messenger.removed == []

    @pytest.mark.asyncio
    async def test_channel_removal_failure_is_not_fatal(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await ledger.upsert(SubscriberRecord(user_id="555", active_subscription_ref="sub_9"))
        messenger.fail_removal = True

        assert await access.revoke_access("555") is True
        assert await ledger.get("555") is None
        assert messenger.messages_to("555") == [messages.REVOKED]

    @pytest.mark.asyncio
    async def test_blocked_user_revoke_still_succeeds(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await ledger.upsert(SubscriberRecord(user_id="555", active_subscription_ref="sub_9"))
        messenger.blocked.add("555")

        assert await access.revoke_access("555") is True
        assert messenger.removed == [(CHANNEL_ID, "555")]

    @pytest.mark.asyncio
    async def test_regrant_after_revoke_issues_new_invite(
        self, access: AccessEngine, ledger: SubscriberLedger, messenger: FakeMessenger
    ):
        await access.grant_access("555", FACTS)
        await access.revoke_access("555")
        await access.grant_access("555", FACTS)
        assert len(messenger.invites) == 2
