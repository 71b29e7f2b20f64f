"""Access grant/revoke engine — ledger mutation plus the visible side effects."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from botvip import messages
from botvip.errors import UpstreamUnavailable
from botvip.interfaces import MessagingTransport
from botvip.notifications import OpsNotifier
from botvip.services.followup import FollowUpScheduler
from botvip.services.ledger import SubscriberLedger, SubscriberRecord
from botvip.services.locks import KeyedLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrantFacts:
    """Subscription facts extracted from a confirmed payment."""

    payment_customer_ref: str | None = None
    subscription_ref: str | None = None
    plan_ref: str | None = None
    period_end_epoch: int | None = None
    lifetime: bool = False  # one-time purchase (Checkout "payment" mode)


@dataclass(frozen=True)
class GrantResult:
    """Outcome of one ``grant_access`` call."""

    record: SubscriberRecord
    duplicate: bool = False
    renewal: bool = False
    invite_link: str | None = None
    delivered: str = ""  # which user message went out: invite, manual, confirmation, renewal, lifetime


def grant_fingerprint(record: SubscriberRecord) -> str:
    """Identity of a grant for dedupe: (user, subscription, period end)."""
    fingerprint = f"{record.user_id}:{record.active_subscription_ref or '-'}:{record.period_end_epoch or '-'}"
    return f"{fingerprint}:lifetime" if record.lifetime else fingerprint


def format_epoch(epoch: int | None) -> str:
    if epoch is None:
        return "sem expiração"
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%d/%m/%Y")


class AccessEngine:
    """Grant and revoke VIP access.

    Both operations hold a per-user lock for their whole duration, so two
    deliveries for the same user never interleave between the ledger write
    and the invite issuance. Side effects degrade to a notice instead of
    failing: the ledger write is the durable fact.
    """

    def __init__(
        self,
        ledger: SubscriberLedger,
        messenger: MessagingTransport,
        scheduler: FollowUpScheduler,
        ops: OpsNotifier,
        channel_id: str | None = None,
        invite_ttl_seconds: int = 24 * 60 * 60,
    ) -> None:
        self._ledger = ledger
        self._messenger = messenger
        self._scheduler = scheduler
        self._ops = ops
        self._channel_id = channel_id or None
        self._invite_ttl = invite_ttl_seconds
        self._locks = KeyedLock()
        if self._channel_id is None:
            logger.warning("VIP channel not configured; grants send a plain confirmation")

    async def grant_access(self, user_id: str, facts: GrantFacts) -> GrantResult:
        user_id = str(user_id)
        async with self._locks.acquire(user_id):
            previous = await self._ledger.get(user_id)
            now = self._ledger.now()
            stored = await self._ledger.upsert(
                SubscriberRecord(
                    user_id=user_id,
                    payment_customer_ref=facts.payment_customer_ref,
                    active_subscription_ref=facts.subscription_ref,
                    plan_ref=facts.plan_ref,
                    period_end_epoch=facts.period_end_epoch,
                    lifetime=facts.lifetime,
                )
            )
            self._scheduler.cancel(user_id)

            fingerprint = grant_fingerprint(stored)
            if previous is not None and previous.grant_fingerprint == fingerprint:
                logger.info("Duplicate grant for user %s (%s); no messages sent", user_id, fingerprint)
                return GrantResult(record=stored, duplicate=True)

            # Already in the channel: confirm without a new invite
            upgraded = stored.lifetime and not (previous is not None and previous.lifetime)
            still_member = (
                previous is not None
                and previous.grant_fingerprint is not None
                and previous.is_entitled(now)
            )
            renewal = still_member and (
                upgraded
                or (
                    previous.active_subscription_ref is not None
                    and previous.active_subscription_ref == stored.active_subscription_ref
                )
            )

            invite_link = None
            if renewal and upgraded:
                delivered = "lifetime"
                text = messages.LIFETIME_UPGRADE
            elif renewal:
                delivered = "renewal"
                text = messages.RENEWAL_CONFIRMED.format(until=self._until(stored))
            elif self._channel_id is not None:
                try:
                    invite_link = await self._messenger.create_single_use_invite(
                        self._channel_id, self._invite_ttl
                    )
                except UpstreamUnavailable as e:
                    logger.error("Invite link creation failed for user %s: %s", user_id, e)
                    delivered = "manual"
                    text = messages.GRANT_MANUAL
                    await self._ops.notify(
                        f"⚠️ Link de convite falhou para {user_id} ({stored.active_subscription_ref}). "
                        f"Envie o acesso manualmente. Erro: {e}"
                    )
                else:
                    delivered = "invite"
                    text = messages.GRANT_WITH_INVITE.format(invite_link=invite_link)
            else:
                delivered = "confirmation"
                text = messages.GRANT_NO_CHANNEL

            await self._tell_user(user_id, text)

            stored = await self._ledger.upsert(replace(stored, grant_fingerprint=fingerprint))
            await self._ops.notify(
                f"✅ Acesso liberado: user={user_id} customer={stored.payment_customer_ref} "
                f"sub={stored.active_subscription_ref} plano={stored.plan_ref} "
                f"até={format_epoch(stored.period_end_epoch)} ({delivered})"
            )
            return GrantResult(
                record=stored, renewal=renewal, invite_link=invite_link, delivered=delivered
            )

    async def revoke_access(
        self, user_id: str, subscription_ref: str | None = None, reason: str = "subscription ended"
    ) -> bool:
        """Remove entitlement and channel membership. Returns False if nothing was revoked."""
        user_id = str(user_id)
        async with self._locks.acquire(user_id):
            record = await self._ledger.get(user_id)
            if record is None:
                logger.info("Revoke for user %s: no ledger record", user_id)
                return False
            if record.lifetime and subscription_ref is not None:
                logger.info(
                    "Keeping lifetime access for user %s after %s ended", user_id, subscription_ref
                )
                return False
            if (
                subscription_ref is not None
                and record.active_subscription_ref is not None
                and record.active_subscription_ref != subscription_ref
            ):
                logger.warning(
                    "Ignoring stale revoke for user %s: %s ended but %s is active",
                    user_id,
                    subscription_ref,
                    record.active_subscription_ref,
                )
                return False

            await self._ledger.remove(user_id)

            if self._channel_id is not None:
                try:
                    await self._messenger.ban_then_unban(self._channel_id, user_id)
                except UpstreamUnavailable as e:
                    logger.error("Failed to remove user %s from channel %s: %s", user_id, self._channel_id, e)
                    await self._ops.notify(
                        f"⚠️ Não consegui remover {user_id} do canal VIP. Remova manualmente. Erro: {e}"
                    )

            await self._tell_user(user_id, messages.REVOKED)
            await self._ops.notify(
                f"⛔ Acesso revogado: user={user_id} sub={record.active_subscription_ref} motivo={reason}"
            )
            return True

    async def notify_payment_failed(self, user_id: str) -> None:
        """Warn the user about a failed charge; access stays until the subscription ends."""
        await self._tell_user(str(user_id), messages.PAYMENT_FAILED)

    async def _tell_user(self, user_id: str, text: str) -> bool:
        try:
            await self._messenger.send_message(user_id, text)
        except UpstreamUnavailable as e:
            logger.warning("Could not message user %s: %s", user_id, e)
            return False
        return True

    @staticmethod
    def _until(record: SubscriberRecord) -> str:
        if record.period_end_epoch is None:
            return ""
        return messages.VIP_ACTIVE_UNTIL.format(date=format_epoch(record.period_end_epoch))
