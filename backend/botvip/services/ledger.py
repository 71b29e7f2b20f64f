"""Subscriber ledger — the single source of truth for VIP entitlement."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from botvip.models.processed_event import ProcessedEvent
from botvip.models.subscriber import Subscriber
from botvip.services.locks import KeyedLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriberRecord:
    """Immutable snapshot of one ledger row."""

    user_id: str
    payment_customer_ref: str | None = None
    active_subscription_ref: str | None = None
    plan_ref: str | None = None
    period_end_epoch: int | None = None  # None = no known expiry
    created_at_epoch: int | None = None
    grant_fingerprint: str | None = None
    lifetime: bool = False  # one-time purchase; never expires

    def is_entitled(self, now: float) -> bool:
        return self.lifetime or self.period_end_epoch is None or self.period_end_epoch >= now


def merge_records(
    existing: SubscriberRecord | None, incoming: SubscriberRecord
) -> SubscriberRecord:
    """Merge an incoming grant into the stored record.

    Identifiers are never cleared by a grant, the earliest creation time
    wins, and the period end never regresses while the subscription stays
    the same. A different subscription replaces the period outright.
    Lifetime access is sticky: once bought, later subscription grants
    cannot put an expiry back on the record.
    """
    if existing is None:
        return incoming

    same_subscription = (
        incoming.active_subscription_ref is None
        or incoming.active_subscription_ref == existing.active_subscription_ref
    )
    if same_subscription:
        if incoming.period_end_epoch is None:
            period_end = existing.period_end_epoch
        elif existing.period_end_epoch is None:
            period_end = incoming.period_end_epoch
        else:
            period_end = max(existing.period_end_epoch, incoming.period_end_epoch)
    else:
        period_end = incoming.period_end_epoch

    lifetime = existing.lifetime or incoming.lifetime
    if lifetime:
        period_end = None

    created_candidates = [
        ts for ts in (existing.created_at_epoch, incoming.created_at_epoch) if ts is not None
    ]

    return SubscriberRecord(
        user_id=existing.user_id,
        payment_customer_ref=incoming.payment_customer_ref or existing.payment_customer_ref,
        active_subscription_ref=incoming.active_subscription_ref or existing.active_subscription_ref,
        plan_ref=incoming.plan_ref or existing.plan_ref,
        period_end_epoch=period_end,
        created_at_epoch=min(created_candidates) if created_candidates else None,
        grant_fingerprint=incoming.grant_fingerprint or existing.grant_fingerprint,
        lifetime=lifetime,
    )


def _to_record(row: Subscriber) -> SubscriberRecord:
    return SubscriberRecord(
        user_id=row.user_id,
        payment_customer_ref=row.payment_customer_ref,
        active_subscription_ref=row.active_subscription_ref,
        plan_ref=row.plan_ref,
        period_end_epoch=row.period_end_epoch,
        created_at_epoch=row.created_at_epoch,
        grant_fingerprint=row.grant_fingerprint,
        lifetime=row.lifetime,
    )


class SubscriberLedger:
    """Durable keyed store of subscriber records.

    Every mutation is committed before the call returns, and writes for the
    same user are serialized so concurrent webhook deliveries merge instead
    of clobbering each other.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._locks = KeyedLock()

    def now(self) -> int:
        return int(self._clock())

    async def get(self, user_id: str) -> SubscriberRecord | None:
        async with self._session_factory() as db:
            row = await db.get(Subscriber, str(user_id))
            return _to_record(row) if row is not None else None

    async def upsert(self, record: SubscriberRecord) -> SubscriberRecord:
        """Insert or merge ``record`` and return what is now stored."""
        user_id = str(record.user_id)
        async with self._locks.acquire(user_id):
            async with self._session_factory() as db:
                row = await db.get(Subscriber, user_id)
                existing = _to_record(row) if row is not None else None
                if record.created_at_epoch is None and existing is None:
                    record = replace(record, created_at_epoch=self.now())
                merged = merge_records(existing, replace(record, user_id=user_id))

                if row is None:
                    row = Subscriber(user_id=user_id, created_at_epoch=merged.created_at_epoch)
                    db.add(row)
                row.payment_customer_ref = merged.payment_customer_ref
                row.active_subscription_ref = merged.active_subscription_ref
                row.plan_ref = merged.plan_ref
                row.period_end_epoch = merged.period_end_epoch
                row.created_at_epoch = merged.created_at_epoch
                row.grant_fingerprint = merged.grant_fingerprint
                row.lifetime = merged.lifetime
                await db.commit()

        logger.info(
            "Ledger upsert user=%s subscription=%s plan=%s period_end=%s",
            user_id,
            merged.active_subscription_ref,
            merged.plan_ref,
            merged.period_end_epoch,
        )
        return merged

    async def remove(self, user_id: str) -> bool:
        """Delete the user's record. Returns False if there was none."""
        user_id = str(user_id)
        async with self._locks.acquire(user_id):
            async with self._session_factory() as db:
                result = await db.execute(delete(Subscriber).where(Subscriber.user_id == user_id))
                await db.commit()
        removed = result.rowcount > 0
        if removed:
            logger.info("Ledger removed user=%s", user_id)
        return removed

    async def is_entitled(self, user_id: str) -> bool:
        record = await self.get(user_id)
        if record is None:
            return False
        return record.is_entitled(self._clock())

    async def find_by_payment_customer_ref(self, ref: str) -> str | None:
        """Reverse lookup: Stripe customer ID -> Telegram user id."""
        if not ref:
            return None
        async with self._session_factory() as db:
            result = await db.execute(
                select(Subscriber.user_id).where(Subscriber.payment_customer_ref == ref).limit(1)
            )
            return result.scalar_one_or_none()

    async def find_by_subscription_ref(self, ref: str) -> str | None:
        """Reverse lookup: Stripe subscription ID -> Telegram user id."""
        if not ref:
            return None
        async with self._session_factory() as db:
            result = await db.execute(
                select(Subscriber.user_id).where(Subscriber.active_subscription_ref == ref).limit(1)
            )
            return result.scalar_one_or_none()


class ProcessedEventStore:
    """Claims webhook event ids so a redelivered event is handled once."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def claim(self, event_id: str, event_type: str) -> bool:
        """Return True if this call claimed the event, False if it was seen before."""
        async with self._session_factory() as db:
            db.add(
                ProcessedEvent(
                    event_id=event_id,
                    event_type=event_type,
                    processed_at_epoch=int(self._clock()),
                )
            )
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.info("Event %s (%s) already processed", event_id, event_type)
                return False
        return True

    async def release(self, event_id: str) -> None:
        """Drop a claim so the event can be replayed after a failure."""
        async with self._session_factory() as db:
            await db.execute(delete(ProcessedEvent).where(ProcessedEvent.event_id == event_id))
            await db.commit()
        logger.info("Released claim on event %s", event_id)
