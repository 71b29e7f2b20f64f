"""Service wiring — build every component once and hand them to the app."""

import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from botvip.billing.access import AccessEngine
from botvip.billing.checkout import CheckoutSessionFactory
from botvip.billing.plans import available_plans
from botvip.billing.stripe_client import StripeGateway
from botvip.billing.webhooks import WebhookReconciler
from botvip.config import Settings
from botvip.notifications import OpsNotifier
from botvip.services.followup import FollowUpScheduler, default_steps
from botvip.services.ledger import ProcessedEventStore, SubscriberLedger
from botvip.telegram.client import TelegramClient
from botvip.telegram.handlers import BotHandlers

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer and the polling loop need."""

    settings: Settings
    telegram: TelegramClient
    payments: StripeGateway
    ledger: SubscriberLedger
    events: ProcessedEventStore
    ops: OpsNotifier
    scheduler: FollowUpScheduler
    access: AccessEngine
    checkout: CheckoutSessionFactory
    reconciler: WebhookReconciler
    handlers: BotHandlers

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.telegram.close()


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    telegram: TelegramClient | None = None,
    payments: StripeGateway | None = None,
) -> Services:
    if not settings.telegram_bot_token:
        logger.warning("TELEGRAM_BOT_TOKEN is not set; every Telegram call will fail")
    if not settings.vip_channel_id:
        logger.warning("VIP_CHANNEL_ID is not set; grants fall back to a plain confirmation")
    if not available_plans():
        logger.warning("No plan price IDs configured; /planos will show no offers")

    telegram = telegram or TelegramClient(settings.telegram_bot_token)
    payments = payments or StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
    ledger = SubscriberLedger(session_factory)
    events = ProcessedEventStore(session_factory)
    ops = OpsNotifier(telegram, settings.logs_chat_id)
    checkout = CheckoutSessionFactory(
        payments, settings.checkout_success_url, settings.checkout_cancel_url
    )

    async def followup_link(user_id: str) -> str | None:
        plans = available_plans()
        if not plans:
            return None
        plan = plans[0]
        session = await checkout.create_checkout_session(user_id, plan.price_id, plan.mode)
        return session.url

    scheduler = FollowUpScheduler(
        telegram,
        ledger.is_entitled,
        default_steps(
            settings.followup_first_delay_seconds,
            settings.followup_interval_seconds,
            settings.followup_max_sends,
        ),
        link_factory=followup_link,
    )
    access = AccessEngine(
        ledger,
        telegram,
        scheduler,
        ops,
        channel_id=settings.vip_channel_id,
        invite_ttl_seconds=settings.invite_link_ttl_seconds,
    )
    reconciler = WebhookReconciler(payments, ledger, events, access, ops)
    handlers = BotHandlers(
        telegram,
        ledger,
        checkout,
        scheduler,
        support_handle=settings.support_handle,
        welcome_photo=Path(settings.welcome_photo_path) if settings.welcome_photo_path else None,
        welcome_audio=Path(settings.welcome_audio_path) if settings.welcome_audio_path else None,
    )
    return Services(
        settings=settings,
        telegram=telegram,
        payments=payments,
        ledger=ledger,
        events=events,
        ops=ops,
        scheduler=scheduler,
        access=access,
        checkout=checkout,
        reconciler=reconciler,
        handlers=handlers,
    )
