"""Shared test configuration and fixtures.

Each test gets its own SQLite ledger file under ``tmp_path``, plus the fakes
from ``fakes.py`` for the Telegram transport and the Stripe API, so no
network is used.
"""

from collections.abc import AsyncGenerator
from dataclasses import replace
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from botvip.api.deps import get_bot_handlers, get_reconciler, get_telegram_webhook_secret
from botvip.billing.access import AccessEngine
from botvip.billing.checkout import CheckoutSessionFactory
from botvip.billing.plans import PLANS, Plan
from botvip.billing.webhooks import WebhookReconciler
from botvip.database import create_tables, make_engine, make_session_factory
from botvip.main import app
from botvip.notifications import OpsNotifier
from botvip.services.followup import FollowUpScheduler, FollowUpStep
from botvip.services.ledger import ProcessedEventStore, SubscriberLedger
from botvip.telegram.handlers import BotHandlers
from fakes import CHANNEL_ID, OPS_CHAT_ID, FakeMessenger, FakePaymentProvider


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """A fresh SQLite ledger database per test."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def clock():
    """Mutable clock; set ``clock.now`` to move time."""
    return SimpleNamespace(now=1_700_000_000.0)


@pytest.fixture
def ledger(session_factory, clock) -> SubscriberLedger:
    return SubscriberLedger(session_factory, clock=lambda: clock.now)


@pytest.fixture
def events(session_factory) -> ProcessedEventStore:
    return ProcessedEventStore(session_factory)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def payments() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def ops(messenger) -> OpsNotifier:
    return OpsNotifier(messenger, OPS_CHAT_ID)


@pytest_asyncio.fixture
async def scheduler(messenger, ledger) -> AsyncGenerator[FollowUpScheduler, None]:
    """Scheduler with 10ms steps so chains finish inside a test."""
    sched = FollowUpScheduler(
        messenger,
        ledger.is_entitled,
        [FollowUpStep(0.01, "nudge A"), FollowUpStep(0.01, "nudge B"), FollowUpStep(0.01, "nudge A")],
    )
    yield sched
    await sched.shutdown()


@pytest.fixture
def access(ledger, messenger, scheduler, ops) -> AccessEngine:
    return AccessEngine(ledger, messenger, scheduler, ops, channel_id=CHANNEL_ID)


@pytest.fixture
def reconciler(payments, ledger, events, access, ops) -> WebhookReconciler:
    return WebhookReconciler(payments, ledger, events, access, ops)


@pytest.fixture
def configured_plans(monkeypatch) -> dict[str, Plan]:
    """Give every plan a Stripe price ID for the duration of a test."""
    for key, price_id in (
        ("plano_semanal", "price_weekly"),
        ("plano_mensal", "price_monthly"),
        ("plano_vitalicio", "price_life"),
    ):
        monkeypatch.setitem(PLANS, key, replace(PLANS[key], price_id=price_id))
    return PLANS


@pytest.fixture
def checkout(payments) -> CheckoutSessionFactory:
    return CheckoutSessionFactory(
        payments,
        success_url="https://t.me/botvip_test_bot?start=sucesso",
        cancel_url="https://t.me/botvip_test_bot?start=cancelado",
    )


@pytest_asyncio.fixture
async def quiet_scheduler(messenger, ledger) -> AsyncGenerator[FollowUpScheduler, None]:
    """Scheduler whose first nudge is far beyond any test's lifetime."""
    sched = FollowUpScheduler(messenger, ledger.is_entitled, [FollowUpStep(3600, "nudge A")])
    yield sched
    await sched.shutdown()


@pytest.fixture
def handlers(messenger, ledger, checkout, quiet_scheduler) -> BotHandlers:
    return BotHandlers(messenger, ledger, checkout, quiet_scheduler, support_handle="@suporte_teste")


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def telegram_secret() -> str:
    """Expected X-Telegram-Bot-Api-Secret-Token; override per module."""
    return ""


@pytest_asyncio.fixture
async def client(reconciler, handlers, telegram_secret) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test services."""
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_bot_handlers] = lambda: handlers
    app.dependency_overrides[get_telegram_webhook_secret] = lambda: telegram_secret

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
