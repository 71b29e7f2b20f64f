"""Async SQLAlchemy engine, session factory, and declarative base."""

import time

from sqlalchemy import Integer
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from botvip.config import settings


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the ledger database."""
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with objects kept usable after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url, echo=settings.debug)

async_session_factory = make_session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class EpochTimestampMixin:
    """Mixin that tracks the last mutation as integer epoch seconds."""

    updated_at_epoch: Mapped[int] = mapped_column(
        Integer,
        default=lambda: int(time.time()),
        onupdate=lambda: int(time.time()),
    )


async def create_tables(bind: AsyncEngine) -> None:
    """Create all ledger tables if they do not exist yet."""
    # Import models so they register on Base.metadata
    import botvip.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
