"""Subscriber model — one ledger row per Telegram user."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from botvip.database import Base, EpochTimestampMixin


class Subscriber(EpochTimestampMixin, Base):
    """Tracks a user's Stripe subscription and VIP entitlement."""

    __tablename__ = "subscribers"

    # Telegram user id, stored as text (never reused across users)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Stripe identifiers
    payment_customer_ref: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    active_subscription_ref: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    plan_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Entitlement window (None = no known expiry)
    period_end_epoch: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lifetime: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at_epoch: Mapped[int] = mapped_column(Integer, nullable=False)

    # Last grant whose side effects (invite / confirmation) were delivered
    grant_fingerprint: Mapped[str | None] = mapped_column(String(512), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Subscriber(user_id={self.user_id}, subscription={self.active_subscription_ref}, "
            f"period_end={self.period_end_epoch})>"
        )
