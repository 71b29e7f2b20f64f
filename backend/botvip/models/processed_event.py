"""Processed webhook event model — dedupes provider redeliveries."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from botvip.database import Base


class ProcessedEvent(Base):
    """A Stripe event id that has been claimed for processing."""

    __tablename__ = "processed_events"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    processed_at_epoch: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<ProcessedEvent(event_id={self.event_id}, type={self.event_type})>"
