from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types.utc import UTCDateTime


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models in this package."""


class OutboxMessageModel(Base):
    """
    Row of the transactional outbox.
    Written in the business transaction, updated by the processor.
    """

    __tablename__ = "outbox_messages"

    message_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    message_type: Mapped[str] = mapped_column(String(255), index=True)
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    claimed_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    quarantined_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    correlation_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )

    __table_args__ = (
        Index("ix_outbox_messages_due", "processed_at", "scheduled_at"),
        Index("ix_outbox_messages_processed_at", "processed_at"),
    )
