from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketSnapshotColumns:
    """Columns shared by the active and finalized snapshot partitions."""

    market_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    market_address: Mapped[str] = mapped_column(String, nullable=False, default="")
    question: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yes_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    no_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tvl: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    additional_info: Mapped[str] = mapped_column(Text, nullable=False, default="")
    yes_token: Mapped[str] = mapped_column(String, nullable=False, default="")
    no_token: Mapped[str] = mapped_column(String, nullable=False, default="")
    resolution_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class ActiveMarket(MarketSnapshotColumns, Base):
    __tablename__ = "active_markets"


class FinalizedMarket(MarketSnapshotColumns, Base):
    __tablename__ = "finalized_markets"


class NewsQueueEntry(Base):
    """One serialized ranked event; the highest id is the head of the queue."""

    __tablename__ = "news_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    event_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    interest_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class PostedNews(Base):
    """Ledger entry written by the publisher after a successful post."""

    __tablename__ = "news_posted"
    __table_args__ = (
        UniqueConstraint(
            "market_id", "event_timestamp", "event_type", name="uq_news_posted_identity"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class FeaturedMarketEntry(Base):
    """One featured-market pick; the highest id is the current feature."""

    __tablename__ = "featured_markets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    selection_method: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    selected_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
