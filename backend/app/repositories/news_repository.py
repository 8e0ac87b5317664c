"""News queue and posted-ledger persistence."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, func, select, tuple_
from sqlalchemy.orm import Session

from app.domain import PostedRecord, RankedEvent
from app.models import NewsQueueEntry, PostedNews


class NewsQueueRepository:
    """Bounded head-insertion list of ranked events awaiting publication."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def push_head(self, ranked: RankedEvent) -> NewsQueueEntry:
        entry = NewsQueueEntry(
            market_id=ranked.event.market_id,
            event_type=ranked.event.event_type,
            event_timestamp=ranked.event.timestamp,
            interest_score=ranked.interest_score,
            payload=ranked.to_payload(),
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def trim(self, capacity: int) -> int:
        """Keep the ``capacity`` newest entries and return how many were discarded."""

        stale_ids = list(
            self._session.scalars(
                select(NewsQueueEntry.id)
                .order_by(NewsQueueEntry.id.desc())
                .offset(capacity)
            )
        )
        if not stale_ids:
            return 0
        self._session.execute(delete(NewsQueueEntry).where(NewsQueueEntry.id.in_(stale_ids)))
        return len(stale_ids)

    def length(self) -> int:
        return int(self._session.scalar(select(func.count(NewsQueueEntry.id))) or 0)

    def list(self, limit: int | None = None) -> list[RankedEvent]:
        """Return queued events head first."""

        query = select(NewsQueueEntry).order_by(NewsQueueEntry.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return [RankedEvent.from_payload(entry.payload) for entry in self._session.scalars(query)]

    def queued_keys(self, keys: Iterable[PostedRecord]) -> set[PostedRecord]:
        return _matching_keys(
            self._session,
            keys,
            columns=(NewsQueueEntry.market_id, NewsQueueEntry.event_timestamp, NewsQueueEntry.event_type),
        )


class PostedLedgerRepository:
    """Identity keys of events the downstream publisher has already posted."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def posted_keys(self, keys: Iterable[PostedRecord]) -> set[PostedRecord]:
        return _matching_keys(
            self._session,
            keys,
            columns=(PostedNews.market_id, PostedNews.event_timestamp, PostedNews.event_type),
        )

    def record(self, key: PostedRecord) -> PostedNews:
        """Append ``key`` to the ledger; used by the publisher after a successful post."""

        existing = self._session.scalar(
            select(PostedNews).where(
                PostedNews.market_id == key.market_id,
                PostedNews.event_timestamp == key.timestamp,
                PostedNews.event_type == key.event_type,
            )
        )
        if existing is not None:
            return existing
        entry = PostedNews(
            market_id=key.market_id,
            event_timestamp=key.timestamp,
            event_type=key.event_type,
        )
        self._session.add(entry)
        self._session.flush()
        return entry


def _matching_keys(session: Session, keys: Iterable[PostedRecord], *, columns) -> set[PostedRecord]:
    wanted = list(dict.fromkeys(keys))
    if not wanted:
        return set()
    rows = session.execute(
        select(*columns).where(
            tuple_(*columns).in_(
                [(key.market_id, key.timestamp, key.event_type) for key in wanted]
            )
        )
    )
    return {
        PostedRecord(market_id=market_id, timestamp=timestamp, event_type=event_type)
        for market_id, timestamp, event_type in rows
    }


__all__ = ["NewsQueueRepository", "PostedLedgerRepository"]
