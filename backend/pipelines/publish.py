"""Write ranked events to the bounded news queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from loguru import logger

from app.domain import PostedRecord, RankedEvent
from app.repositories import NewsQueueRepository, PostedLedgerRepository
from app.store import StoreClient

DEFAULT_QUEUE_CAPACITY = 1000


@dataclass(slots=True)
class PublishResult:
    queued: list[PostedRecord] = field(default_factory=list)
    skipped_posted: list[PostedRecord] = field(default_factory=list)
    skipped_queued: list[PostedRecord] = field(default_factory=list)
    trimmed: int = 0
    queue_length: int = 0


class NewsPublisher:
    """Head-insert ranked events unless their identity was already posted or queued.

    The posted ledger is read here and only written by the downstream poster.
    """

    def __init__(self, store: StoreClient, *, capacity: int = DEFAULT_QUEUE_CAPACITY) -> None:
        self._store = store
        self.capacity = capacity

    def publish(self, ranked: Sequence[RankedEvent]) -> PublishResult:
        result = PublishResult()
        with self._store.session_scope() as session:
            queue = NewsQueueRepository(session)
            ledger = PostedLedgerRepository(session)

            keys = [item.key for item in ranked]
            posted = ledger.posted_keys(keys)
            queued = queue.queued_keys(keys)

            for item in ranked:
                key = item.key
                if key in posted:
                    logger.info(
                        "Skipping already posted {} event for market {}",
                        key.event_type,
                        key.market_id,
                    )
                    result.skipped_posted.append(key)
                    continue
                if key in queued:
                    logger.info(
                        "Skipping {} event for market {}; already queued",
                        key.event_type,
                        key.market_id,
                    )
                    result.skipped_queued.append(key)
                    continue
                queue.push_head(item)
                queued.add(key)
                result.queued.append(key)

            result.trimmed = queue.trim(self.capacity)
            result.queue_length = queue.length()

        if result.trimmed:
            logger.info("Trimmed {} stale entries from the news queue", result.trimmed)
        logger.info(
            "Queued {} events ({} already posted, {} already queued); queue length {}",
            len(result.queued),
            len(result.skipped_posted),
            len(result.skipped_queued),
            result.queue_length,
        )
        return result


__all__ = ["DEFAULT_QUEUE_CAPACITY", "NewsPublisher", "PublishResult"]
