"""Per-market fetch, compare and write-back."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.domain import MarketDetail, MarketSnapshot, NewsEvent
from app.repositories import Partition, SnapshotRepository
from app.store import StoreClient

from .collaborators import CategoryClassifier, MarketDetailFetcher
from .detection import DEFAULT_PRICE_CHANGE_THRESHOLD, classify

FALLBACK_CATEGORY = "Other"


def epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class DiffStats:
    processed: int = 0
    skipped_finalized: int = 0
    failed: int = 0
    new_markets: int = 0
    updated_active: int = 0
    updated_finalized: int = 0
    failures: list[dict[str, str]] = field(default_factory=list)

    def record_failure(self, market_id: int, stage: str, error: str) -> None:
        self.failed += 1
        self.failures.append({"market_id": str(market_id), "stage": stage, "error": error})


class MarketDiffer:
    """Turn one market ID into zero or more events and refresh its snapshot.

    ``highest_seen_id`` is captured once per run by the caller; any ID above it
    is treated as a new listing.
    """

    def __init__(
        self,
        store: StoreClient,
        fetcher: MarketDetailFetcher,
        classifier: CategoryClassifier,
        *,
        highest_seen_id: int,
        threshold: float = DEFAULT_PRICE_CHANGE_THRESHOLD,
        clock: Callable[[], int] = epoch_ms,
        dry_run: bool = False,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._classifier = classifier
        self.highest_seen_id = highest_seen_id
        self.threshold = threshold
        self._clock = clock
        self.dry_run = dry_run
        self.stats = DiffStats()

    def _load_previous(self, market_id: int) -> tuple[bool, MarketSnapshot | None]:
        with self._store.session_scope() as session:
            repo = SnapshotRepository(session)
            if repo.is_finalized(market_id):
                return True, None
            found = repo.find(market_id)
            return False, found[1] if found else None

    def _categorize(self, question: str) -> str:
        try:
            category = self._classifier.classify(question)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Category classification failed for {!r}: {}", question, exc)
            return FALLBACK_CATEGORY
        return category or FALLBACK_CATEGORY

    def _fetch(self, market_id: int) -> MarketDetail | None:
        try:
            detail = self._fetcher.fetch(market_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Fetching market {} raised", market_id)
            self.stats.record_failure(market_id, "fetch", str(exc))
            return None
        if not detail.success:
            logger.warning("Failed to get details for market {}: {}", market_id, detail.error)
            self.stats.record_failure(market_id, "fetch", detail.error or "unknown error")
            return None
        return detail

    def diff(self, market_id: int) -> list[NewsEvent]:
        try:
            finalized, previous = self._load_previous(market_id)
        except SQLAlchemyError as exc:
            logger.exception("Reading snapshot for market {} failed", market_id)
            self.stats.record_failure(market_id, "store", str(exc))
            return []

        if finalized:
            self.stats.skipped_finalized += 1
            if self.stats.skipped_finalized % 50 == 0:
                logger.info("Skipped {} already finalized markets", self.stats.skipped_finalized)
            return []

        detail = self._fetch(market_id)
        if detail is None:
            return []

        if previous is not None and previous.category:
            category = previous.category
        else:
            category = self._categorize(detail.question)

        now_ms = self._clock()
        current = detail.to_snapshot(category=category, updated_at=now_ms)
        is_new_market = market_id > self.highest_seen_id
        events = classify(
            previous,
            current,
            is_new_market=is_new_market,
            now_ms=now_ms,
            threshold=self.threshold,
        )

        if not self.dry_run:
            try:
                with self._store.session_scope() as session:
                    partition = SnapshotRepository(session).save(current)
            except SQLAlchemyError as exc:
                logger.exception("Writing snapshot for market {} failed", market_id)
                self.stats.record_failure(market_id, "store", str(exc))
                return []
        else:
            partition = Partition.FINALIZED if current.is_finalized else Partition.ACTIVE

        self.stats.processed += 1
        if is_new_market:
            self.stats.new_markets += 1
        if partition == Partition.FINALIZED:
            self.stats.updated_finalized += 1
        else:
            self.stats.updated_active += 1
        for event in events:
            logger.info(
                "Collected {} event for market {}: {}",
                event.event_type,
                market_id,
                event.market_question,
            )
        if self.stats.processed % 10 == 0:
            logger.info(
                "Processed {} markets ({} skipped)",
                self.stats.processed,
                self.stats.skipped_finalized,
            )
        return events


__all__ = ["DiffStats", "FALLBACK_CATEGORY", "MarketDiffer", "epoch_ms"]
