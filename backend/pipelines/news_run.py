"""Scan the registry, detect newsworthy market changes and queue the best stories."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence
from uuid import uuid4

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, get_settings
from app.domain import NewsEvent
from app.repositories import SnapshotRepository
from app.store import StoreClient, StoreUnavailableError
from ingestion.client import MarketRegistryClient

from .collaborators import Collaborators, MarketDetailFetcher, build_collaborators
from .dedupe import dedupe_events
from .differ import DiffStats, MarketDiffer, epoch_ms
from .enrich import enrich_events
from .prefilter import pre_filter
from .publish import NewsPublisher
from .ranking import rank_events, select_top

STATUS_COMPLETED = "completed"
STATUS_STORAGE_UNAVAILABLE = "storage_unavailable"
STATUS_REGISTRY_UNAVAILABLE = "registry_unavailable"
STATUS_PUBLISH_FAILED = "publish_failed"


@dataclass(slots=True)
class NewsRunSummary:
    run_id: str
    started_at: datetime
    dry_run: bool = False
    backend: str = "custom"
    status: str = STATUS_COMPLETED
    finished_at: datetime | None = None
    total_markets: int = 0
    highest_seen_id: int = -1
    processed_markets: int = 0
    skipped_finalized: int = 0
    failed_markets: int = 0
    new_markets: int = 0
    updated_active: int = 0
    updated_finalized: int = 0
    raw_events: int = 0
    deduped_events: int = 0
    prefiltered_events: int = 0
    enriched_events: int = 0
    ranked_events: int = 0
    selected_events: int = 0
    queued_events: int = 0
    skipped_posted: int = 0
    skipped_queued: int = 0
    trimmed_events: int = 0
    failures: list[dict[str, str]] = field(default_factory=list)

    def absorb(self, stats: DiffStats) -> None:
        self.processed_markets = stats.processed
        self.skipped_finalized = stats.skipped_finalized
        self.failed_markets = stats.failed
        self.new_markets = stats.new_markets
        self.updated_active = stats.updated_active
        self.updated_finalized = stats.updated_finalized
        self.failures.extend(stats.failures)

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "dry_run": self.dry_run,
            "backend": self.backend,
            "status": self.status,
            "total_markets": self.total_markets,
            "highest_seen_id": self.highest_seen_id,
            "processed_markets": self.processed_markets,
            "skipped_finalized": self.skipped_finalized,
            "failed_markets": self.failed_markets,
            "new_markets": self.new_markets,
            "updated_active": self.updated_active,
            "updated_finalized": self.updated_finalized,
            "events": {
                "raw": self.raw_events,
                "deduped": self.deduped_events,
                "prefiltered": self.prefiltered_events,
                "enriched": self.enriched_events,
                "ranked": self.ranked_events,
                "selected": self.selected_events,
                "queued": self.queued_events,
                "skipped_posted": self.skipped_posted,
                "skipped_queued": self.skipped_queued,
                "trimmed": self.trimmed_events,
            },
            "failures": self.failures,
        }


class NewsPipeline:
    """One end-to-end pass: differ, dedupe, pre-filter, enrich, rank, publish.

    Runs must not overlap; the snapshot store assumes a single writer.
    """

    def __init__(
        self,
        settings: Settings,
        store: StoreClient,
        fetcher: MarketDetailFetcher,
        collaborators: Collaborators,
        clock: Callable[[], int] = epoch_ms,
        *,
        max_new_events: int | None = None,
        max_posts: int | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.fetcher = fetcher
        self.collaborators = collaborators
        self.clock = clock
        self.max_new_events = settings.max_new_events if max_new_events is None else max_new_events
        self.max_posts = settings.max_news_posts if max_posts is None else max_posts

    def _finish(self, summary: NewsRunSummary) -> NewsRunSummary:
        summary.finished_at = datetime.now(timezone.utc)
        return summary

    def _store_ready(self) -> bool:
        if not self.store.is_open:
            try:
                self.store.open()
            except StoreUnavailableError as exc:
                logger.error("Snapshot store unavailable: {}", exc)
                return False
        return self.store.health_check()

    def run(self, limit: int | None = None, dry_run: bool = False) -> NewsRunSummary:
        summary = NewsRunSummary(
            run_id=str(uuid4()),
            started_at=datetime.now(timezone.utc),
            dry_run=dry_run,
            backend=self.collaborators.backend,
        )
        logger.info("Starting news run {} (dry_run={})", summary.run_id, dry_run)

        if not self._store_ready():
            logger.error("Aborting news run {}: storage unavailable", summary.run_id)
            summary.status = STATUS_STORAGE_UNAVAILABLE
            return self._finish(summary)

        try:
            total = self.fetcher.total_markets()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to retrieve total markets count: {}", exc)
            summary.status = STATUS_REGISTRY_UNAVAILABLE
            summary.failures.append({"market_id": "*", "stage": "registry", "error": str(exc)})
            return self._finish(summary)
        summary.total_markets = total
        logger.info("Total markets: {}", total)

        try:
            with self.store.session_scope() as session:
                summary.highest_seen_id = SnapshotRepository(session).highest_market_id()
        except SQLAlchemyError as exc:
            logger.error("Reading highest market ID failed: {}", exc)
            summary.status = STATUS_STORAGE_UNAVAILABLE
            return self._finish(summary)
        logger.info("Highest existing market ID: {}", summary.highest_seen_id)

        raw_events = self._collect_events(summary, total=total, limit=limit, dry_run=dry_run)
        summary.raw_events = len(raw_events)
        if not raw_events:
            logger.info("No newsworthy events collected during processing")
            return self._log_totals(self._finish(summary))

        deduped = dedupe_events(raw_events)
        summary.deduped_events = len(deduped)
        shortlisted = pre_filter(deduped, self.max_new_events, self.collaborators.selector)
        summary.prefiltered_events = len(shortlisted)
        enriched = enrich_events(
            shortlisted,
            self.collaborators.enricher,
            concurrency=self.settings.enrichment_concurrency,
            delay_seconds=self.settings.enrichment_delay_seconds,
        )
        summary.enriched_events = sum(1 for item in enriched if item.context)
        ranked = rank_events(enriched, self.collaborators.ranker)
        summary.ranked_events = sum(1 for item in ranked if item.interest_score > 0)
        top = select_top(ranked, self.max_posts)
        summary.selected_events = len(top)

        if dry_run:
            logger.info("Dry run: {} events selected, news queue left untouched", len(top))
            return self._log_totals(self._finish(summary))

        try:
            result = NewsPublisher(self.store, capacity=self.settings.news_queue_capacity).publish(top)
        except SQLAlchemyError as exc:
            logger.exception("Writing to the news queue failed")
            summary.status = STATUS_PUBLISH_FAILED
            summary.failures.append({"market_id": "*", "stage": "publish", "error": str(exc)})
            return self._log_totals(self._finish(summary))

        summary.queued_events = len(result.queued)
        summary.skipped_posted = len(result.skipped_posted)
        summary.skipped_queued = len(result.skipped_queued)
        summary.trimmed_events = result.trimmed
        return self._log_totals(self._finish(summary))

    def _collect_events(
        self,
        summary: NewsRunSummary,
        *,
        total: int,
        limit: int | None,
        dry_run: bool,
    ) -> list[NewsEvent]:
        differ = MarketDiffer(
            self.store,
            self.fetcher,
            self.collaborators.classifier,
            highest_seen_id=summary.highest_seen_id,
            threshold=self.settings.price_change_threshold,
            clock=self.clock,
            dry_run=dry_run,
        )
        upper = total if limit is None else min(total, max(limit, 0))
        events: list[NewsEvent] = []
        for market_id in range(upper):
            try:
                events.extend(differ.diff(market_id))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected failure diffing market {}", market_id)
                differ.stats.record_failure(market_id, "diff", str(exc))
        if limit is not None and upper < total:
            logger.info("Limit reached ({}); stopping early", limit)
        summary.absorb(differ.stats)
        return events

    def _log_totals(self, summary: NewsRunSummary) -> NewsRunSummary:
        logger.info(
            "News run {} {}. processed={}, skipped_finalized={}, failed={}, new_markets={}, events={}, queued={}",
            summary.run_id,
            summary.status,
            summary.processed_markets,
            summary.skipped_finalized,
            summary.failed_markets,
            summary.new_markets,
            summary.raw_events,
            summary.queued_events,
        )
        if summary.failed_markets:
            logger.warning("News run completed with {} market failures", summary.failed_markets)
        return summary


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Detect market changes and queue the most newsworthy stories"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Only scan market IDs below this bound (testing only)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Detect and rank events without writing snapshots or the news queue",
    )
    parser.add_argument(
        "--max-new-events",
        type=int,
        default=None,
        help="Override MAX_NEW_EVENTS, the pre-filter size before enrichment",
    )
    parser.add_argument(
        "--max-posts",
        type=int,
        default=None,
        help="Override MAX_NEWS_POSTS, the number of ranked events queued per run",
    )
    parser.add_argument(
        "--backend",
        choices=["openai", "rules"],
        default=None,
        help="Collaborator backend to use (defaults to COLLABORATOR_BACKEND)",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Write JSON summary to the specified path",
    )
    return parser.parse_args(argv)


def _write_summary(path: Path, summary: NewsRunSummary) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(summary.to_dict(), indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    collaborators = build_collaborators(settings, args.backend)

    # Opened by NewsPipeline.run.
    store = StoreClient.from_settings(settings)
    try:
        with MarketRegistryClient.from_settings(settings) as fetcher:
            pipeline = NewsPipeline(
                settings,
                store,
                fetcher,
                collaborators,
                max_new_events=args.max_new_events,
                max_posts=args.max_posts,
            )
            summary = pipeline.run(limit=args.limit, dry_run=args.dry_run)
    finally:
        store.close()

    if args.summary_path:
        _write_summary(args.summary_path, summary)
        logger.info("Wrote news run summary to {}", args.summary_path)
    return 0 if summary.status == STATUS_COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
