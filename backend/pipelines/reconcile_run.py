"""Standalone job that repairs the snapshot partitions."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, get_settings
from app.repositories import Partition, SnapshotRepository
from app.store import StoreClient, StoreUnavailableError
from ingestion.client import MarketRegistryClient

from .collaborators import MarketDetailFetcher


@dataclass(slots=True)
class ReconcileSummary:
    status: str = "completed"
    total_markets: int | None = None
    active_markets: int = 0
    finalized_markets: int = 0
    duplicates_removed: list[int] = field(default_factory=list)
    missing_ids: list[int] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "total_markets": self.total_markets,
            "active_markets": self.active_markets,
            "finalized_markets": self.finalized_markets,
            "duplicates_removed": self.duplicates_removed,
            "missing_ids": self.missing_ids,
            "failures": self.failures,
        }


class ReconciliationPipeline:
    """Remove markets held in both partitions and report IDs held in neither.

    A market found in both partitions keeps its finalized copy. Running the job
    twice leaves the store unchanged the second time.
    """

    def __init__(
        self,
        settings: Settings,
        store: StoreClient,
        fetcher: MarketDetailFetcher | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.fetcher = fetcher

    def _resolve_total(self, total_markets: int | None, summary: ReconcileSummary) -> int | None:
        if total_markets is not None or self.fetcher is None:
            return total_markets
        try:
            return self.fetcher.total_markets()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not read market count from registry: {}", exc)
            summary.failures.append({"stage": "registry", "error": str(exc)})
            return None

    def run(self, total_markets: int | None = None) -> ReconcileSummary:
        summary = ReconcileSummary()
        try:
            if not self.store.is_open:
                self.store.open()
        except StoreUnavailableError as exc:
            logger.error("Snapshot store unavailable: {}", exc)
            summary.status = "storage_unavailable"
            return summary

        total = self._resolve_total(total_markets, summary)

        try:
            with self.store.session_scope() as session:
                repo = SnapshotRepository(session)
                summary.duplicates_removed = repo.remove_duplicate_active()
                if total is None:
                    # Without a registry count, only gaps below the highest stored ID are knowable.
                    total = repo.highest_market_id() + 1
                summary.total_markets = total
                summary.missing_ids = repo.missing_ids(total)
                summary.active_markets = len(repo.market_ids(Partition.ACTIVE))
                summary.finalized_markets = len(repo.market_ids(Partition.FINALIZED))
        except SQLAlchemyError as exc:
            logger.exception("Reconciliation failed")
            summary.status = "storage_unavailable"
            summary.failures.append({"stage": "store", "error": str(exc)})
            return summary

        if summary.duplicates_removed:
            logger.warning(
                "Removed {} markets present in both partitions: {}",
                len(summary.duplicates_removed),
                summary.duplicates_removed,
            )
        if summary.missing_ids:
            logger.warning(
                "{} market IDs below {} are in neither partition",
                len(summary.missing_ids),
                summary.total_markets,
            )
        logger.info(
            "Reconciliation finished: active={}, finalized={}, duplicates_removed={}, missing={}",
            summary.active_markets,
            summary.finalized_markets,
            len(summary.duplicates_removed),
            len(summary.missing_ids),
        )
        return summary


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile the active and finalized market partitions",
    )
    parser.add_argument(
        "--skip-registry",
        action="store_true",
        help="Do not ask the registry for the market count; report gaps below the highest stored ID",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: ReconcileSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Reconciliation summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    store = StoreClient.from_settings(settings)
    fetcher = None if args.skip_registry else MarketRegistryClient.from_settings(settings)
    try:
        summary = ReconciliationPipeline(settings, store, fetcher).run()
    finally:
        store.close()
        if fetcher is not None:
            fetcher.close()

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return 0 if summary.status == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
