"""Pick the next featured market from the active partition."""

from __future__ import annotations

import argparse
import json
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import FEATURED_SELECTION_METHODS, Settings, get_settings
from app.domain import FeaturedMarket
from app.repositories import FeaturedMarketRepository, Partition, SnapshotRepository
from app.store import StoreClient, StoreUnavailableError

from .collaborators import FeaturedChooser, build_collaborators
from .differ import epoch_ms
from .featured import eligible_markets, select_featured

STATUS_COMPLETED = "completed"
STATUS_NOTHING_TO_FEATURE = "nothing_to_feature"
STATUS_STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass(slots=True)
class FeaturedRunSummary:
    method: str
    dry_run: bool = False
    status: str = STATUS_COMPLETED
    active_markets: int = 0
    eligible_markets: int = 0
    excluded_recent: list[int] = field(default_factory=list)
    featured: dict[str, Any] | None = None
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "dry_run": self.dry_run,
            "status": self.status,
            "active_markets": self.active_markets,
            "eligible_markets": self.eligible_markets,
            "excluded_recent": self.excluded_recent,
            "featured": self.featured,
            "failures": self.failures,
        }


class FeaturedMarketPipeline:
    def __init__(
        self,
        settings: Settings,
        store: StoreClient,
        chooser: FeaturedChooser | None = None,
        *,
        method: str | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.settings = settings
        self.store = store
        self.chooser = chooser
        self.method = settings.featured_selection_method if method is None else method
        self.rng = rng or random.Random()
        self.clock = clock

    def run(self, dry_run: bool = False) -> FeaturedRunSummary:
        summary = FeaturedRunSummary(method=self.method, dry_run=dry_run)
        logger.info("Starting featured market selection using method: {}", self.method)
        try:
            if not self.store.is_open:
                self.store.open()
        except StoreUnavailableError as exc:
            logger.error("Snapshot store unavailable: {}", exc)
            summary.status = STATUS_STORAGE_UNAVAILABLE
            return summary

        try:
            with self.store.session_scope() as session:
                summary.excluded_recent = FeaturedMarketRepository(session).recent_market_ids(
                    self.settings.featured_exclude_recent
                )
                active = SnapshotRepository(session).range(Partition.ACTIVE)
        except SQLAlchemyError as exc:
            logger.exception("Reading active markets failed")
            summary.status = STATUS_STORAGE_UNAVAILABLE
            summary.failures.append({"stage": "store", "error": str(exc)})
            return summary

        summary.active_markets = len(active)
        logger.info(
            "Total active markets: {}; excluding {} recently featured",
            len(active),
            len(summary.excluded_recent),
        )
        eligible = eligible_markets(
            active,
            min_tvl=self.settings.featured_min_tvl,
            exclude_ids=summary.excluded_recent,
        )
        summary.eligible_markets = len(eligible)
        if not eligible:
            logger.info(
                "No eligible markets to feature (TVL >= {} and not recently featured)",
                self.settings.featured_min_tvl,
            )
            summary.status = STATUS_NOTHING_TO_FEATURE
            return summary

        selection = select_featured(
            eligible,
            self.method,
            rng=self.rng,
            power=self.settings.featured_tvl_power,
            candidate_count=self.settings.featured_ai_candidates,
            chooser=self.chooser,
        )
        if selection is None:
            summary.status = STATUS_NOTHING_TO_FEATURE
            return summary

        featured = FeaturedMarket(
            market=selection.market,
            selected_at=self.clock(),
            selection_method=selection.method,
            reason=selection.reason,
        )
        summary.featured = featured.to_payload()
        if dry_run:
            logger.info("Dry run: featured market not recorded")
        else:
            try:
                with self.store.session_scope() as session:
                    FeaturedMarketRepository(session).push(featured)
            except SQLAlchemyError as exc:
                logger.exception("Recording featured market failed")
                summary.status = STATUS_STORAGE_UNAVAILABLE
                summary.failures.append({"stage": "store", "error": str(exc)})
                return summary

        logger.info(
            'Featured market selected: "{}" (ID: {}, TVL: {})',
            selection.market.question,
            selection.market.market_id,
            selection.market.tvl,
        )
        return summary


def featured_history(store: StoreClient, limit: int | None = None) -> list[FeaturedMarket]:
    """Return featured markets newest first."""

    with store.session_scope() as session:
        return FeaturedMarketRepository(session).list(limit)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Select the next featured market")
    parser.add_argument(
        "--method",
        choices=FEATURED_SELECTION_METHODS,
        default=None,
        help="Override FEATURED_SELECTION_METHOD for this run",
    )
    parser.add_argument(
        "--backend",
        choices=("openai", "rules"),
        default=None,
        help="Collaborator backend used by the ai method (defaults to COLLABORATOR_BACKEND)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Pick a market without recording it",
    )
    parser.add_argument(
        "--list",
        type=int,
        default=None,
        metavar="LIMIT",
        help="Print the LIMIT most recent featured markets as JSON and exit (0 for all)",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Write JSON summary to the specified path",
    )
    return parser.parse_args(argv)


def _write_summary(summary: FeaturedRunSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2), encoding="utf-8")
    logger.info("Featured market summary written to {}", path)


def _resolve_chooser(settings: Settings, backend: str | None) -> FeaturedChooser | None:
    try:
        return build_collaborators(settings, backend).featured_chooser
    except ValueError as exc:
        logger.warning("Featured-market chooser unavailable ({}); the first candidate will be used", exc)
        return None


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    store = StoreClient.from_settings(settings)
    try:
        if args.list is not None:
            try:
                store.open()
            except StoreUnavailableError as exc:
                logger.error("Snapshot store unavailable: {}", exc)
                return 1
            history = featured_history(store, args.list or None)
            print(json.dumps([item.to_payload() for item in history], indent=2))
            return 0

        method = args.method or settings.featured_selection_method
        chooser = _resolve_chooser(settings, args.backend) if method == "ai" else None
        # Opened by FeaturedMarketPipeline.run.
        summary = FeaturedMarketPipeline(settings, store, chooser, method=method).run(
            dry_run=args.dry_run
        )
    finally:
        store.close()

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return 0 if summary.status in (STATUS_COMPLETED, STATUS_NOTHING_TO_FEATURE) else 1


if __name__ == "__main__":
    raise SystemExit(main())
