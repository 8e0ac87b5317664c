from __future__ import annotations

import math
from typing import Sequence

from loguru import logger

from app.domain import EnrichedEvent, RankedEvent

from .collaborators import Ranker, RankingEntry

MIN_INTEREST_SCORE = 1
MAX_INTEREST_SCORE = 10
UNSCORED = 0


def clamp_score(value: float) -> int:
    if math.isnan(value):
        return MIN_INTEREST_SCORE
    if math.isinf(value):
        return MAX_INTEREST_SCORE if value > 0 else MIN_INTEREST_SCORE
    return int(max(MIN_INTEREST_SCORE, min(MAX_INTEREST_SCORE, round(value))))


def _usable_entry(entry: object, size: int) -> bool:
    index = getattr(entry, "index", None)
    score = getattr(entry, "interest_score", None)
    if isinstance(index, bool) or not isinstance(index, int):
        logger.warning("Ignoring ranking entry without an integer index: {!r}", entry)
        return False
    if not 0 <= index < size:
        logger.warning("Ignoring ranking entry with out-of-range index {}", index)
        return False
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
        logger.warning("Ignoring ranking entry {} with unusable score {!r}", index, score)
        return False
    return True


def _unscored(enriched: EnrichedEvent) -> RankedEvent:
    return RankedEvent(
        event=enriched.event,
        interest_score=UNSCORED,
        headline=enriched.event.market_question,
        description=enriched.context or "",
        context=enriched.context,
        sources=enriched.sources,
    )


def _scored(enriched: EnrichedEvent, entry: RankingEntry) -> RankedEvent:
    return RankedEvent(
        event=enriched.event,
        interest_score=clamp_score(entry.interest_score),
        headline=entry.headline or enriched.event.market_question,
        description=entry.description or enriched.context or "",
        image_prompt=entry.image_prompt,
        context=enriched.context,
        sources=enriched.sources,
    )


def rank_events(enriched: Sequence[EnrichedEvent], ranker: Ranker) -> list[RankedEvent]:
    """Score the batch with a single ranker call, in input order.

    Entries are matched back by index. Entries whose index is unusable or already
    taken, or whose score is not finite, are ignored and the events they
    point at stay unscored. If the call fails the whole batch comes back
    unscored.
    """

    if not enriched:
        return []
    try:
        by_index: dict[int, RankingEntry] = {}
        for entry in ranker.rank(enriched) or ():
            if not _usable_entry(entry, len(enriched)):
                continue
            if entry.index in by_index:
                logger.warning("Ignoring repeated ranking entry for index {}", entry.index)
                continue
            by_index[entry.index] = entry

        ranked = [
            _scored(item, by_index[idx]) if idx in by_index else _unscored(item)
            for idx, item in enumerate(enriched)
        ]
    except Exception as exc:  # noqa: BLE001
        logger.warning("Ranking failed ({}); keeping {} events unscored", exc, len(enriched))
        return [_unscored(item) for item in enriched]
    logger.info("Ranked {} of {} events", len(by_index), len(enriched))
    return ranked


def select_top(ranked: Sequence[RankedEvent], max_posts: int) -> list[RankedEvent]:
    """Keep the ``max_posts`` highest scores, returned in ascending score order.

    Equal scores keep their input order.
    """

    if max_posts <= 0:
        return []
    ordered = sorted(ranked, key=lambda item: item.interest_score)
    return ordered[-max_posts:]


__all__ = [
    "MAX_INTEREST_SCORE",
    "MIN_INTEREST_SCORE",
    "UNSCORED",
    "clamp_score",
    "rank_events",
    "select_top",
]
