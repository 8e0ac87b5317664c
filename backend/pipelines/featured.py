"""TVL-weighted selection of the featured market."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Iterable, Sequence

from loguru import logger

from app.domain import MarketSnapshot

from .collaborators import FeaturedChooser

SELECTION_METHOD_NAMES = {
    "direct": "Direct proportional (TVL)",
    "sqrt": "Square root transformation",
    "rank": "Rank-based",
    "power": "Power function",
    "ai": "AI selection with latest news",
}

DEFAULT_MIN_TVL = 200.0
DEFAULT_TVL_POWER = 2.0
DEFAULT_AI_CANDIDATES = 4


@dataclass(frozen=True, slots=True)
class FeaturedSelection:
    market: MarketSnapshot
    method: str
    reason: str | None = None


def eligible_markets(
    markets: Iterable[MarketSnapshot],
    *,
    min_tvl: float = DEFAULT_MIN_TVL,
    exclude_ids: Iterable[int] = (),
) -> list[MarketSnapshot]:
    """Markets with a positive TVL of at least ``min_tvl`` that were not featured recently."""

    excluded = set(exclude_ids)
    return [
        market
        for market in markets
        if market.tvl > 0 and market.tvl >= min_tvl and market.market_id not in excluded
    ]


def selection_weights(
    markets: Sequence[MarketSnapshot],
    method: str,
    *,
    power: float = DEFAULT_TVL_POWER,
) -> list[tuple[MarketSnapshot, float]]:
    """Pair each market with its draw weight; ``rank`` also reorders by TVL, largest first."""

    if method == "sqrt":
        return [(market, math.sqrt(max(market.tvl, 0.0))) for market in markets]
    if method == "power":
        return [(market, max(market.tvl, 0.0) ** power) for market in markets]
    if method == "rank":
        ordered = sorted(markets, key=lambda market: market.tvl, reverse=True)
        return [(market, 1.0 / (position + 1)) for position, market in enumerate(ordered)]
    return [(market, max(market.tvl, 0.0)) for market in markets]


def weighted_choice(
    weighted: Sequence[tuple[MarketSnapshot, float]],
    rng: random.Random,
) -> MarketSnapshot | None:
    if not weighted:
        return None
    total = sum(weight for _, weight in weighted)
    target = rng.random() * total
    cumulative = 0.0
    for market, weight in weighted:
        cumulative += weight
        if target <= cumulative:
            return market
    # Float rounding can leave target just above the final cumulative sum.
    return weighted[-1][0]


def draw_candidates(
    markets: Sequence[MarketSnapshot],
    count: int,
    rng: random.Random,
) -> list[MarketSnapshot]:
    """Draw up to ``count`` distinct markets, each draw proportional to TVL."""

    remaining = list(markets)
    candidates: list[MarketSnapshot] = []
    while remaining and len(candidates) < count:
        picked = weighted_choice(selection_weights(remaining, "direct"), rng)
        if picked is None:
            break
        candidates.append(picked)
        remaining = [market for market in remaining if market.market_id != picked.market_id]
    return candidates


def _choose_with_news(
    markets: Sequence[MarketSnapshot],
    chooser: FeaturedChooser | None,
    *,
    candidate_count: int,
    rng: random.Random,
) -> FeaturedSelection | None:
    if len(markets) <= candidate_count:
        logger.info(
            "Not enough markets ({}) for AI selection; using direct proportional selection",
            len(markets),
        )
        picked = weighted_choice(selection_weights(markets, "direct"), rng)
        return FeaturedSelection(market=picked, method="direct") if picked is not None else None

    candidates = draw_candidates(markets, candidate_count, rng)
    logger.info("Selected {} candidate markets for AI evaluation", len(candidates))
    if not candidates:
        return None
    if len(candidates) == 1:
        return FeaturedSelection(market=candidates[0], method="ai")
    if chooser is None:
        logger.warning("No featured-market chooser configured; using the first candidate")
        return FeaturedSelection(market=candidates[0], method="ai")

    try:
        choice = chooser.choose(candidates)
        index = choice.index
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(candidates):
            logger.warning("Chooser returned unusable candidate index {!r}; using the first candidate", index)
            return FeaturedSelection(market=candidates[0], method="ai")
        reason = choice.reason or None
    except Exception as exc:  # noqa: BLE001
        logger.warning("Featured-market chooser failed ({}); using the first candidate", exc)
        return FeaturedSelection(market=candidates[0], method="ai")

    logger.info("Chooser picked candidate {}: {}", index + 1, reason)
    return FeaturedSelection(market=candidates[index], method="ai", reason=reason)


def select_featured(
    markets: Sequence[MarketSnapshot],
    method: str = "direct",
    *,
    rng: random.Random | None = None,
    power: float = DEFAULT_TVL_POWER,
    candidate_count: int = DEFAULT_AI_CANDIDATES,
    chooser: FeaturedChooser | None = None,
) -> FeaturedSelection | None:
    """Draw one market from ``markets`` with the requested weighting.

    Returns ``None`` only when ``markets`` is empty. The ``ai`` method draws
    TVL-weighted candidates and lets ``chooser`` pick among them; any chooser
    failure keeps the first candidate.
    """

    if method not in SELECTION_METHOD_NAMES:
        raise ValueError(f"Unknown featured selection method '{method}'")
    if not markets:
        return None
    rng = rng or random.Random()
    logger.info("Using selection method: {}", SELECTION_METHOD_NAMES[method])

    if method == "ai":
        return _choose_with_news(markets, chooser, candidate_count=candidate_count, rng=rng)
    picked = weighted_choice(selection_weights(markets, method, power=power), rng)
    return FeaturedSelection(market=picked, method=method) if picked is not None else None


__all__ = [
    "FeaturedSelection",
    "SELECTION_METHOD_NAMES",
    "draw_candidates",
    "eligible_markets",
    "select_featured",
    "selection_weights",
    "weighted_choice",
]
