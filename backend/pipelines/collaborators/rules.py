"""Deterministic collaborators for offline runs and tests."""

from __future__ import annotations

from typing import Mapping, Sequence

from app.domain import (
    EnrichedEvent,
    MarketSnapshot,
    MarketStatus,
    NewMarketEvent,
    NewsEvent,
    PriceChangeEvent,
    StatusChangeEvent,
)

from .base import Enrichment, FeaturedChoice, RankingEntry

DEFAULT_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Crypto": ("bitcoin", "btc", "ethereum", "eth", "solana", "crypto", "token", "coin", "defi"),
    "Politics": ("election", "president", "senate", "congress", "vote", "minister", "trump", "party"),
    "Sports": ("nba", "nfl", "fifa", "world cup", "championship", "match", "win the", "league", "olympic"),
    "Entertainment": ("movie", "film", "album", "oscar", "grammy", "box office", "netflix", "celebrity"),
    "Technology": ("ai ", "openai", "apple", "google", "launch", "iphone", "spacex", "software"),
    "Finance": ("fed", "interest rate", "inflation", "stock", "s&p", "nasdaq", "gdp", "recession"),
}


def heuristic_interest(event: NewsEvent) -> int:
    """Score an event 1-10 from its shape alone."""

    if isinstance(event, StatusChangeEvent):
        return 9 if event.new_status == MarketStatus.FINALIZED else 7
    if isinstance(event, PriceChangeEvent):
        return max(1, min(10, 3 + int(abs(event.percent_change) // 10)))
    if isinstance(event, NewMarketEvent):
        return 4 if event.tvl > 0 else 3
    return 1


class KeywordCategoryClassifier:
    def __init__(
        self,
        categories: Sequence[str],
        keywords: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self.categories = list(categories)
        self.keywords = dict(keywords or DEFAULT_CATEGORY_KEYWORDS)

    def classify(self, question: str) -> str:
        haystack = f" {question.lower()} "
        for category in self.categories:
            for keyword in self.keywords.get(category, ()):
                if keyword in haystack:
                    return category
        return "Other"


class HeuristicSelector:
    """Pick the highest heuristic scores; batch order breaks ties."""

    def select(self, events: Sequence[NewsEvent], k: int) -> Sequence[int]:
        order = sorted(range(len(events)), key=lambda idx: -heuristic_interest(events[idx]))
        return order[:k]


class NullEnricher:
    def enrich(self, event: NewsEvent) -> Enrichment | None:
        return None


class TemplateRanker:
    """Score with :func:`heuristic_interest` and write copy from fixed templates."""

    def rank(self, events: Sequence[EnrichedEvent]) -> Sequence[RankingEntry]:
        return [
            RankingEntry(
                index=idx,
                interest_score=heuristic_interest(enriched.event),
                headline=self._headline(enriched.event),
                description=enriched.context or enriched.event.market_question,
            )
            for idx, enriched in enumerate(events)
        ]

    @staticmethod
    def _headline(event: NewsEvent) -> str:
        if isinstance(event, PriceChangeEvent):
            verb = "jumps" if event.direction == "up" else "slides"
            return f"{event.market_question} {verb} {event.percent_change:.2f}%"
        if isinstance(event, StatusChangeEvent):
            return f"{event.status_text}: {event.market_question}"
        return f"New market: {event.market_question}"


class LargestTvlChooser:
    """Feature the candidate holding the most value; earlier candidates win ties."""

    def choose(self, candidates: Sequence[MarketSnapshot]) -> FeaturedChoice:
        best = max(range(len(candidates)), key=lambda idx: (candidates[idx].tvl, -idx))
        return FeaturedChoice(index=best, reason=f"Largest TVL among {len(candidates)} candidates")


__all__ = [
    "DEFAULT_CATEGORY_KEYWORDS",
    "HeuristicSelector",
    "KeywordCategoryClassifier",
    "LargestTvlChooser",
    "NullEnricher",
    "TemplateRanker",
    "heuristic_interest",
]
