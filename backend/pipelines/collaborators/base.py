from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from app.domain import EnrichedEvent, MarketDetail, MarketSnapshot, NewsEvent


class CollaboratorError(Exception):
    """Raised when an external collaborator fails or returns an unusable answer."""


@dataclass(frozen=True, slots=True)
class Enrichment:
    text: str
    sources: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RankingEntry:
    """One scored item returned by a ranker, pointing back at its input by index."""

    index: int
    interest_score: float
    headline: str
    description: str
    image_prompt: str | None = None


@dataclass(frozen=True, slots=True)
class FeaturedChoice:
    index: int
    reason: str = ""


class MarketDetailFetcher(Protocol):
    """Interface implemented by market registry clients."""

    def total_markets(self) -> int:
        """Return the number of markets; IDs are ``0 .. total - 1``."""
        raise NotImplementedError

    def fetch(self, market_id: int) -> MarketDetail:
        """Return the market's current detail, or a failed detail."""
        raise NotImplementedError


class CategoryClassifier(Protocol):
    def classify(self, question: str) -> str:
        """Return a category label for the market question."""
        raise NotImplementedError


class Selector(Protocol):
    def select(self, events: Sequence[NewsEvent], k: int) -> Sequence[int]:
        """Return indices of the ``k`` most interesting events, best first."""
        raise NotImplementedError


class Enricher(Protocol):
    def enrich(self, event: NewsEvent) -> Enrichment | str | None:
        """Return background context for the event, or ``None`` when nothing was found.

        A bare string is accepted as context without sources.
        """
        raise NotImplementedError


class Ranker(Protocol):
    def rank(self, events: Sequence[EnrichedEvent]) -> Sequence[RankingEntry]:
        """Score and describe the whole batch in a single call."""
        raise NotImplementedError


class FeaturedChooser(Protocol):
    def choose(self, candidates: Sequence[MarketSnapshot]) -> FeaturedChoice:
        """Pick the candidate most tied to current news; ``index`` is zero-based."""
        raise NotImplementedError


@dataclass(slots=True)
class Collaborators:
    """Strategy bundle injected into the news pipeline."""

    classifier: CategoryClassifier
    selector: Selector
    enricher: Enricher
    ranker: Ranker
    backend: str = "custom"
    featured_chooser: FeaturedChooser | None = None


__all__ = [
    "CategoryClassifier",
    "CollaboratorError",
    "Collaborators",
    "Enricher",
    "Enrichment",
    "FeaturedChoice",
    "FeaturedChooser",
    "MarketDetailFetcher",
    "Ranker",
    "RankingEntry",
    "Selector",
]
