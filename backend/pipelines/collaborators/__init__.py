"""Strategy interfaces and implementations for external collaborators."""

from .base import (
    CategoryClassifier,
    CollaboratorError,
    Collaborators,
    Enricher,
    Enrichment,
    FeaturedChoice,
    FeaturedChooser,
    MarketDetailFetcher,
    Ranker,
    RankingEntry,
    Selector,
)
from .registry import build_collaborators

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
    "build_collaborators",
]
