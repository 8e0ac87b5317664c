"""Repository abstractions for database interactions."""

from .featured_repository import FeaturedMarketRepository
from .news_repository import NewsQueueRepository, PostedLedgerRepository
from .snapshot_repository import Partition, SnapshotRepository

__all__ = [
    "FeaturedMarketRepository",
    "NewsQueueRepository",
    "Partition",
    "PostedLedgerRepository",
    "SnapshotRepository",
]
