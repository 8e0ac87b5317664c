"""Domain models for market snapshots and the news events derived from them."""

from .models import (
    EnrichedEvent,
    EventKind,
    FeaturedMarket,
    MarketDetail,
    MarketSnapshot,
    MarketStatus,
    NEWSWORTHY_STATUSES,
    NewMarketEvent,
    NewsEvent,
    PostedRecord,
    PriceChangeEvent,
    RankedEvent,
    StatusChangeEvent,
    event_from_payload,
    parse_status,
    status_text,
)

__all__ = [
    "EnrichedEvent",
    "EventKind",
    "FeaturedMarket",
    "MarketDetail",
    "MarketSnapshot",
    "MarketStatus",
    "NEWSWORTHY_STATUSES",
    "NewMarketEvent",
    "NewsEvent",
    "PostedRecord",
    "PriceChangeEvent",
    "RankedEvent",
    "StatusChangeEvent",
    "event_from_payload",
    "parse_status",
    "status_text",
]
