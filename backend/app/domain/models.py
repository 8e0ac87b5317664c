"""Typed domain representations shared by the differ, the pipeline stages and the queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, ClassVar, Mapping


class MarketStatus(IntEnum):
    """Registry status codes that carry meaning for the news desk.

    Any other integer code is treated as open-like and stored verbatim.
    """

    OPEN = 0
    RESOLUTION_PROPOSED = 2
    FINALIZED = 7


NEWSWORTHY_STATUSES = frozenset({MarketStatus.RESOLUTION_PROPOSED, MarketStatus.FINALIZED})

_STATUS_TEXT = {
    MarketStatus.OPEN: "Open",
    MarketStatus.RESOLUTION_PROPOSED: "Resolution Proposed",
    MarketStatus.FINALIZED: "Finalized",
}

_STATUS_ALIASES = {
    "open": MarketStatus.OPEN,
    "resolution proposed": MarketStatus.RESOLUTION_PROPOSED,
    "resolutionproposed": MarketStatus.RESOLUTION_PROPOSED,
    "finalized": MarketStatus.FINALIZED,
}


def status_text(code: int | None) -> str:
    if code is None:
        return "Unknown"
    try:
        return _STATUS_TEXT[MarketStatus(code)]
    except (ValueError, KeyError):
        return f"Status {code}"


def parse_status(value: Any) -> int:
    """Map a registry status (numeric code or text) onto an integer code."""

    if isinstance(value, bool):
        return int(MarketStatus.OPEN)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        candidate = value.strip()
        if candidate.lstrip("-").isdigit():
            return int(candidate)
        return int(_STATUS_ALIASES.get(candidate.lower(), MarketStatus.OPEN))
    return int(MarketStatus.OPEN)


class EventKind(str, Enum):
    NEW = "New"
    STATUS_CHANGE = "StatusChange"
    PRICE_CHANGE = "PriceChange"


@dataclass(frozen=True, slots=True)
class MarketDetail:
    """Result of a single market-detail fetch."""

    market_id: int
    success: bool
    question: str = ""
    status_code: int = int(MarketStatus.OPEN)
    yes_price: float = 0.0
    no_price: float = 0.0
    tvl: float = 0.0
    market_address: str = ""
    additional_info: str = ""
    yes_token: str = ""
    no_token: str = ""
    resolution_time: int = 0
    error: str | None = None

    @classmethod
    def failure(cls, market_id: int, error: str) -> "MarketDetail":
        return cls(market_id=market_id, success=False, error=error)

    def to_snapshot(self, *, category: str, updated_at: int) -> "MarketSnapshot":
        return MarketSnapshot(
            market_id=self.market_id,
            market_address=self.market_address,
            question=self.question,
            status_code=self.status_code,
            yes_price=self.yes_price,
            no_price=self.no_price,
            tvl=self.tvl,
            category=category,
            additional_info=self.additional_info,
            yes_token=self.yes_token,
            no_token=self.no_token,
            resolution_time=self.resolution_time,
            updated_at=updated_at,
        )


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Last observed state of a market as held by the snapshot store."""

    market_id: int
    market_address: str
    question: str
    status_code: int
    yes_price: float
    no_price: float
    tvl: float
    category: str | None
    additional_info: str = ""
    yes_token: str = ""
    no_token: str = ""
    resolution_time: int = 0
    updated_at: int = 0

    @property
    def is_finalized(self) -> bool:
        return self.status_code == MarketStatus.FINALIZED

    def to_payload(self) -> dict[str, Any]:
        return {
            "marketId": self.market_id,
            "marketAddress": self.market_address,
            "marketQuestion": self.question,
            "status": self.status_code,
            "yesPrice": self.yes_price,
            "noPrice": self.no_price,
            "tvl": self.tvl,
            "category": self.category,
            "additionalInfo": self.additional_info,
            "yesToken": self.yes_token,
            "noToken": self.no_token,
            "resolutionTime": self.resolution_time,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MarketSnapshot":
        return cls(
            market_id=int(payload["marketId"]),
            market_address=str(payload.get("marketAddress") or ""),
            question=str(payload.get("marketQuestion") or ""),
            status_code=parse_status(payload.get("status")),
            yes_price=float(payload.get("yesPrice") or 0.0),
            no_price=float(payload.get("noPrice") or 0.0),
            tvl=float(payload.get("tvl") or 0.0),
            category=payload.get("category"),
            additional_info=str(payload.get("additionalInfo") or ""),
            yes_token=str(payload.get("yesToken") or ""),
            no_token=str(payload.get("noToken") or ""),
            resolution_time=int(payload.get("resolutionTime") or 0),
            updated_at=int(payload.get("updatedAt") or 0),
        )


@dataclass(frozen=True, slots=True)
class NewsEvent:
    """Fields every newsworthy event carries, copied from the market at emission time."""

    kind: ClassVar[EventKind]

    market_id: int
    market_address: str
    market_question: str
    category: str | None
    additional_info: str
    yes_price: float
    no_price: float
    status_code: int
    timestamp: int

    @property
    def event_type(self) -> str:
        return self.kind.value

    @property
    def dedupe_key(self) -> str:
        return self.market_address or f"market:{self.market_id}"

    def to_payload(self) -> dict[str, Any]:
        return {
            "eventType": self.kind.value,
            "marketId": self.market_id,
            "marketAddress": self.market_address,
            "marketQuestion": self.market_question,
            "category": self.category,
            "additionalInfo": self.additional_info,
            "yesPrice": self.yes_price,
            "noPrice": self.no_price,
            "status": self.status_code,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def _common_kwargs(payload: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "market_id": int(payload["marketId"]),
            "market_address": str(payload.get("marketAddress") or ""),
            "market_question": str(payload.get("marketQuestion") or ""),
            "category": payload.get("category"),
            "additional_info": str(payload.get("additionalInfo") or ""),
            "yes_price": float(payload.get("yesPrice") or 0.0),
            "no_price": float(payload.get("noPrice") or 0.0),
            "status_code": parse_status(payload.get("status")),
            "timestamp": int(payload["timestamp"]),
        }


@dataclass(frozen=True, slots=True)
class NewMarketEvent(NewsEvent):
    kind: ClassVar[EventKind] = EventKind.NEW

    initial_yes_price: float
    initial_no_price: float
    tvl: float

    def to_payload(self) -> dict[str, Any]:
        payload = NewsEvent.to_payload(self)
        payload.update(
            {
                "initialYesPrice": self.initial_yes_price,
                "initialNoPrice": self.initial_no_price,
                "tvl": self.tvl,
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "NewMarketEvent":
        return cls(
            **NewsEvent._common_kwargs(payload),
            initial_yes_price=float(payload.get("initialYesPrice") or 0.0),
            initial_no_price=float(payload.get("initialNoPrice") or 0.0),
            tvl=float(payload.get("tvl") or 0.0),
        )


@dataclass(frozen=True, slots=True)
class StatusChangeEvent(NewsEvent):
    kind: ClassVar[EventKind] = EventKind.STATUS_CHANGE

    previous_status: int | None
    new_status: int
    status_text: str

    def to_payload(self) -> dict[str, Any]:
        payload = NewsEvent.to_payload(self)
        payload.update(
            {
                "previousStatus": self.previous_status,
                "newStatus": self.new_status,
                "statusText": self.status_text,
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StatusChangeEvent":
        previous = payload.get("previousStatus")
        return cls(
            **NewsEvent._common_kwargs(payload),
            previous_status=None if previous is None else parse_status(previous),
            new_status=parse_status(payload.get("newStatus")),
            status_text=str(payload.get("statusText") or ""),
        )


@dataclass(frozen=True, slots=True)
class PriceChangeEvent(NewsEvent):
    kind: ClassVar[EventKind] = EventKind.PRICE_CHANGE

    previous_price: float
    new_price: float
    percent_change: float
    direction: str

    def to_payload(self) -> dict[str, Any]:
        payload = NewsEvent.to_payload(self)
        payload.update(
            {
                "previousPrice": self.previous_price,
                "newPrice": self.new_price,
                "percentChange": self.percent_change,
                "direction": self.direction,
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PriceChangeEvent":
        return cls(
            **NewsEvent._common_kwargs(payload),
            previous_price=float(payload["previousPrice"]),
            new_price=float(payload["newPrice"]),
            percent_change=float(payload["percentChange"]),
            direction=str(payload["direction"]),
        )


_EVENT_TYPES: dict[str, type[NewsEvent]] = {
    EventKind.NEW.value: NewMarketEvent,
    EventKind.STATUS_CHANGE.value: StatusChangeEvent,
    EventKind.PRICE_CHANGE.value: PriceChangeEvent,
}


def event_from_payload(payload: Mapping[str, Any]) -> NewsEvent:
    event_type = payload.get("eventType")
    event_cls = _EVENT_TYPES.get(str(event_type))
    if event_cls is None:
        raise ValueError(f"Unknown news event type: {event_type!r}")
    return event_cls.from_payload(payload)  # type: ignore[attr-defined]


@dataclass(frozen=True, slots=True)
class PostedRecord:
    """Identity of a logical event that the publisher has already delivered."""

    market_id: int
    timestamp: int
    event_type: str

    @classmethod
    def for_event(cls, event: NewsEvent) -> "PostedRecord":
        return cls(market_id=event.market_id, timestamp=event.timestamp, event_type=event.event_type)


@dataclass(frozen=True, slots=True)
class EnrichedEvent:
    event: NewsEvent
    context: str | None = None
    sources: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RankedEvent:
    """News event with the ranker's score and copy attached."""

    event: NewsEvent
    interest_score: int
    headline: str
    description: str
    image_prompt: str | None = None
    context: str | None = None
    sources: tuple[str, ...] = field(default_factory=tuple)

    @property
    def key(self) -> PostedRecord:
        return PostedRecord.for_event(self.event)

    def to_payload(self) -> dict[str, Any]:
        payload = self.event.to_payload()
        payload.update(
            {
                "interestScore": self.interest_score,
                "headline": self.headline,
                "newsDescription": self.description,
                "imagePrompt": self.image_prompt,
                "webSearchResults": self.context,
                "sources": list(self.sources),
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RankedEvent":
        return cls(
            event=event_from_payload(payload),
            interest_score=int(payload.get("interestScore") or 0),
            headline=str(payload.get("headline") or ""),
            description=str(payload.get("newsDescription") or ""),
            image_prompt=payload.get("imagePrompt"),
            context=payload.get("webSearchResults"),
            sources=tuple(str(item) for item in payload.get("sources") or ()),
        )


@dataclass(frozen=True, slots=True)
class FeaturedMarket:
    """An active market picked for the featured slot, newest first in storage."""

    market: MarketSnapshot
    selected_at: int
    selection_method: str
    reason: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.market.to_payload()
        payload.update(
            {
                "selectedAt": self.selected_at,
                "selectionMethod": self.selection_method,
                "selectionReason": self.reason,
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FeaturedMarket":
        return cls(
            market=MarketSnapshot.from_payload(payload),
            selected_at=int(payload.get("selectedAt") or 0),
            selection_method=str(payload.get("selectionMethod") or ""),
            reason=payload.get("selectionReason"),
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
