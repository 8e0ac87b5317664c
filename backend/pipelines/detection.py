"""Classify snapshot transitions into newsworthy events."""

from __future__ import annotations

from typing import Any

from app.domain import (
    NEWSWORTHY_STATUSES,
    MarketSnapshot,
    NewMarketEvent,
    NewsEvent,
    PriceChangeEvent,
    StatusChangeEvent,
    status_text,
)

DEFAULT_PRICE_CHANGE_THRESHOLD = 0.20


def _event_fields(current: MarketSnapshot, now_ms: int) -> dict[str, Any]:
    return {
        "market_id": current.market_id,
        "market_address": current.market_address,
        "market_question": current.question,
        "category": current.category,
        "additional_info": current.additional_info,
        "yes_price": current.yes_price,
        "no_price": current.no_price,
        "status_code": current.status_code,
        "timestamp": now_ms,
    }


def percent_move(previous_price: float, current_price: float) -> float:
    """Relative move in percent, rounded to two decimals."""

    return round(abs(current_price - previous_price) / previous_price * 100, 2)


def classify(
    previous: MarketSnapshot | None,
    current: MarketSnapshot,
    *,
    is_new_market: bool,
    now_ms: int,
    threshold: float = DEFAULT_PRICE_CHANGE_THRESHOLD,
) -> list[NewsEvent]:
    """Return every event the transition ``previous -> current`` produces.

    New-market, status-change and price-change checks are independent, so one
    pass can emit all three for the same market. The price check compares the
    rounded percentage against ``threshold * 100``; a move of exactly the
    threshold fires.
    """

    fields = _event_fields(current, now_ms)
    events: list[NewsEvent] = []

    if is_new_market:
        events.append(
            NewMarketEvent(
                **fields,
                initial_yes_price=current.yes_price,
                initial_no_price=current.no_price,
                tvl=current.tvl,
            )
        )

    previous_status = previous.status_code if previous is not None else None
    if current.status_code in NEWSWORTHY_STATUSES and current.status_code != previous_status:
        events.append(
            StatusChangeEvent(
                **fields,
                previous_status=previous_status,
                new_status=current.status_code,
                status_text=status_text(current.status_code),
            )
        )

    if previous is not None and previous.yes_price > 0 and current.yes_price > 0:
        change = percent_move(previous.yes_price, current.yes_price)
        if change >= round(threshold * 100, 2):
            events.append(
                PriceChangeEvent(
                    **fields,
                    previous_price=previous.yes_price,
                    new_price=current.yes_price,
                    percent_change=change,
                    direction="up" if current.yes_price > previous.yes_price else "down",
                )
            )

    return events


__all__ = ["DEFAULT_PRICE_CHANGE_THRESHOLD", "classify", "percent_move"]
