from __future__ import annotations

from typing import Sequence

from app.domain import NewMarketEvent, NewsEvent, PriceChangeEvent, StatusChangeEvent


def dedupe_events(events: Sequence[NewsEvent]) -> list[NewsEvent]:
    """Drop price moves shadowed by a status change and push new listings last.

    Events are grouped by market address (or market ID when the address is
    blank). Within a group that holds a status change, any price change is
    removed. The survivors keep their batch order, except that every
    new-market event moves behind all other kinds.
    """

    status_changed = {
        event.dedupe_key for event in events if isinstance(event, StatusChangeEvent)
    }
    kept = [
        event
        for event in events
        if not (isinstance(event, PriceChangeEvent) and event.dedupe_key in status_changed)
    ]
    return sorted(kept, key=lambda event: isinstance(event, NewMarketEvent))


__all__ = ["dedupe_events"]
