from __future__ import annotations

from typing import Any, Sequence

from loguru import logger

from app.domain import NewsEvent

from .collaborators import Selector


def _valid_indices(raw: Sequence[Any], size: int, limit: int) -> list[int]:
    chosen: list[int] = []
    seen: set[int] = set()
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        if value < 0 or value >= size or value in seen:
            continue
        seen.add(value)
        chosen.append(value)
        if len(chosen) == limit:
            break
    return chosen


def pre_filter(events: Sequence[NewsEvent], max_count: int, selector: Selector) -> list[NewsEvent]:
    """Bound the batch to ``max_count`` events before the costly stages.

    Batches that already fit are returned untouched without consulting the
    selector. Otherwise the selector's picks come first, in its order, and
    the remaining slots are filled with unpicked events in batch order.
    """

    if max_count <= 0:
        return []
    if len(events) <= max_count:
        return list(events)

    try:
        raw = selector.select(events, max_count)
        chosen = _valid_indices(list(raw or ()), len(events), max_count)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Pre-filter selector failed ({}); keeping first {} events", exc, max_count)
        return list(events[:max_count])

    if len(chosen) < max_count:
        logger.warning(
            "Selector returned {} usable indices for {} slots; filling in batch order",
            len(chosen),
            max_count,
        )
        picked = set(chosen)
        for index in range(len(events)):
            if len(chosen) == max_count:
                break
            if index not in picked:
                chosen.append(index)

    logger.info("Pre-filter kept {} of {} events", len(chosen), len(events))
    return [events[index] for index in chosen]


__all__ = ["pre_filter"]
