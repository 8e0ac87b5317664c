from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from loguru import logger

from app.domain import EnrichedEvent, NewsEvent

from .collaborators import Enricher, Enrichment


def _to_enriched(event: NewsEvent, result: Enrichment | str | None) -> EnrichedEvent:
    if result is None:
        return EnrichedEvent(event=event)
    if isinstance(result, str):
        return EnrichedEvent(event=event, context=result.strip() or None)
    text = result.text.strip() if isinstance(result.text, str) else ""
    return EnrichedEvent(event=event, context=text or None, sources=tuple(result.sources or ()))


def _enrich_one(enricher: Enricher, event: NewsEvent, delay_seconds: float) -> EnrichedEvent:
    try:
        return _to_enriched(event, enricher.enrich(event))
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Enrichment failed for market {} ({}): {}",
            event.market_id,
            event.event_type,
            exc,
        )
        return EnrichedEvent(event=event)
    finally:
        if delay_seconds > 0:
            time.sleep(delay_seconds)


def enrich_events(
    events: Sequence[NewsEvent],
    enricher: Enricher,
    *,
    concurrency: int = 1,
    delay_seconds: float = 0.0,
) -> list[EnrichedEvent]:
    """Attach contextual search results to each event.

    Output has the same length and order as ``events``. Failed lookups are not
    retried and leave ``context`` empty. ``delay_seconds`` paces each worker
    after every call.
    """

    if not events:
        return []
    workers = max(1, min(concurrency, len(events)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="enrich") as pool:
        results = list(pool.map(lambda event: _enrich_one(enricher, event, delay_seconds), events))
    enriched_count = sum(1 for item in results if item.context)
    logger.info("Enriched {} of {} events", enriched_count, len(results))
    return results


__all__ = ["enrich_events"]
