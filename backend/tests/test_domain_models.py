from __future__ import annotations

import pytest

from app.domain import (
    FeaturedMarket,
    MarketStatus,
    NewMarketEvent,
    PostedRecord,
    StatusChangeEvent,
    event_from_payload,
    parse_status,
    status_text,
)


def test_status_text_covers_known_and_unknown_codes():
    assert status_text(MarketStatus.RESOLUTION_PROPOSED) == "Resolution Proposed"
    assert status_text(7) == "Finalized"
    assert status_text(0) == "Open"
    assert status_text(4) == "Status 4"
    assert status_text(None) == "Unknown"


def test_parse_status_accepts_text_aliases():
    assert parse_status("ResolutionProposed") == 2
    assert parse_status(" finalized ") == 7
    assert parse_status(3.0) == 3
    assert parse_status(True) == 0


def test_event_payload_uses_camel_case_keys(make_event):
    payload = make_event("status", 7, previous_status=None, new_status=2).to_payload()

    assert payload["eventType"] == "StatusChange"
    assert payload["marketId"] == 7
    assert payload["previousStatus"] is None
    assert payload["statusText"] == "Resolution Proposed"
    assert isinstance(event_from_payload(payload), StatusChangeEvent)


def test_new_market_payload_parses_back(make_event):
    event = make_event("new", 3, tvl=250.0)

    restored = event_from_payload(event.to_payload())

    assert isinstance(restored, NewMarketEvent)
    assert restored == event


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValueError):
        event_from_payload({"eventType": "Delisted", "marketId": 1, "timestamp": 0})


def test_dedupe_key_falls_back_to_market_id(make_event):
    assert make_event("price", 4, address="").dedupe_key == "market:4"
    assert make_event("price", 4, address="0xabc").dedupe_key == "0xabc"


def test_posted_record_identity(make_event):
    event = make_event("price", 2, timestamp=99)

    assert PostedRecord.for_event(event) == PostedRecord(2, 99, "PriceChange")


def test_featured_market_payload_carries_selection(make_snapshot):
    featured = FeaturedMarket(
        market=make_snapshot(4, tvl=750.0),
        selected_at=1_700_000_000_000,
        selection_method="ai",
        reason="Trending",
    )

    payload = featured.to_payload()

    assert payload["marketId"] == 4
    assert payload["tvl"] == 750.0
    assert payload["selectionReason"] == "Trending"
    assert FeaturedMarket.from_payload(payload) == featured
