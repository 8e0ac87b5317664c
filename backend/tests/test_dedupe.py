from __future__ import annotations

from app.domain import EventKind
from pipelines.dedupe import dedupe_events


def test_status_change_shadows_price_change_for_same_market(make_event):
    status = make_event("status", 1)
    price = make_event("price", 1)
    other_price = make_event("price", 2)

    result = dedupe_events([price, status, other_price])

    assert result == [status, other_price]


def test_new_market_events_move_to_the_end(make_event):
    new_a = make_event("new", 10)
    price = make_event("price", 2)
    new_b = make_event("new", 11)
    status = make_event("status", 3)

    result = dedupe_events([new_a, price, new_b, status])

    assert result == [price, status, new_a, new_b]


def test_markets_without_address_group_by_id(make_event):
    status = make_event("status", 4, address="")
    price_same = make_event("price", 4, address="")
    price_other = make_event("price", 5, address="")

    result = dedupe_events([status, price_same, price_other])

    assert result == [status, price_other]


def test_new_and_status_for_same_market_both_survive(make_event):
    new = make_event("new", 9)
    status = make_event("status", 9, new_status=2)
    price = make_event("price", 9)

    result = dedupe_events([new, status, price])

    assert [event.kind for event in result] == [EventKind.STATUS_CHANGE, EventKind.NEW]


def test_empty_batch():
    assert dedupe_events([]) == []
