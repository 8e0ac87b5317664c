from __future__ import annotations

import pytest

from pipelines.collaborators.base import CollaboratorError
from pipelines.prefilter import pre_filter


class StubSelector:
    def __init__(self, indices=None, error: Exception | None = None) -> None:
        self.indices = indices or []
        self.error = error
        self.calls: list[tuple[int, int]] = []

    def select(self, events, k):
        self.calls.append((len(events), k))
        if self.error is not None:
            raise self.error
        return self.indices


@pytest.fixture
def batch(make_event):
    return [make_event("price", market_id) for market_id in range(8)]


def test_small_batch_is_returned_without_calling_selector(batch):
    selector = StubSelector([0])

    assert pre_filter(batch[:5], 5, selector) == batch[:5]
    assert selector.calls == []


def test_selector_order_is_respected(batch):
    selector = StubSelector([6, 1, 3, 7, 0])

    result = pre_filter(batch, 5, selector)

    assert selector.calls == [(8, 5)]
    assert [event.market_id for event in result] == [6, 1, 3, 7, 0]


def test_selector_failure_falls_back_to_batch_prefix(batch):
    selector = StubSelector(error=CollaboratorError("timeout"))

    result = pre_filter(batch, 5, selector)

    assert selector.calls == [(8, 5)]
    assert result == batch[:5]


def test_invalid_indices_are_dropped_and_slots_filled(batch):
    selector = StubSelector([7, 7, -1, 42, "3", True, 2])

    result = pre_filter(batch, 5, selector)

    assert [event.market_id for event in result] == [7, 2, 0, 1, 3]


def test_extra_indices_are_truncated(batch):
    selector = StubSelector([0, 1, 2, 3, 4, 5, 6, 7])

    assert len(pre_filter(batch, 5, selector)) == 5


def test_non_iterable_selector_answer_falls_back_to_batch_prefix(batch):
    selector = StubSelector()
    selector.indices = 3

    result = pre_filter(batch, 5, selector)

    assert selector.calls == [(8, 5)]
    assert result == batch[:5]
