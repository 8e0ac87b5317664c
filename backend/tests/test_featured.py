from __future__ import annotations

import pytest

from pipelines.collaborators.base import CollaboratorError, FeaturedChoice
from pipelines.featured import (
    draw_candidates,
    eligible_markets,
    select_featured,
    selection_weights,
    weighted_choice,
)


class FixedRandom:
    """Replays the given draws, repeating the last one."""

    def __init__(self, *values: float) -> None:
        self.values = list(values)

    def random(self) -> float:
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


class StubChooser:
    def __init__(self, choice=None, error: Exception | None = None) -> None:
        self.choice = choice
        self.error = error
        self.seen: list[list[int]] = []

    def choose(self, candidates):
        self.seen.append([market.market_id for market in candidates])
        if self.error is not None:
            raise self.error
        return self.choice


@pytest.fixture
def markets(make_snapshot):
    return [
        make_snapshot(1, tvl=100.0),
        make_snapshot(2, tvl=400.0),
        make_snapshot(3, tvl=900.0),
    ]


def test_eligibility_filters_low_tvl_and_recent_picks(make_snapshot):
    candidates = [
        make_snapshot(1, tvl=150.0),
        make_snapshot(2, tvl=200.0),
        make_snapshot(3, tvl=0.0),
        make_snapshot(4, tvl=5000.0),
        make_snapshot(5, tvl=250.0),
    ]

    eligible = eligible_markets(candidates, min_tvl=200.0, exclude_ids=[4])

    assert [market.market_id for market in eligible] == [2, 5]


def test_zero_tvl_is_never_eligible(make_snapshot):
    assert eligible_markets([make_snapshot(1, tvl=0.0)], min_tvl=0.0) == []


def test_weights_per_method(markets):
    def weights(method, **kwargs):
        return [(market.market_id, round(weight, 4)) for market, weight in selection_weights(markets, method, **kwargs)]

    assert weights("direct") == [(1, 100.0), (2, 400.0), (3, 900.0)]
    assert weights("sqrt") == [(1, 10.0), (2, 20.0), (3, 30.0)]
    assert weights("power", power=2.0) == [(1, 10000.0), (2, 160000.0), (3, 810000.0)]
    assert weights("rank") == [(3, 1.0), (2, 0.5), (1, 0.3333)]


def test_weighted_choice_walks_cumulative_weights(markets):
    weighted = selection_weights(markets, "direct")

    assert weighted_choice(weighted, FixedRandom(0.0)).market_id == 1
    assert weighted_choice(weighted, FixedRandom(0.2)).market_id == 2
    assert weighted_choice(weighted, FixedRandom(0.5)).market_id == 3
    assert weighted_choice([], FixedRandom(0.5)) is None


def test_rank_method_favours_largest_tvl_first(markets):
    selection = select_featured(markets, "rank", rng=FixedRandom(0.0))

    assert selection.market.market_id == 3
    assert selection.method == "rank"


def test_candidates_are_distinct(markets):
    candidates = draw_candidates(markets, 2, FixedRandom(0.0))

    assert [market.market_id for market in candidates] == [1, 2]
    assert len(draw_candidates(markets, 10, FixedRandom(0.99))) == 3


def test_ai_method_lets_chooser_pick_among_candidates(make_snapshot):
    pool = [make_snapshot(market_id, tvl=1000.0) for market_id in range(5)]
    chooser = StubChooser(FeaturedChoice(index=2, reason="Trending"))

    selection = select_featured(pool, "ai", rng=FixedRandom(0.0), candidate_count=4, chooser=chooser)

    assert chooser.seen == [[0, 1, 2, 3]]
    assert selection.market.market_id == 2
    assert (selection.method, selection.reason) == ("ai", "Trending")


@pytest.mark.parametrize(
    "chooser",
    [
        None,
        StubChooser(error=CollaboratorError("search failed")),
        StubChooser(FeaturedChoice(index=9)),
        StubChooser(FeaturedChoice(index=None)),
    ],
)
def test_ai_method_falls_back_to_first_candidate(make_snapshot, chooser):
    pool = [make_snapshot(market_id, tvl=1000.0) for market_id in range(5)]

    selection = select_featured(pool, "ai", rng=FixedRandom(0.0), candidate_count=4, chooser=chooser)

    assert selection.market.market_id == 0
    assert selection.method == "ai"
    assert selection.reason is None


def test_ai_method_with_few_markets_uses_direct_draw(markets):
    chooser = StubChooser(FeaturedChoice(index=0))

    selection = select_featured(markets, "ai", rng=FixedRandom(0.5), candidate_count=4, chooser=chooser)

    assert chooser.seen == []
    assert selection.market.market_id == 3
    assert selection.method == "direct"


def test_unknown_method_and_empty_pool(markets):
    with pytest.raises(ValueError):
        select_featured(markets, "lottery")
    assert select_featured([], "direct") is None
