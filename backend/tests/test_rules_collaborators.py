from __future__ import annotations

from app.domain import EnrichedEvent
from pipelines.collaborators.rules import (
    HeuristicSelector,
    KeywordCategoryClassifier,
    LargestTvlChooser,
    NullEnricher,
    TemplateRanker,
    heuristic_interest,
)
from app.core.config import DEFAULT_MARKET_CATEGORIES


def test_keyword_classifier():
    classifier = KeywordCategoryClassifier(DEFAULT_MARKET_CATEGORIES)

    assert classifier.classify("Will Bitcoin close above $100k?") == "Crypto"
    assert classifier.classify("Who wins the Senate race in Ohio?") == "Politics"
    assert classifier.classify("Will it snow in Lisbon?") == "Other"


def test_classifier_only_returns_configured_categories():
    classifier = KeywordCategoryClassifier(["Sports", "Other"])

    assert classifier.classify("Will Bitcoin close above $100k?") == "Other"


def test_heuristic_prefers_resolutions_and_big_moves(make_event):
    finalized = make_event("status", 1, new_status=7)
    proposed = make_event("status", 2, new_status=2)
    big_move = make_event("price", 3, percent_change=85.0)
    small_move = make_event("price", 4, percent_change=20.0)
    listing = make_event("new", 5)

    scores = [heuristic_interest(event) for event in (finalized, proposed, big_move, small_move, listing)]

    assert scores == [9, 7, 10, 5, 4]


def test_selector_picks_best_scores_stably(make_event):
    events = [
        make_event("new", 0),
        make_event("status", 1, new_status=7),
        make_event("new", 2),
        make_event("price", 3, percent_change=40.0),
    ]

    assert list(HeuristicSelector().select(events, 3)) == [1, 3, 0]


def test_template_ranker_scores_every_event(make_event):
    enriched = [
        EnrichedEvent(event=make_event("price", 0, direction="down", percent_change=30.0)),
        EnrichedEvent(event=make_event("status", 1), context="Resolved YES."),
    ]

    entries = TemplateRanker().rank(enriched)

    assert [entry.index for entry in entries] == [0, 1]
    assert entries[0].headline.endswith("slides 30.00%")
    assert entries[1].headline.startswith("Finalized:")
    assert entries[1].description == "Resolved YES."


def test_null_enricher(make_event):
    assert NullEnricher().enrich(make_event("new", 1)) is None


def test_largest_tvl_chooser_prefers_earlier_candidate_on_ties(make_snapshot):
    candidates = [make_snapshot(1, tvl=500.0), make_snapshot(2, tvl=900.0), make_snapshot(3, tvl=900.0)]

    choice = LargestTvlChooser().choose(candidates)

    assert choice.index == 1
    assert "3 candidates" in choice.reason
