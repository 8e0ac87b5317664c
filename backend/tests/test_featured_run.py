from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from app.repositories import FeaturedMarketRepository, SnapshotRepository
from app.store import StoreClient, StoreUnavailableError
from pipelines import featured_run
from pipelines.collaborators.rules import LargestTvlChooser
from pipelines.featured_run import FeaturedMarketPipeline, featured_history

NOW_MS = 1_700_000_000_000


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def active_store(store, make_snapshot):
    with store.session_scope() as session:
        repo = SnapshotRepository(session)
        repo.save(make_snapshot(0, tvl=50.0))
        repo.save(make_snapshot(1, tvl=300.0))
        repo.save(make_snapshot(2, tvl=1000.0))
        repo.save(make_snapshot(3, tvl=0.0))
        repo.save(make_snapshot(5, tvl=9999.0, status_code=7))
    return store


def _pipeline(settings, store, **kwargs) -> FeaturedMarketPipeline:
    kwargs.setdefault("rng", FixedRandom(0.0))
    return FeaturedMarketPipeline(settings, store, clock=lambda: NOW_MS, **kwargs)


def _history_ids(store) -> list[int]:
    return [item.market.market_id for item in featured_history(store)]


def test_pick_is_recorded_with_timestamp(test_settings, active_store):
    summary = _pipeline(test_settings, active_store, method="direct").run()

    assert summary.status == "completed"
    assert summary.active_markets == 4
    assert summary.eligible_markets == 2
    assert summary.featured["marketId"] == 1
    assert summary.featured["selectedAt"] == NOW_MS
    assert summary.featured["selectionMethod"] == "direct"
    (recorded,) = featured_history(active_store)
    assert recorded.market.market_id == 1
    assert recorded.market.tvl == 300.0
    assert recorded.selected_at == NOW_MS


def test_recent_pick_is_excluded_next_time(test_settings, active_store):
    _pipeline(test_settings, active_store, method="direct").run()

    summary = _pipeline(test_settings, active_store, method="direct").run()

    assert summary.excluded_recent == [1]
    assert summary.featured["marketId"] == 2
    assert _history_ids(active_store) == [2, 1]


def test_exclusion_window_is_configurable(test_settings, active_store):
    settings = test_settings.model_copy(update={"featured_exclude_recent": 0})
    _pipeline(settings, active_store, method="direct").run()

    summary = _pipeline(settings, active_store, method="direct").run()

    assert summary.excluded_recent == []
    assert _history_ids(active_store) == [1, 1]


def test_dry_run_records_nothing(test_settings, active_store):
    summary = _pipeline(test_settings, active_store, method="direct").run(dry_run=True)

    assert summary.featured["marketId"] == 1
    assert _history_ids(active_store) == []


def test_nothing_eligible(test_settings, active_store):
    settings = test_settings.model_copy(update={"featured_min_tvl": 5000.0})

    summary = _pipeline(settings, active_store).run()

    assert summary.status == "nothing_to_feature"
    assert summary.featured is None
    assert _history_ids(active_store) == []


def test_ai_method_uses_chooser(test_settings, store, make_snapshot):
    with store.session_scope() as session:
        repo = SnapshotRepository(session)
        for market_id, tvl in [(10, 300.0), (11, 1000.0), (12, 600.0), (13, 800.0)]:
            repo.save(make_snapshot(market_id, tvl=tvl))
    settings = test_settings.model_copy(update={"featured_ai_candidates": 2})

    summary = _pipeline(settings, store, chooser=LargestTvlChooser(), method="ai").run()

    assert summary.featured["marketId"] == 11
    assert summary.featured["selectionMethod"] == "ai"
    assert summary.featured["selectionReason"] == "Largest TVL among 2 candidates"


def test_storage_unavailable(test_settings):
    store = MagicMock(spec=StoreClient)
    store.is_open = False
    store.open.side_effect = StoreUnavailableError("db down")

    summary = _pipeline(test_settings, store).run()

    assert summary.status == "storage_unavailable"
    store.session_scope.assert_not_called()


def test_history_is_newest_first_and_limited(test_settings, active_store):
    settings = test_settings.model_copy(update={"featured_exclude_recent": 0})
    _pipeline(settings, active_store, method="direct").run()
    _pipeline(settings, active_store, method="direct", rng=FixedRandom(0.99)).run()

    with active_store.session_scope() as session:
        repo = FeaturedMarketRepository(session)
        assert [item.market.market_id for item in repo.list(limit=1)] == [2]
        assert repo.recent_market_ids(5) == [2, 1]
        assert repo.recent_market_ids(0) == []


def test_cli_records_pick_and_lists_history(test_settings, active_store, tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(featured_run, "get_settings", lambda: test_settings)
    summary_path = tmp_path / "featured.json"

    exit_code = featured_run.main(["--method", "rank", "--summary-path", str(summary_path)])

    assert exit_code == 0
    payload = json.loads(summary_path.read_text(encoding="utf-8"))
    assert payload["status"] == "completed"
    assert payload["featured"]["marketId"] in (1, 2)

    capsys.readouterr()
    assert featured_run.main(["--list", "0"]) == 0
    listed = json.loads(capsys.readouterr().out)
    assert [item["marketId"] for item in listed] == [payload["featured"]["marketId"]]
