from __future__ import annotations

import json
from unittest.mock import MagicMock

from app.models import ActiveMarket, FinalizedMarket
from app.repositories import Partition, SnapshotRepository
from app.store import StoreClient
from pipelines import reconcile_run
from pipelines.reconcile_run import ReconciliationPipeline


def _seed_inconsistent(store) -> None:
    with store.session_scope() as session:
        session.add(ActiveMarket(market_id=0, question="open"))
        session.add(ActiveMarket(market_id=2, question="stuck"))
        session.add(FinalizedMarket(market_id=2, question="stuck", status_code=7))
        session.add(FinalizedMarket(market_id=3, question="done", status_code=7))


def test_reconcile_removes_duplicates_and_reports_gaps(test_settings, store, stub_fetcher_factory):
    _seed_inconsistent(store)
    fetcher = stub_fetcher_factory({}, total=6)

    summary = ReconciliationPipeline(test_settings, store, fetcher).run()

    assert summary.status == "completed"
    assert summary.duplicates_removed == [2]
    assert summary.missing_ids == [1, 4, 5]
    assert (summary.active_markets, summary.finalized_markets) == (1, 2)
    with store.session_scope() as session:
        assert SnapshotRepository(session).find(2)[0] == Partition.FINALIZED


def test_reconcile_is_idempotent(test_settings, store):
    _seed_inconsistent(store)
    pipeline = ReconciliationPipeline(test_settings, store)

    first = pipeline.run(total_markets=4)
    second = pipeline.run(total_markets=4)

    assert first.duplicates_removed == [2]
    assert second.duplicates_removed == []
    assert second.missing_ids == [1]


def test_without_registry_gaps_are_measured_to_highest_id(test_settings, store):
    _seed_inconsistent(store)
    failing = MagicMock()
    failing.total_markets.side_effect = RuntimeError("down")

    summary = ReconciliationPipeline(test_settings, store, failing).run()

    assert summary.total_markets == 4
    assert summary.missing_ids == [1]
    assert summary.failures[0]["stage"] == "registry"


def test_cli_skip_registry(test_settings, tmp_path, monkeypatch):
    seeded = StoreClient.from_settings(test_settings).open()
    _seed_inconsistent(seeded)
    seeded.close()
    monkeypatch.setattr(reconcile_run, "get_settings", lambda: test_settings)
    summary_path = tmp_path / "reconcile.json"

    exit_code = reconcile_run.main(["--skip-registry", "--summary-path", str(summary_path)])

    assert exit_code == 0
    payload = json.loads(summary_path.read_text())
    assert payload["duplicates_removed"] == [2]
    assert payload["missing_ids"] == [1]
