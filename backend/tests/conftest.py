from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.domain import MarketDetail, MarketSnapshot, NewMarketEvent, PriceChangeEvent, StatusChangeEvent
from app.store import StoreClient


class StubFetcher:
    """In-memory registry keyed by market ID."""

    def __init__(self, details: dict[int, MarketDetail], total: int | None = None) -> None:
        self.details = dict(details)
        self.total = total if total is not None else (max(details) + 1 if details else 0)
        self.fetched: list[int] = []

    def total_markets(self) -> int:
        return self.total

    def fetch(self, market_id: int) -> MarketDetail:
        self.fetched.append(market_id)
        detail = self.details.get(market_id)
        if detail is None:
            return MarketDetail.failure(market_id, "not found")
        return detail


@pytest.fixture
def sample_market_detail_payload() -> dict[str, Any]:
    path = Path(__file__).parent / "data" / "sample_market_detail.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'newsdesk.db'}",
        collaborator_backend="rules",
        enrichment_concurrency=2,
        enrichment_delay_seconds=0.0,
        openai_api_key=None,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    return settings


@pytest.fixture
def store(test_settings) -> StoreClient:
    client = StoreClient.from_settings(test_settings).open()
    yield client
    client.close()


@pytest.fixture
def make_detail() -> Callable[..., MarketDetail]:
    def _make(
        market_id: int,
        *,
        status_code: int = 0,
        yes_price: float = 0.5,
        no_price: float = 0.5,
        question: str | None = None,
        address: str | None = None,
        tvl: float = 1000.0,
    ) -> MarketDetail:
        return MarketDetail(
            market_id=market_id,
            success=True,
            question=question or f"Will market {market_id} resolve yes?",
            status_code=status_code,
            yes_price=yes_price,
            no_price=no_price,
            tvl=tvl,
            market_address=address if address is not None else f"0xmarket{market_id}",
        )

    return _make


@pytest.fixture
def make_snapshot() -> Callable[..., MarketSnapshot]:
    def _make(
        market_id: int,
        *,
        status_code: int = 0,
        yes_price: float = 0.5,
        no_price: float = 0.5,
        category: str | None = "Crypto",
        address: str | None = None,
        question: str | None = None,
        updated_at: int = 0,
        tvl: float = 1000.0,
    ) -> MarketSnapshot:
        return MarketSnapshot(
            market_id=market_id,
            market_address=address if address is not None else f"0xmarket{market_id}",
            question=question or f"Will market {market_id} resolve yes?",
            status_code=status_code,
            yes_price=yes_price,
            no_price=no_price,
            tvl=tvl,
            category=category,
            updated_at=updated_at,
        )

    return _make


def _common(market_id: int, address: str | None, timestamp: int) -> dict[str, Any]:
    return {
        "market_id": market_id,
        "market_address": address if address is not None else f"0xmarket{market_id}",
        "market_question": f"Will market {market_id} resolve yes?",
        "category": "Crypto",
        "additional_info": "",
        "yes_price": 0.5,
        "no_price": 0.5,
        "status_code": 0,
        "timestamp": timestamp,
    }


@pytest.fixture
def make_event() -> Callable[..., Any]:
    """Build a news event of ``kind`` ("new", "status" or "price")."""

    def _make(kind: str, market_id: int, *, address: str | None = None, timestamp: int = 1_000, **extra: Any):
        fields = _common(market_id, address, timestamp)
        if kind == "new":
            return NewMarketEvent(
                **fields,
                initial_yes_price=extra.get("initial_yes_price", 0.5),
                initial_no_price=extra.get("initial_no_price", 0.5),
                tvl=extra.get("tvl", 1000.0),
            )
        if kind == "status":
            new_status = extra.get("new_status", 7)
            return StatusChangeEvent(
                **fields,
                previous_status=extra.get("previous_status", 0),
                new_status=new_status,
                status_text=extra.get("status_text", "Finalized" if new_status == 7 else "Resolution Proposed"),
            )
        if kind == "price":
            return PriceChangeEvent(
                **fields,
                previous_price=extra.get("previous_price", 0.5),
                new_price=extra.get("new_price", 0.7),
                percent_change=extra.get("percent_change", 40.0),
                direction=extra.get("direction", "up"),
            )
        raise ValueError(kind)

    return _make


@pytest.fixture
def stub_fetcher_factory() -> Callable[..., StubFetcher]:
    return StubFetcher
