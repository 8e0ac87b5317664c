from __future__ import annotations

import httpx
import pytest

from app.domain import MarketStatus
from ingestion.client import MarketRegistryClient, RegistryUnavailableError
from ingestion.normalize import extract_total_markets, normalize_market_detail


def test_normalize_market_detail_handles_registry_payload(sample_market_detail_payload):
    detail = normalize_market_detail(sample_market_detail_payload, 12)

    assert detail.success
    assert detail.market_id == 12
    assert detail.question.startswith("Will ETH close above")
    assert detail.status_code == MarketStatus.RESOLUTION_PROPOSED
    assert detail.yes_price == 0.62
    assert detail.no_price == 0.38
    assert detail.tvl == 15234.55
    assert detail.market_address.startswith("0x7a1d")
    assert detail.yes_token == "0x1111111111111111111111111111111111111111"
    assert detail.no_token == "0x2222222222222222222222222222222222222222"
    assert detail.resolution_time == 1767225600


@pytest.mark.parametrize(
    ("status", "expected"),
    [(7, 7), ("Finalized", 7), ("5", 5), ("Open", 0), (None, 0), ("weird", 0)],
)
def test_status_values_are_mapped(status, expected):
    detail = normalize_market_detail({"success": True, "question": "q", "status": status}, 1)

    assert detail.status_code == expected


def test_flat_price_keys_and_missing_fields_default():
    detail = normalize_market_detail({"question": "q", "yesPrice": "0.25"}, 3)

    assert detail.success
    assert detail.yes_price == 0.25
    assert detail.no_price == 0.0
    assert detail.market_address == ""


def test_unsuccessful_payload_becomes_failure():
    detail = normalize_market_detail({"success": False, "error": "Market not found"}, 9)

    assert not detail.success
    assert detail.error == "Market not found"


def test_extract_total_markets():
    assert extract_total_markets({"success": True, "totalMarkets": 42}) == 42
    assert extract_total_markets({"success": False, "totalMarkets": 42}) is None
    assert extract_total_markets({"markets": []}) is None


def _client(handler) -> MarketRegistryClient:
    return MarketRegistryClient(
        base_url="http://registry.test",
        markets_path="markets",
        transport=httpx.MockTransport(handler),
    )


def test_client_reads_total_and_details(sample_market_detail_payload):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/markets":
            assert request.url.params["limit"] == "1"
            return httpx.Response(200, json={"success": True, "totalMarkets": 17, "markets": []})
        return httpx.Response(200, json=sample_market_detail_payload)

    with _client(handler) as client:
        assert client.total_markets() == 17
        detail = client.fetch(4)

    assert seen == ["/markets", "/markets/4"]
    assert detail.success and detail.market_id == 4


def test_client_turns_http_errors_into_failed_details():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "busy"})

    with _client(handler) as client:
        detail = client.fetch(1)
        with pytest.raises(RegistryUnavailableError):
            client.total_markets()

    assert not detail.success
    assert "503" in detail.error


def test_client_turns_transport_errors_into_failed_details():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        detail = client.fetch(2)

    assert not detail.success
    assert "connection refused" in detail.error
