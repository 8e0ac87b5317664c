from __future__ import annotations

import json
from typing import Any, Mapping

from app.domain import MarketDetail, parse_status


def _as_mapping(value: Any) -> Mapping[str, Any]:
    """Return value as a mapping when possible, decoding JSON strings."""
    if isinstance(value, Mapping):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, Mapping) else {}
    return {}


def _parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        float_val = _parse_float(value)
        if float_val is None:
            return None
        return int(round(float_val))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _price(raw: Mapping[str, Any], side: str) -> float:
    prices = _as_mapping(raw.get("prices"))
    candidates = (prices.get(side), raw.get(f"{side}Price"))
    for candidate in candidates:
        parsed = _parse_float(candidate)
        if parsed is not None:
            return parsed
    return 0.0


def _token(raw: Mapping[str, Any], side: str) -> str:
    tokens = _as_mapping(raw.get("tokens"))
    token = _as_mapping(tokens.get(side))
    return _text(token.get("tokenAddress") or raw.get(f"{side}Token"))


def normalize_market_detail(raw: Mapping[str, Any] | str, market_id: int) -> MarketDetail:
    """Convert a registry market-detail payload into a :class:`MarketDetail`.

    The registry reports prices under ``prices.yes``/``prices.no`` and token
    addresses under ``tokens.<side>.tokenAddress``; flat ``yesPrice``-style
    keys are accepted as well. A payload with ``success: false`` becomes a
    failed detail carrying the registry's error message.
    """

    payload = _as_mapping(raw)
    if not payload:
        return MarketDetail.failure(market_id, "Registry returned an empty or malformed payload")

    if payload.get("success") is False:
        return MarketDetail.failure(
            market_id, _text(payload.get("error")) or "Registry reported failure"
        )

    body = _as_mapping(payload.get("market")) or payload

    return MarketDetail(
        market_id=market_id,
        success=True,
        question=_text(body.get("question") or body.get("marketQuestion")),
        status_code=parse_status(body.get("status")),
        yes_price=_price(body, "yes"),
        no_price=_price(body, "no"),
        tvl=_parse_float(body.get("tvl")) or 0.0,
        market_address=_text(body.get("marketAddress")),
        additional_info=_text(body.get("additionalInfo")),
        yes_token=_token(body, "yes"),
        no_token=_token(body, "no"),
        resolution_time=_parse_int(body.get("resolutionTime")) or 0,
    )


def extract_total_markets(raw: Mapping[str, Any] | str) -> int | None:
    """Read the market count from a registry listing payload."""

    payload = _as_mapping(raw)
    if payload.get("success") is False:
        return None
    for key in ("totalMarkets", "total", "count"):
        value = _parse_int(payload.get(key))
        if value is not None:
            return value
    return None
