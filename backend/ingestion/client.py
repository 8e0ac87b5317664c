from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from app.core.config import Settings
from app.domain import MarketDetail

from .normalize import extract_total_markets, normalize_market_detail


class RegistryUnavailableError(RuntimeError):
    """Raised when the registry cannot report how many markets exist."""


class MarketRegistryClient:
    """Thin wrapper around the market registry's JSON endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        markets_path: str = "/markets",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.markets_path = "/" + markets_path.strip("/")
        self.timeout = timeout
        client_kwargs: dict[str, Any] = {"base_url": self.base_url, "timeout": timeout}
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.Client(**client_kwargs)

    @classmethod
    def from_settings(cls, settings: Settings) -> "MarketRegistryClient":
        return cls(
            base_url=str(settings.registry_base_url),
            markets_path=settings.registry_markets_path,
            timeout=settings.registry_timeout_seconds,
        )

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        logger.debug("Registry GET {} params={}", path, params)
        response = self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    def total_markets(self) -> int:
        try:
            payload = self._get_json(
                self.markets_path, params={"limit": 1, "offset": 0, "sortOrder": "desc"}
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise RegistryUnavailableError(f"Failed to fetch market count: {exc}") from exc

        total = extract_total_markets(payload) if isinstance(payload, dict) else None
        if total is None:
            raise RegistryUnavailableError(f"Registry did not report totalMarkets: {payload!r}")
        return total

    def fetch(self, market_id: int) -> MarketDetail:
        """Fetch one market; transport and decoding errors become a failed detail."""

        try:
            payload = self._get_json(f"{self.markets_path}/{market_id}")
        except httpx.HTTPStatusError as exc:
            return MarketDetail.failure(
                market_id, f"Registry responded {exc.response.status_code}"
            )
        except (httpx.HTTPError, ValueError) as exc:
            return MarketDetail.failure(market_id, f"Registry request failed: {exc}")

        if not isinstance(payload, dict):
            return MarketDetail.failure(market_id, "Registry returned a non-object payload")
        return normalize_market_detail(payload, market_id)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "MarketRegistryClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["MarketRegistryClient", "RegistryUnavailableError"]
