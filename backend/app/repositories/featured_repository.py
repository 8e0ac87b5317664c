"""Featured-market history persistence."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain import FeaturedMarket
from app.models import FeaturedMarketEntry


class FeaturedMarketRepository:
    """Head-insertion history of featured markets, newest first."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def push(self, featured: FeaturedMarket) -> FeaturedMarketEntry:
        entry = FeaturedMarketEntry(
            market_id=featured.market.market_id,
            selection_method=featured.selection_method,
            reason=featured.reason,
            selected_at=featured.selected_at,
            payload=featured.to_payload(),
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def list(self, limit: int | None = None) -> list[FeaturedMarket]:
        query = select(FeaturedMarketEntry).order_by(FeaturedMarketEntry.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return [FeaturedMarket.from_payload(entry.payload) for entry in self._session.scalars(query)]

    def recent_market_ids(self, count: int) -> list[int]:
        """Return the market IDs of the ``count`` latest picks, newest first."""

        if count <= 0:
            return []
        return list(
            self._session.scalars(
                select(FeaturedMarketEntry.market_id)
                .order_by(FeaturedMarketEntry.id.desc())
                .limit(count)
            )
        )


__all__ = ["FeaturedMarketRepository"]
