"""Partitioned market snapshot persistence."""

from __future__ import annotations

from enum import Enum
from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.domain import MarketSnapshot
from app.models import ActiveMarket, FinalizedMarket, MarketSnapshotColumns


class Partition(str, Enum):
    ACTIVE = "active"
    FINALIZED = "finalized"


_PARTITION_MODELS: dict[Partition, type[ActiveMarket] | type[FinalizedMarket]] = {
    Partition.ACTIVE: ActiveMarket,
    Partition.FINALIZED: FinalizedMarket,
}


def _to_snapshot(row: MarketSnapshotColumns) -> MarketSnapshot:
    return MarketSnapshot(
        market_id=row.market_id,
        market_address=row.market_address,
        question=row.question,
        status_code=row.status_code,
        yes_price=row.yes_price,
        no_price=row.no_price,
        tvl=row.tvl,
        category=row.category,
        additional_info=row.additional_info,
        yes_token=row.yes_token,
        no_token=row.no_token,
        resolution_time=row.resolution_time,
        updated_at=row.updated_at,
    )


def _apply_snapshot(row: MarketSnapshotColumns, snapshot: MarketSnapshot) -> None:
    row.market_address = snapshot.market_address
    row.question = snapshot.question
    row.status_code = snapshot.status_code
    row.yes_price = snapshot.yes_price
    row.no_price = snapshot.no_price
    row.tvl = snapshot.tvl
    row.category = snapshot.category
    row.additional_info = snapshot.additional_info
    row.yes_token = snapshot.yes_token
    row.no_token = snapshot.no_token
    row.resolution_time = snapshot.resolution_time
    row.updated_at = snapshot.updated_at


class SnapshotRepository:
    """Read and write market snapshots across the active and finalized partitions.

    A market lives in exactly one partition. Moving a market to the finalized
    partition happens inside the caller's transaction, so a rollback leaves it
    where it was.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Queries

    def get(self, market_id: int, partition: Partition) -> MarketSnapshot | None:
        row = self._session.get(_PARTITION_MODELS[partition], market_id)
        return _to_snapshot(row) if row is not None else None

    def find(self, market_id: int) -> tuple[Partition, MarketSnapshot] | None:
        """Return the stored snapshot and its partition, checking active first."""

        for partition in (Partition.ACTIVE, Partition.FINALIZED):
            snapshot = self.get(market_id, partition)
            if snapshot is not None:
                return partition, snapshot
        return None

    def is_finalized(self, market_id: int) -> bool:
        return self._session.get(FinalizedMarket, market_id) is not None

    def range(
        self,
        partition: Partition,
        *,
        min_id: int | None = None,
        max_id: int | None = None,
    ) -> list[MarketSnapshot]:
        model = _PARTITION_MODELS[partition]
        query = select(model).order_by(model.market_id)
        if min_id is not None:
            query = query.where(model.market_id >= min_id)
        if max_id is not None:
            query = query.where(model.market_id <= max_id)
        return [_to_snapshot(row) for row in self._session.scalars(query)]

    def market_ids(self, partition: Partition) -> list[int]:
        model = _PARTITION_MODELS[partition]
        return list(self._session.scalars(select(model.market_id).order_by(model.market_id)))

    def highest_market_id(self) -> int:
        """Return the highest market ID stored in either partition, or -1 when empty."""

        highest = -1
        for model in _PARTITION_MODELS.values():
            value = self._session.scalar(select(func.max(model.market_id)))
            if value is not None and value > highest:
                highest = int(value)
        return highest

    # ------------------------------------------------------------------
    # Mutations

    def save(self, snapshot: MarketSnapshot) -> Partition:
        """Store ``snapshot`` in the partition its status calls for."""

        finalized_row = self._session.get(FinalizedMarket, snapshot.market_id)
        if finalized_row is not None:
            if snapshot.is_finalized:
                _apply_snapshot(finalized_row, snapshot)
            else:
                logger.warning(
                    "Ignoring non-final snapshot for finalized market {} (status {})",
                    snapshot.market_id,
                    snapshot.status_code,
                )
            self._remove_active(snapshot.market_id)
            return Partition.FINALIZED

        if snapshot.is_finalized:
            self._remove_active(snapshot.market_id)
            row = FinalizedMarket(market_id=snapshot.market_id)
            _apply_snapshot(row, snapshot)
            self._session.add(row)
            self._session.flush()
            logger.info("Market {} moved to finalized markets", snapshot.market_id)
            return Partition.FINALIZED

        active_row = self._session.get(ActiveMarket, snapshot.market_id)
        if active_row is None:
            active_row = ActiveMarket(market_id=snapshot.market_id)
            self._session.add(active_row)
        _apply_snapshot(active_row, snapshot)
        self._session.flush()
        return Partition.ACTIVE

    def _remove_active(self, market_id: int) -> bool:
        row = self._session.get(ActiveMarket, market_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def remove_duplicate_active(self) -> list[int]:
        """Drop active rows whose market is already finalized; safe to re-run."""

        duplicate_ids = list(
            self._session.scalars(
                select(ActiveMarket.market_id)
                .join(FinalizedMarket, FinalizedMarket.market_id == ActiveMarket.market_id)
                .order_by(ActiveMarket.market_id)
            )
        )
        if duplicate_ids:
            self._session.execute(
                delete(ActiveMarket).where(ActiveMarket.market_id.in_(duplicate_ids))
            )
        return duplicate_ids

    def missing_ids(self, total_markets: int) -> list[int]:
        """Return IDs in ``[0, total_markets)`` that neither partition holds."""

        known: set[int] = set()
        for partition in _PARTITION_MODELS:
            known.update(self.market_ids(partition))
        return [market_id for market_id in range(total_markets) if market_id not in known]


__all__ = ["Partition", "SnapshotRepository"]
