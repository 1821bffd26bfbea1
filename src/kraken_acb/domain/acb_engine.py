from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, assert_never

from pydantic import BaseModel

from .events import ClassifiedEvent, EventKind, ReplayRecord
from .ledger import CAD, AssetId
from .pool import AssetPool, PoolSnapshot

logger = logging.getLogger(__name__)


class ReplayResult(BaseModel):
    records: list[ReplayRecord]
    pools: list[PoolSnapshot]

    def pool(self, asset_id: str) -> PoolSnapshot | None:
        return next((snapshot for snapshot in self.pools if snapshot.asset_id == asset_id), None)


class AcbEngine:
    """Replay classified events into one pooled cost base per asset."""

    def process(self, events: Iterable[ClassifiedEvent]) -> ReplayResult:
        """Events are replayed in (time, refid, row order, leg) order regardless of input order."""
        pools: dict[AssetId, AssetPool] = {}
        records: list[ReplayRecord] = []

        for event in sorted(events, key=lambda item: item.sort_key()):
            records.append(self._apply(event, pools))

        logger.info("Replayed %d events into %d pools", len(records), len(pools))
        return ReplayResult(
            records=records,
            pools=[pools[asset_id].snapshot() for asset_id in sorted(pools)],
        )

    def _apply(self, event: ClassifiedEvent, pools: dict[AssetId, AssetPool]) -> ReplayRecord:
        if event.asset == CAD:
            return self._base_currency_record(event)

        match event.kind:
            case EventKind.TRADE_ACQUISITION | EventKind.DEPOSIT_TRANSFER_IN:
                pool = self._pool_for_inflow(event, pools)
                cost = self._require_value(event)
                pool.add(event.quantity, cost)
                return self._record(event, pool, units_in=event.quantity, acb_added_cad=cost)
            case EventKind.REWARD_INCOME:
                pool = self._pool_for_inflow(event, pools)
                income = self._require_value(event)
                pool.add(event.quantity, income)
                return self._record(
                    event,
                    pool,
                    units_in=event.quantity,
                    income_cad=income,
                    acb_added_cad=income,
                )
            case EventKind.TRADE_DISPOSITION | EventKind.WITHDRAWAL_FEE_DISPOSITION:
                pool = self._pool_for_outflow(event, pools)
                proceeds = self._require_value(event)
                disposed_cost = pool.remove(event.quantity, context=self._context(event))
                return self._record(
                    event,
                    pool,
                    units_out=event.quantity,
                    proceeds_cad=proceeds,
                    acb_disposed_cad=disposed_cost,
                    gain_cad=proceeds - disposed_cost,
                )
            case EventKind.WITHDRAWAL_TRANSFER_OUT:
                pool = self._pool_for_outflow(event, pools)
                removed_cost = pool.remove(event.quantity, context=self._context(event))
                return self._record(event, pool, units_out=event.quantity, acb_disposed_cad=removed_cost)
            case EventKind.INTERNAL_TRANSFER:
                # Allocation moves stay inside the single pool for the asset.
                pool_or_none = pools.get(event.asset)
                if pool_or_none is None:
                    return ReplayRecord(event=event)
                return self._record(event, pool_or_none)
            case _:
                assert_never(event.kind)

    @staticmethod
    def _pool_for_inflow(event: ClassifiedEvent, pools: dict[AssetId, AssetPool]) -> AssetPool:
        pool = pools.get(event.asset)
        if pool is None:
            pool = AssetPool(asset_id=event.asset)
            pools[event.asset] = pool
        return pool

    @staticmethod
    def _pool_for_outflow(event: ClassifiedEvent, pools: dict[AssetId, AssetPool]) -> AssetPool:
        # An unseen asset gets a detached empty pool so the removal fails loudly.
        return pools.get(event.asset) or AssetPool(asset_id=event.asset)

    @staticmethod
    def _require_value(event: ClassifiedEvent) -> Decimal:
        if event.value_cad is None:
            msg = f"{event.kind} at refid={event.refid} has no CAD valuation"
            raise ValueError(msg)
        return event.value_cad

    @staticmethod
    def _context(event: ClassifiedEvent) -> str:
        return f"{event.kind} refid={event.refid} txid={event.txid} @{event.time.isoformat()}"

    @staticmethod
    def _base_currency_record(event: ClassifiedEvent) -> ReplayRecord:
        # CAD is the reporting currency and is never pooled.
        value = event.value_cad or Decimal(0)
        if event.kind is EventKind.REWARD_INCOME:
            return ReplayRecord(event=event, units_in=event.quantity, income_cad=value)
        if event.kind in (EventKind.DEPOSIT_TRANSFER_IN, EventKind.TRADE_ACQUISITION):
            return ReplayRecord(event=event, units_in=event.quantity)
        if event.kind is EventKind.INTERNAL_TRANSFER:
            return ReplayRecord(event=event)
        return ReplayRecord(event=event, units_out=event.quantity)

    @staticmethod
    def _record(
        event: ClassifiedEvent,
        pool: AssetPool,
        *,
        units_in: Decimal = Decimal(0),
        units_out: Decimal = Decimal(0),
        proceeds_cad: Decimal = Decimal(0),
        acb_disposed_cad: Decimal = Decimal(0),
        gain_cad: Decimal = Decimal(0),
        income_cad: Decimal = Decimal(0),
        acb_added_cad: Decimal = Decimal(0),
    ) -> ReplayRecord:
        return ReplayRecord(
            event=event,
            units_in=units_in,
            units_out=units_out,
            proceeds_cad=proceeds_cad,
            acb_disposed_cad=acb_disposed_cad,
            gain_cad=gain_cad,
            income_cad=income_cad,
            acb_added_cad=acb_added_cad,
            pool_units_after=pool.units,
            pool_acb_cad_after=pool.total_acb_cad,
        )
