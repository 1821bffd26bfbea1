from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from kraken_acb.domain.ledger import CAD, USD, TradeGroup
from kraken_acb.domain.pricing import NoPriorPrice

from .price_sources import TradeImpliedPriceSource
from .price_store import SeriesPriceStore
from .price_types import Pair

logger = logging.getLogger(__name__)

USD_CAD = Pair(USD, CAD)


class PriceService:
    """Value assets in CAD from implied trade prices.

    CAD is worth 1. USD uses the implied USD->CAD rate and falls back to the
    supplied constant when no USD/CAD trade precedes the timestamp. Any other
    asset tries asset->CAD first, then asset->USD composed with USD->CAD.
    """

    def __init__(self, store: SeriesPriceStore, *, fallback_usd_cad_fx: Decimal) -> None:
        if fallback_usd_cad_fx <= 0:
            msg = "fallback_usd_cad_fx must be > 0"
            raise ValueError(msg)
        self.store = store
        self.fallback_usd_cad_fx = fallback_usd_cad_fx
        self.fallback_uses = 0

    def rate(self, base_id: str, quote_id: str, timestamp: datetime) -> Decimal:
        if quote_id == CAD:
            return self.cad_rate(base_id, timestamp)
        if base_id == quote_id:
            return Decimal(1)
        return self.store.price_at(Pair(base_id, quote_id), timestamp)

    def usd_cad_rate(self, timestamp: datetime) -> Decimal:
        try:
            return self.store.price_at(USD_CAD, timestamp)
        except NoPriorPrice:
            if self.fallback_uses == 0:
                logger.warning(
                    "No implied USD->CAD rate before %s; using fallback FX %s",
                    timestamp.isoformat(),
                    self.fallback_usd_cad_fx,
                )
            self.fallback_uses += 1
            return self.fallback_usd_cad_fx

    def cad_rate(self, asset_id: str, timestamp: datetime) -> Decimal:
        if asset_id == CAD:
            return Decimal(1)
        if asset_id == USD:
            return self.usd_cad_rate(timestamp)

        try:
            return self.store.price_at(Pair(asset_id, CAD), timestamp)
        except NoPriorPrice:
            pass

        try:
            usd_rate = self.store.price_at(Pair(asset_id, USD), timestamp)
        except NoPriorPrice as err:
            raise NoPriorPrice(asset_id, CAD, timestamp) from err
        return usd_rate * self.usd_cad_rate(timestamp)

    def value_cad(self, asset_id: str, units: Decimal, timestamp: datetime) -> Decimal:
        if units == 0:
            return Decimal(0)
        return units * self.cad_rate(asset_id, timestamp)


def build_price_service(groups: Iterable[TradeGroup], *, fallback_usd_cad_fx: Decimal) -> PriceService:
    """First pass: build every pair's implied price series from the full trade history."""
    source = TradeImpliedPriceSource(groups)
    store = SeriesPriceStore(source.quotes())
    for pair, series in sorted(store.series().items()):
        logger.info("Implied price series %s: %d samples", pair, len(series))
    return PriceService(store, fallback_usd_cad_fx=fallback_usd_cad_fx)


__all__ = ["PriceService", "USD_CAD", "build_price_service"]
