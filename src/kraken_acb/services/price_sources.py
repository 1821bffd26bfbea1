from __future__ import annotations

from typing import Iterable, Iterator, Protocol

from kraken_acb.domain.ledger import CAD, USD, TradeGroup, TradeLeg

from .price_types import PriceQuote


class PriceQuoteSource(Protocol):
    def quotes(self) -> Iterator[PriceQuote]: ...


class TradeImpliedPriceSource(PriceQuoteSource):
    """Derive rate samples from trades where one side is a quote currency.

    Pairs produced are asset->CAD, asset->USD and USD->CAD. The rate is always
    quote units per one base unit, computed from the legs' gross amounts.
    """

    def __init__(self, groups: Iterable[TradeGroup], *, quote_ids: tuple[str, ...] = (CAD, USD)) -> None:
        self._groups = list(groups)
        self._quote_ids = quote_ids

    def quotes(self) -> Iterator[PriceQuote]:
        for group in self._groups:
            quote = self._implied_quote(group)
            if quote is not None:
                yield quote

    def _implied_quote(self, group: TradeGroup) -> PriceQuote | None:
        legs = (group.sold, group.bought)
        assets = {leg.asset for leg in legs}
        # CAD wins over USD as quote so a USD/CAD trade yields USD->CAD.
        quote_id = next((code for code in self._quote_ids if code in assets), None)
        if quote_id is None:
            return None

        quote_leg, base_leg = self._split(legs, quote_id)
        if base_leg.gross_units == 0:
            return None
        return PriceQuote(
            timestamp=group.time,
            base_id=base_leg.asset,
            quote_id=quote_id,
            rate=quote_leg.gross_units / base_leg.gross_units,
            source=f"kraken-trade:{group.refid}",
        )

    @staticmethod
    def _split(legs: tuple[TradeLeg, TradeLeg], quote_id: str) -> tuple[TradeLeg, TradeLeg]:
        first, second = legs
        if first.asset == quote_id:
            return first, second
        return second, first


__all__ = [
    "PriceQuoteSource",
    "TradeImpliedPriceSource",
]
