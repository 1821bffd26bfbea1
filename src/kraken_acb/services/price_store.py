from __future__ import annotations

from bisect import bisect_right
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol

from kraken_acb.domain.pricing import NoPriorPrice

from .price_types import Pair, PriceQuote


class PriceStore(Protocol):
    def write(self, quote: PriceQuote) -> None: ...

    def read(self, base_id: str, quote_id: str, timestamp: datetime) -> PriceQuote | None: ...


class ImpliedPriceSeries:
    """Append-only, time-ordered rate samples for one pair."""

    def __init__(self, pair: Pair) -> None:
        self.pair = pair
        self._timestamps: list[datetime] = []
        self._quotes: list[PriceQuote] = []

    def __len__(self) -> int:
        return len(self._quotes)

    def append(self, quote: PriceQuote) -> None:
        if quote.pair != self.pair:
            raise ValueError(f"Quote for {quote.pair} cannot join series {self.pair}")
        if self._timestamps and quote.timestamp < self._timestamps[-1]:
            raise ValueError(
                f"Series {self.pair} is time-ordered: {quote.timestamp.isoformat()} "
                f"precedes {self._timestamps[-1].isoformat()}"
            )
        self._timestamps.append(quote.timestamp)
        self._quotes.append(quote)

    def latest_at(self, timestamp: datetime) -> PriceQuote | None:
        """Latest sample with sample.timestamp <= timestamp; the last one wins on ties."""
        idx = bisect_right(self._timestamps, timestamp)
        if idx == 0:
            return None
        return self._quotes[idx - 1]

    @property
    def first_timestamp(self) -> datetime | None:
        return self._timestamps[0] if self._timestamps else None


class SeriesPriceStore(PriceStore):
    def __init__(self, quotes: Iterable[PriceQuote] = ()) -> None:
        self._series: dict[Pair, ImpliedPriceSeries] = {}
        for quote in sorted(quotes, key=lambda item: item.timestamp):
            self.write(quote)

    def write(self, quote: PriceQuote) -> None:
        series = self._series.get(quote.pair)
        if series is None:
            series = ImpliedPriceSeries(quote.pair)
            self._series[quote.pair] = series
        series.append(quote)

    def read(self, base_id: str, quote_id: str, timestamp: datetime) -> PriceQuote | None:
        series = self._series.get(Pair(base_id, quote_id))
        if series is None:
            return None
        return series.latest_at(timestamp)

    def price_at(self, pair: Pair, timestamp: datetime) -> Decimal:
        quote = self.read(pair.base_id, pair.quote_id, timestamp)
        if quote is None:
            raise NoPriorPrice(pair.base_id, pair.quote_id, timestamp)
        return quote.rate

    def series(self) -> dict[Pair, ImpliedPriceSeries]:
        return dict(self._series)


__all__ = ["ImpliedPriceSeries", "PriceStore", "SeriesPriceStore"]
