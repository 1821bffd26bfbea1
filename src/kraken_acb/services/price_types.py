from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple


class Pair(NamedTuple):
    base_id: str
    quote_id: str

    def __str__(self) -> str:
        return f"{self.base_id}->{self.quote_id}"


@dataclass(frozen=True)
class PriceQuote:
    """Rate sample: quote units per 1 base unit, observed at timestamp."""

    timestamp: datetime
    base_id: str
    quote_id: str
    rate: Decimal
    source: str

    @property
    def pair(self) -> Pair:
        return Pair(self.base_id, self.quote_id)


__all__ = ["Pair", "PriceQuote"]
