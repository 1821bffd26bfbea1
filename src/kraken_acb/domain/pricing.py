from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from .ledger import LedgerProcessingError


class NoPriorPrice(LedgerProcessingError):
    def __init__(self, base_id: str, quote_id: str, timestamp: datetime) -> None:
        super().__init__(f"No known {base_id}->{quote_id} rate at or before {timestamp.isoformat()}")
        self.base_id = base_id
        self.quote_id = quote_id
        self.timestamp = timestamp


class PriceProvider(Protocol):
    """Lookup interface for asset→quote rates."""

    def rate(self, base_id: str, quote_id: str, timestamp: datetime) -> Decimal: ...
