from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import NewType

from pydantic import BaseModel, model_validator

AssetId = NewType("AssetId", str)

CAD = AssetId("CAD")
USD = AssetId("USD")


class LedgerProcessingError(Exception):
    """Base class for errors that abort a ledger run."""


class MalformedRow(LedgerProcessingError):
    def __init__(self, reason: str, *, row_number: int | None = None) -> None:
        location = f"row {row_number}: " if row_number is not None else ""
        super().__init__(f"Malformed ledger {location}{reason}")
        self.row_number = row_number
        self.reason = reason


class TradeGroupError(LedgerProcessingError):
    def __init__(self, message: str, *, refid: str) -> None:
        super().__init__(f"{message} (refid={refid})")
        self.refid = refid


class EntryType(StrEnum):
    TRADE = "trade"
    SPEND = "spend"
    RECEIVE = "receive"
    EARN = "earn"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    OTHER = "other"


TRADE_ENTRY_TYPES = frozenset({EntryType.TRADE, EntryType.SPEND, EntryType.RECEIVE})


class LedgerEntry(BaseModel):
    """One normalized ledger row.

    Amount sign convention:
    - Positive amount is an inflow to the entry's wallet leg.
    - Negative amount is an outflow.
    The fee is charged in the same asset on top of the amount.
    """

    seq: int
    txid: str
    refid: str
    time: datetime
    type: EntryType
    raw_type: str
    subtype: str = ""
    asset: AssetId
    amount: Decimal
    fee: Decimal = Decimal(0)

    @model_validator(mode="after")
    def _validate_fee(self) -> LedgerEntry:
        if self.fee < 0:
            raise ValueError("LedgerEntry.fee must be >= 0")
        return self

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.fee

    @property
    def is_fee_leg(self) -> bool:
        return self.amount == 0 and self.fee > 0

    def sort_key(self) -> tuple[datetime, str, int]:
        return self.time, self.refid, self.seq


class TradeLeg(BaseModel):
    asset: AssetId
    units: Decimal
    gross_units: Decimal

    @model_validator(mode="after")
    def _validate_units(self) -> TradeLeg:
        if self.units <= 0:
            raise ValueError("TradeLeg.units must be > 0")
        return self


class TradeGroup(BaseModel):
    """All trade rows sharing a refid, reduced to one outflow and one inflow leg."""

    refid: str
    txid: str
    time: datetime
    seq: int
    entries: list[LedgerEntry]
    sold: TradeLeg
    bought: TradeLeg

    def sort_key(self) -> tuple[datetime, str, int]:
        return self.time, self.refid, self.seq
