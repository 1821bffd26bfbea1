from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, model_validator

from .ledger import AssetId


class EventKind(StrEnum):
    TRADE_DISPOSITION = "TRADE_DISPOSITION"
    TRADE_ACQUISITION = "TRADE_ACQUISITION"
    REWARD_INCOME = "REWARD_INCOME"
    INTERNAL_TRANSFER = "INTERNAL_TRANSFER"
    DEPOSIT_TRANSFER_IN = "DEPOSIT_TRANSFER_IN"
    WITHDRAWAL_TRANSFER_OUT = "WITHDRAWAL_TRANSFER_OUT"
    WITHDRAWAL_FEE_DISPOSITION = "WITHDRAWAL_FEE_DISPOSITION"


TAXABLE_KINDS = frozenset(
    {
        EventKind.TRADE_DISPOSITION,
        EventKind.REWARD_INCOME,
        EventKind.WITHDRAWAL_FEE_DISPOSITION,
    }
)


class ClassifiedEvent(BaseModel):
    """One unit of pool replay.

    quantity is always positive; the kind decides the direction. value_cad is
    the resolved CAD valuation of the quantity, or None for kinds that are
    replayed at the pool's average cost.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    time: datetime
    refid: str
    txid: str
    seq: int
    leg_index: int = 0
    asset: AssetId
    quantity: Decimal
    value_cad: Decimal | None = None
    unpriced: bool = False
    notes: str = ""

    @model_validator(mode="after")
    def _validate_fields(self) -> ClassifiedEvent:
        if self.quantity < 0:
            raise ValueError("ClassifiedEvent.quantity must be >= 0")
        if self.value_cad is not None and self.value_cad < 0:
            raise ValueError("ClassifiedEvent.value_cad must be >= 0")
        return self

    def sort_key(self) -> tuple[datetime, str, int, int]:
        return self.time, self.refid, self.seq, self.leg_index

    @property
    def is_taxable(self) -> bool:
        return self.kind in TAXABLE_KINDS


class ReplayRecord(BaseModel):
    """Financial outcome of replaying one ClassifiedEvent against its pool.

    Pool fields are None for events that never touch a pool (CAD legs).
    """

    model_config = ConfigDict(frozen=True)

    event: ClassifiedEvent
    units_in: Decimal = Decimal(0)
    units_out: Decimal = Decimal(0)
    proceeds_cad: Decimal = Decimal(0)
    acb_disposed_cad: Decimal = Decimal(0)
    gain_cad: Decimal = Decimal(0)
    income_cad: Decimal = Decimal(0)
    acb_added_cad: Decimal = Decimal(0)
    pool_units_after: Decimal | None = None
    pool_acb_cad_after: Decimal | None = None
