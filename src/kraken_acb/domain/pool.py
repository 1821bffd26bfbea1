from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from pydantic import BaseModel

from .ledger import AssetId, LedgerProcessingError


class NegativePoolError(LedgerProcessingError):
    def __init__(
        self,
        *,
        asset_id: str,
        attempted_quantity: Decimal,
        available_units: Decimal,
        context: str = "",
    ) -> None:
        self.asset_id = asset_id
        self.attempted_quantity = attempted_quantity
        self.available_units = available_units
        message = (
            f"Insufficient pool units for asset={asset_id} "
            f"attempted={attempted_quantity} available={available_units}"
        )
        if context:
            message = f"{message} ({context})"
        super().__init__(message)


class PoolSnapshot(BaseModel):
    asset_id: AssetId
    units: Decimal
    total_acb_cad: Decimal

    @property
    def average_cost_cad(self) -> Decimal:
        if self.units == 0:
            return Decimal(0)
        return self.total_acb_cad / self.units


@dataclass
class AssetPool:
    """Running quantity and aggregate CAD cost base of one asset."""

    asset_id: AssetId
    units: Decimal = field(default_factory=Decimal)
    total_acb_cad: Decimal = field(default_factory=Decimal)

    @property
    def average_cost_cad(self) -> Decimal:
        if self.units == 0:
            return Decimal(0)
        return self.total_acb_cad / self.units

    def add(self, quantity: Decimal, cost_cad: Decimal) -> None:
        if quantity < 0 or cost_cad < 0:
            raise ValueError(f"Pool additions must be non-negative (asset={self.asset_id})")
        self.units += quantity
        self.total_acb_cad += cost_cad

    def remove(self, quantity: Decimal, *, context: str = "") -> Decimal:
        """Take quantity out at the average cost and return the cost base removed."""
        if quantity < 0:
            raise ValueError(f"Pool removals must be non-negative (asset={self.asset_id})")
        if quantity > self.units:
            raise NegativePoolError(
                asset_id=self.asset_id,
                attempted_quantity=quantity,
                available_units=self.units,
                context=context,
            )
        if quantity == 0:
            return Decimal(0)

        removed_cost = self.total_acb_cad * quantity / self.units
        self.units -= quantity
        self.total_acb_cad -= removed_cost
        if self.units == 0 or self.total_acb_cad < 0:
            # Drop division residue.
            self.total_acb_cad = Decimal(0)
        return removed_cost

    def snapshot(self) -> PoolSnapshot:
        return PoolSnapshot(asset_id=self.asset_id, units=self.units, total_acb_cad=self.total_acb_cad)
