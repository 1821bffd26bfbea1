from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from kraken_acb.domain.events import EventKind, ReplayRecord
from kraken_acb.domain.pool import PoolSnapshot

from .formatting import format_currency
from .pool_summary import render_pool_summary

@dataclass
class TaxSummary:
    tax_year: int
    total_proceeds_cad: Decimal = Decimal(0)
    total_acb_disposed_cad: Decimal = Decimal(0)
    net_gain_cad: Decimal = Decimal(0)
    total_reward_income_cad: Decimal = Decimal(0)
    warning_count: int = 0
    ending_pools: list[PoolSnapshot] = field(default_factory=list)


def compute_tax_summary(
    records: Iterable[ReplayRecord],
    *,
    tax_year: int,
    ending_pools: Iterable[PoolSnapshot],
) -> TaxSummary:
    """Aggregate year-scoped records; ending pools are the end-of-history state."""
    summary = TaxSummary(tax_year=tax_year, ending_pools=list(ending_pools))
    for record in records:
        event = record.event
        if not event.is_taxable:
            if event.kind == EventKind.DEPOSIT_TRANSFER_IN and event.unpriced:
                summary.warning_count += 1
            continue
        if event.kind == EventKind.REWARD_INCOME:
            summary.total_reward_income_cad += record.income_cad
        else:
            summary.total_proceeds_cad += record.proceeds_cad
            summary.total_acb_disposed_cad += record.acb_disposed_cad
            summary.net_gain_cad += record.gain_cad
    return summary


def render_tax_summary(summary: TaxSummary, *, fallback_usd_cad_fx: Decimal | None = None) -> None:
    print("=== CANADIAN CRYPTO TAX SUMMARY (LEDGER / ACB) ===")
    print(f"Tax year: {summary.tax_year}")
    if fallback_usd_cad_fx is not None:
        print(f"Fallback USD/CAD FX: {fallback_usd_cad_fx}")
    print(f"Total proceeds (CAD): {format_currency(summary.total_proceeds_cad)}")
    print(f"Total ACB disposed (CAD): {format_currency(summary.total_acb_disposed_cad)}")
    print(f"Net capital gain/loss (CAD): {format_currency(summary.net_gain_cad)}")
    print(f"Total reward income (CAD): {format_currency(summary.total_reward_income_cad)}")
    print(f"Warnings (transfer-in assumed 0 ACB): {summary.warning_count}")
    print()
    render_pool_summary(summary.ending_pools)
