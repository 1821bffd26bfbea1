from __future__ import annotations

import logging
from csv import DictWriter
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Callable, Iterable, assert_never

from pydantic import BaseModel

from kraken_acb.domain.acb_engine import ReplayResult
from kraken_acb.domain.events import EventKind, ReplayRecord

from .formatting import format_currency, format_units
from .tax_summary import TaxSummary, compute_tax_summary

logger = logging.getLogger(__name__)


class ReportEventType(StrEnum):
    TRADE_DISPOSITION = "trade_disposition"
    TRADE_ACQUISITION = "trade_acquisition"
    EARN_REWARD_INCOME = "earn_reward_income"
    WITHDRAWAL_FEE_DISPOSITION = "withdrawal_fee_disposition"
    WARNING_UNPRICED_TRANSFER_IN = "warning_unpriced_transfer_in"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    INTERNAL_TRANSFER = "internal_transfer"


TRANSFER_EVENT_TYPES = frozenset(
    {
        ReportEventType.TRANSFER_IN,
        ReportEventType.TRANSFER_OUT,
        ReportEventType.INTERNAL_TRANSFER,
    }
)


class ReportRow(BaseModel):
    time: str
    refid: str
    txid: str
    event_type: ReportEventType
    asset: str
    units_in: str = ""
    units_out: str = ""
    proceeds_cad: str = ""
    acb_disposed_cad: str = ""
    gain_cad: str = ""
    income_cad: str = ""
    acb_added_cad: str = ""
    pool_units_after: str = ""
    pool_acb_cad_after: str = ""
    notes: str = ""


REPORT_COLUMNS = list(ReportRow.model_fields)

_Formatter = Callable[[ReplayRecord], str]

_DISPOSITION_FIELDS: dict[str, _Formatter] = {
    "units_out": lambda record: format_units(record.units_out),
    "proceeds_cad": lambda record: format_currency(record.proceeds_cad),
    "acb_disposed_cad": lambda record: format_currency(record.acb_disposed_cad),
    "gain_cad": lambda record: format_currency(record.gain_cad),
}
_ACQUISITION_FIELDS: dict[str, _Formatter] = {
    "units_in": lambda record: format_units(record.units_in),
    "acb_added_cad": lambda record: format_currency(record.acb_added_cad),
}
_REWARD_FIELDS: dict[str, _Formatter] = {
    **_ACQUISITION_FIELDS,
    "income_cad": lambda record: format_currency(record.income_cad),
}
_TRANSFER_OUT_FIELDS: dict[str, _Formatter] = {
    "units_out": lambda record: format_units(record.units_out),
    "acb_disposed_cad": lambda record: format_currency(record.acb_disposed_cad),
}

_FIELDS_BY_TYPE: dict[ReportEventType, dict[str, _Formatter]] = {
    ReportEventType.TRADE_DISPOSITION: _DISPOSITION_FIELDS,
    ReportEventType.WITHDRAWAL_FEE_DISPOSITION: _DISPOSITION_FIELDS,
    ReportEventType.TRADE_ACQUISITION: _ACQUISITION_FIELDS,
    ReportEventType.WARNING_UNPRICED_TRANSFER_IN: _ACQUISITION_FIELDS,
    ReportEventType.TRANSFER_IN: _ACQUISITION_FIELDS,
    ReportEventType.EARN_REWARD_INCOME: _REWARD_FIELDS,
    ReportEventType.TRANSFER_OUT: _TRANSFER_OUT_FIELDS,
    ReportEventType.INTERNAL_TRANSFER: {},
}


@dataclass
class TaxReport:
    tax_year: int
    rows: list[ReportRow]
    summary: TaxSummary


def report_event_type(record: ReplayRecord) -> ReportEventType:
    event = record.event
    match event.kind:
        case EventKind.TRADE_DISPOSITION:
            return ReportEventType.TRADE_DISPOSITION
        case EventKind.TRADE_ACQUISITION:
            return ReportEventType.TRADE_ACQUISITION
        case EventKind.REWARD_INCOME:
            return ReportEventType.EARN_REWARD_INCOME
        case EventKind.WITHDRAWAL_FEE_DISPOSITION:
            return ReportEventType.WITHDRAWAL_FEE_DISPOSITION
        case EventKind.DEPOSIT_TRANSFER_IN:
            if event.unpriced:
                return ReportEventType.WARNING_UNPRICED_TRANSFER_IN
            return ReportEventType.TRANSFER_IN
        case EventKind.WITHDRAWAL_TRANSFER_OUT:
            return ReportEventType.TRANSFER_OUT
        case EventKind.INTERNAL_TRANSFER:
            return ReportEventType.INTERNAL_TRANSFER
        case _:
            assert_never(event.kind)


def build_report_row(record: ReplayRecord) -> ReportRow:
    event = record.event
    event_type = report_event_type(record)
    values = {name: formatter(record) for name, formatter in _FIELDS_BY_TYPE[event_type].items()}
    if record.pool_units_after is not None:
        values["pool_units_after"] = format_units(record.pool_units_after)
    if record.pool_acb_cad_after is not None:
        values["pool_acb_cad_after"] = format_currency(record.pool_acb_cad_after)
    return ReportRow(
        time=event.time.isoformat(),
        refid=event.refid,
        txid=event.txid,
        event_type=event_type,
        asset=event.asset,
        notes=event.notes,
        **values,
    )


def records_in_year(records: Iterable[ReplayRecord], tax_year: int) -> list[ReplayRecord]:
    return [record for record in records if record.event.time.year == tax_year]


def project_report(result: ReplayResult, tax_year: int, *, include_transfers: bool = False) -> TaxReport:
    """Filter full-history replay records to the tax year and shape them into rows.

    Pool columns keep the cumulative full-history state; only the row selection
    and the totals are year-scoped.
    """
    in_year = records_in_year(result.records, tax_year)
    rows: list[ReportRow] = []
    for record in in_year:
        row = build_report_row(record)
        if row.event_type in TRANSFER_EVENT_TYPES and not include_transfers:
            continue
        rows.append(row)

    summary = compute_tax_summary(in_year, tax_year=tax_year, ending_pools=result.pools)
    logger.info("Projected %d report rows for tax year %d", len(rows), tax_year)
    return TaxReport(tax_year=tax_year, rows=rows, summary=summary)


def write_report_csv(path: Path, rows: Iterable[ReportRow]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = DictWriter(handle, fieldnames=REPORT_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row.model_dump(mode="json"))

