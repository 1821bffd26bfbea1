from __future__ import annotations

import logging
from collections import defaultdict
from csv import DictReader
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ValidationError, field_validator

from kraken_acb.domain.ledger import (
    TRADE_ENTRY_TYPES,
    AssetId,
    EntryType,
    LedgerEntry,
    MalformedRow,
    TradeGroup,
    TradeGroupError,
    TradeLeg,
)

logger = logging.getLogger(__name__)

ASSET_ALIASES = {
    "XBT": "BTC",
    "XXBT": "BTC",
    "XBT.M": "BTC",
    "XETH": "ETH",
    "ETH2": "ETH",
    "ETH2.S": "ETH",
    "DOT28.S": "DOT",
    "KAVA21.S": "KAVA",
    "KSM07.S": "KSM",
    "ATOM21.S": "ATOM",
    "FLOW14.S": "FLOW",
    "SOL03.S": "SOL",
    "USD.HOLD": "USD",
    "CAD.HOLD": "CAD",
    "EUR.HOLD": "EUR",
    "ZCAD": "CAD",
    "ZUSD": "USD",
}

# Kraken suffixes for staked, opt-in rewards, bonded, parachain and held balances.
_WALLET_SUFFIXES = (".S", ".M", ".F", ".B", ".P", ".HOLD")

_TIME_FORMATS = ("%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d %H:%M:%S")


class KrakenLedgerRow(BaseModel):
    """Raw ledger row as exported by Kraken; unknown columns are ignored."""

    txid: str = ""
    refid: str = ""
    time: datetime
    type: str
    subtype: str = ""
    asset: str
    amount: Decimal
    fee: Decimal = Decimal(0)

    @field_validator("time", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: str | datetime | None) -> datetime:
        if value is None:
            raise ValueError("must be non-empty")
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        text = value.strip()
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    @field_validator("txid", "refid", "subtype", mode="before")
    @classmethod
    def _optional_text(cls, value: str | None) -> str:
        return (value or "").strip()

    @field_validator("type", "asset", mode="before")
    @classmethod
    def _required_text(cls, value: str | None) -> str:
        text = (value or "").strip()
        if not text:
            raise ValueError("must be non-empty")
        return text

    @field_validator("amount", mode="before")
    @classmethod
    def _strip_amount(cls, value: str | Decimal) -> str | Decimal:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("fee", mode="before")
    @classmethod
    def _empty_fee(cls, value: str | Decimal | None) -> str | Decimal:
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return "0"
        if isinstance(value, str):
            return value.strip()
        return value


def normalize_asset(asset: str) -> AssetId:
    code = asset.strip().upper()
    if code in ASSET_ALIASES:
        return AssetId(ASSET_ALIASES[code])
    for suffix in _WALLET_SUFFIXES:
        if code.endswith(suffix):
            base = code[: -len(suffix)]
            return AssetId(ASSET_ALIASES.get(base, base))
    return AssetId(code)


def _entry_type(raw_type: str) -> EntryType:
    try:
        return EntryType(raw_type)
    except ValueError:
        return EntryType.OTHER


def normalize_row(row: Mapping[str, Any], *, row_number: int) -> LedgerEntry:
    """Validate one raw row and turn it into a LedgerEntry."""
    try:
        parsed = KrakenLedgerRow.model_validate({key: value for key, value in row.items() if key is not None})
    except ValidationError as err:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in err.errors())
        raise MalformedRow(f"invalid or missing field(s): {fields}", row_number=row_number) from err

    if parsed.fee < 0:
        raise MalformedRow(f"negative fee {parsed.fee}", row_number=row_number)

    raw_type = parsed.type.lower()
    return LedgerEntry(
        seq=row_number,
        txid=parsed.txid,
        refid=parsed.refid,
        time=parsed.time,
        type=_entry_type(raw_type),
        raw_type=raw_type,
        subtype=parsed.subtype.lower(),
        asset=normalize_asset(parsed.asset),
        amount=parsed.amount,
        fee=parsed.fee,
    )


def normalize_rows(rows: Iterable[Mapping[str, Any]]) -> list[LedgerEntry]:
    """Normalize raw rows and return them in replay order (time, refid, row order)."""
    entries = [normalize_row(row, row_number=idx) for idx, row in enumerate(rows, start=1)]
    entries.sort(key=lambda entry: entry.sort_key())
    return entries


def group_trades(entries: Iterable[LedgerEntry]) -> list[TradeGroup]:
    """Group trade rows by refid and reduce each group to one sold and one bought leg."""
    grouped: dict[str, list[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        if entry.type in TRADE_ENTRY_TYPES:
            grouped[entry.refid].append(entry)

    groups = [_build_trade_group(refid, rows) for refid, rows in grouped.items()]
    groups.sort(key=lambda group: group.sort_key())
    return groups


def _build_trade_group(refid: str, entries: list[LedgerEntry]) -> TradeGroup:
    if not refid:
        raise TradeGroupError("Trade rows must carry a refid", refid=refid)

    rows = sorted(entries, key=lambda entry: entry.seq)
    if len({entry.time for entry in rows}) != 1:
        raise TradeGroupError("Trade legs have mismatched times", refid=refid)

    principals = [entry for entry in rows if entry.amount != 0]
    fee_legs = [entry for entry in rows if entry.is_fee_leg]

    negatives = [entry for entry in principals if entry.amount < 0]
    positives = [entry for entry in principals if entry.amount > 0]
    if len(negatives) != 1 or len(positives) != 1:
        raise TradeGroupError(
            f"Trade must have one outflow and one inflow leg, got {len(negatives)} out / {len(positives)} in",
            refid=refid,
        )

    out_entry, in_entry = negatives[0], positives[0]
    if out_entry.asset == in_entry.asset:
        raise TradeGroupError(f"Trade legs share asset {out_entry.asset}", refid=refid)

    extra_fees: dict[str, Decimal] = defaultdict(Decimal)
    for fee_leg in fee_legs:
        if fee_leg.asset not in (out_entry.asset, in_entry.asset):
            raise TradeGroupError(f"Fee leg in unrelated asset {fee_leg.asset}", refid=refid)
        extra_fees[fee_leg.asset] += fee_leg.fee

    sold_units = -out_entry.net_amount + extra_fees[out_entry.asset]
    bought_units = in_entry.net_amount - extra_fees[in_entry.asset]
    if bought_units <= 0:
        raise TradeGroupError("Trade fees consume the whole inflow leg", refid=refid)

    return TradeGroup(
        refid=refid,
        txid=rows[0].txid,
        time=rows[0].time,
        seq=rows[0].seq,
        entries=rows,
        sold=TradeLeg(asset=out_entry.asset, units=sold_units, gross_units=abs(out_entry.amount)),
        bought=TradeLeg(asset=in_entry.asset, units=bought_units, gross_units=in_entry.amount),
    )


class KrakenImporter:
    def __init__(self, source_path: str | Path) -> None:
        self._source_path = Path(source_path)

    def load_entries(self) -> list[LedgerEntry]:
        entries = normalize_rows(self._read_rows())
        logger.info("Read %d ledger rows from %s", len(entries), self._source_path)
        return entries

    def load(self) -> tuple[list[LedgerEntry], list[TradeGroup]]:
        entries = self.load_entries()
        groups = group_trades(entries)
        logger.info("Built %d trade groups", len(groups))
        return entries, groups

    def _read_rows(self) -> list[dict[str, str]]:
        try:
            with self._source_path.open(encoding="utf-8-sig", newline="") as handle:
                reader = DictReader(handle)
                missing = {"time", "type", "asset", "amount"} - set(reader.fieldnames or ())
                if missing:
                    raise MalformedRow(f"missing required column(s): {', '.join(sorted(missing))}")
                return list(reader)
        except UnicodeDecodeError as err:
            raise MalformedRow(f"file is not valid UTF-8: {err.reason}") from err
