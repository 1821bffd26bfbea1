from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from .events import ClassifiedEvent, EventKind
from .ledger import CAD, TRADE_ENTRY_TYPES, USD, EntryType, LedgerEntry, MalformedRow, TradeGroup
from .pricing import NoPriorPrice, PriceProvider

logger = logging.getLogger(__name__)

REWARD_SUBTYPES = frozenset({"reward"})
ALLOCATION_SUBTYPES = frozenset({"autoallocation", "allocation", "deallocation"})

UNPRICED_DEPOSIT_NOTE = "Deposit treated as transfer-in with unknown ACB; assumed 0 CAD basis"


class EventClassifier:
    """Map normalized entries and trade groups to the closed set of event kinds.

    Valuations are resolved here against the price provider, which must already
    hold the full-history price series.
    """

    def __init__(self, *, price_provider: PriceProvider) -> None:
        self._price_provider = price_provider

    def classify(self, entries: Iterable[LedgerEntry], groups: Iterable[TradeGroup]) -> list[ClassifiedEvent]:
        """Classify every entry once; trade rows are classified through their group."""
        groups_by_refid = {group.refid: group for group in groups}
        emitted_refids: set[str] = set()
        events: list[ClassifiedEvent] = []
        ignored = 0

        for entry in entries:
            if entry.type in TRADE_ENTRY_TYPES:
                if entry.refid in emitted_refids:
                    continue
                group = groups_by_refid.get(entry.refid)
                if group is None:
                    msg = f"Trade row {entry.seq} has no trade group (refid={entry.refid})"
                    raise ValueError(msg)
                emitted_refids.add(entry.refid)
                events.extend(self.classify_trade(group))
                continue

            classified = self.classify_entry(entry)
            if not classified:
                ignored += 1
            events.extend(classified)

        events.sort(key=lambda event: event.sort_key())
        logger.info("Classified %d events (%d ledger rows ignored)", len(events), ignored)
        return events

    def classify_trade(self, group: TradeGroup) -> list[ClassifiedEvent]:
        value_cad = self._trade_value_cad(group)
        notes = f"{group.sold.units} {group.sold.asset} -> {group.bought.units} {group.bought.asset}"
        events: list[ClassifiedEvent] = []
        if group.sold.asset != CAD:
            events.append(
                ClassifiedEvent(
                    kind=EventKind.TRADE_DISPOSITION,
                    time=group.time,
                    refid=group.refid,
                    txid=group.txid,
                    seq=group.seq,
                    leg_index=0,
                    asset=group.sold.asset,
                    quantity=group.sold.units,
                    value_cad=value_cad,
                    notes=notes,
                )
            )
        if group.bought.asset != CAD:
            events.append(
                ClassifiedEvent(
                    kind=EventKind.TRADE_ACQUISITION,
                    time=group.time,
                    refid=group.refid,
                    txid=group.txid,
                    seq=group.seq,
                    leg_index=1,
                    asset=group.bought.asset,
                    quantity=group.bought.units,
                    value_cad=value_cad,
                    notes=notes,
                )
            )
        return events

    def classify_entry(self, entry: LedgerEntry) -> list[ClassifiedEvent]:
        match entry.type:
            case EntryType.EARN if entry.subtype in REWARD_SUBTYPES:
                return [self._reward(entry)]
            case EntryType.EARN if entry.subtype in ALLOCATION_SUBTYPES:
                return [self._event(entry, EventKind.INTERNAL_TRANSFER, abs(entry.net_amount))]
            case EntryType.DEPOSIT:
                return [self._deposit(entry)]
            case EntryType.WITHDRAWAL:
                return self._withdrawal(entry)
            case _:
                logger.debug(
                    "Ignoring ledger row %d type=%s subtype=%s refid=%s",
                    entry.seq,
                    entry.raw_type,
                    entry.subtype,
                    entry.refid,
                )
                return []

    def _trade_value_cad(self, group: TradeGroup) -> Decimal:
        """Single CAD value shared by both legs of a trade."""
        legs = (group.sold, group.bought)
        for leg in legs:
            if leg.asset == CAD:
                return leg.units
        for leg in legs:
            if leg.asset == USD:
                return leg.units * self._cad_rate(USD, group.time)

        try:
            return group.sold.units * self._cad_rate(group.sold.asset, group.time)
        except NoPriorPrice:
            logger.info(
                "No prior %s price for trade %s; valuing through %s",
                group.sold.asset,
                group.refid,
                group.bought.asset,
            )
        return group.bought.units * self._cad_rate(group.bought.asset, group.time)

    def _reward(self, entry: LedgerEntry) -> ClassifiedEvent:
        quantity = entry.net_amount
        if quantity <= 0:
            raise MalformedRow(f"earn reward must have positive net amount (refid={entry.refid})", row_number=entry.seq)
        value_cad = quantity * self._cad_rate(entry.asset, entry.time)
        return self._event(entry, EventKind.REWARD_INCOME, quantity, value_cad=value_cad)

    def _deposit(self, entry: LedgerEntry) -> ClassifiedEvent:
        quantity = entry.net_amount
        if quantity <= 0:
            raise MalformedRow(f"deposit must have positive net amount (refid={entry.refid})", row_number=entry.seq)

        try:
            value_cad = quantity * self._cad_rate(entry.asset, entry.time)
        except NoPriorPrice:
            logger.warning(
                "Unpriced transfer-in refid=%s asset=%s quantity=%s at %s; assuming 0 CAD cost base",
                entry.refid,
                entry.asset,
                quantity,
                entry.time.isoformat(),
            )
            return self._event(
                entry,
                EventKind.DEPOSIT_TRANSFER_IN,
                quantity,
                value_cad=Decimal(0),
                unpriced=True,
                notes=UNPRICED_DEPOSIT_NOTE,
            )
        return self._event(entry, EventKind.DEPOSIT_TRANSFER_IN, quantity, value_cad=value_cad)

    def _withdrawal(self, entry: LedgerEntry) -> list[ClassifiedEvent]:
        if entry.amount >= 0:
            raise MalformedRow(f"withdrawal amount must be negative (refid={entry.refid})", row_number=entry.seq)

        events = [self._event(entry, EventKind.WITHDRAWAL_TRANSFER_OUT, -entry.amount)]
        if entry.fee > 0 and entry.asset != CAD:
            fee_value = entry.fee * self._cad_rate(entry.asset, entry.time)
            events.append(
                self._event(
                    entry,
                    EventKind.WITHDRAWAL_FEE_DISPOSITION,
                    entry.fee,
                    value_cad=fee_value,
                    leg_index=1,
                    notes="Withdrawal fee paid in kind",
                )
            )
        return events

    def _cad_rate(self, asset_id: str, timestamp: datetime) -> Decimal:
        if asset_id == CAD:
            return Decimal(1)
        return self._price_provider.rate(asset_id, CAD, timestamp)

    @staticmethod
    def _event(
        entry: LedgerEntry,
        kind: EventKind,
        quantity: Decimal,
        *,
        value_cad: Decimal | None = None,
        leg_index: int = 0,
        unpriced: bool = False,
        notes: str = "",
    ) -> ClassifiedEvent:
        return ClassifiedEvent(
            kind=kind,
            time=entry.time,
            refid=entry.refid,
            txid=entry.txid,
            seq=entry.seq,
            leg_index=leg_index,
            asset=entry.asset,
            quantity=quantity,
            value_cad=value_cad,
            unpriced=unpriced,
            notes=notes,
        )
