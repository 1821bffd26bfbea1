from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.orm import Session

from kraken_acb.db import models
from kraken_acb.domain.events import ClassifiedEvent, EventKind, ReplayRecord
from kraken_acb.domain.ledger import AssetId, EntryType, LedgerEntry


def _as_utc(timestamp: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


class LedgerEntryRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_many(self, entries: Iterable[LedgerEntry]) -> None:
        orm_entries = [
            models.LedgerEntryOrm(
                seq=entry.seq,
                txid=entry.txid,
                refid=entry.refid,
                time=entry.time,
                entry_type=entry.type.value,
                raw_type=entry.raw_type,
                subtype=entry.subtype,
                asset=entry.asset,
                amount=entry.amount,
                fee=entry.fee,
            )
            for entry in entries
        ]
        self._session.add_all(orm_entries)
        self._session.commit()

    def list(self) -> list[LedgerEntry]:
        orm_entries = (
            self._session.query(models.LedgerEntryOrm)
            .order_by(
                models.LedgerEntryOrm.time.asc(),
                models.LedgerEntryOrm.refid.asc(),
                models.LedgerEntryOrm.seq.asc(),
            )
            .all()
        )
        return [self._to_domain(entry) for entry in orm_entries]

    @staticmethod
    def _to_domain(orm_entry: models.LedgerEntryOrm) -> LedgerEntry:
        return LedgerEntry(
            seq=orm_entry.seq,
            txid=orm_entry.txid,
            refid=orm_entry.refid,
            time=_as_utc(orm_entry.time),
            type=EntryType(orm_entry.entry_type),
            raw_type=orm_entry.raw_type,
            subtype=orm_entry.subtype,
            asset=AssetId(orm_entry.asset),
            amount=orm_entry.amount,
            fee=orm_entry.fee,
        )


class ReplayRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_many(self, records: Iterable[ReplayRecord]) -> None:
        orm_records = [
            models.ReplayRecordOrm(
                kind=record.event.kind.value,
                time=record.event.time,
                refid=record.event.refid,
                txid=record.event.txid,
                seq=record.event.seq,
                leg_index=record.event.leg_index,
                asset=record.event.asset,
                quantity=record.event.quantity,
                value_cad=record.event.value_cad,
                unpriced=record.event.unpriced,
                notes=record.event.notes,
                units_in=record.units_in,
                units_out=record.units_out,
                proceeds_cad=record.proceeds_cad,
                acb_disposed_cad=record.acb_disposed_cad,
                gain_cad=record.gain_cad,
                income_cad=record.income_cad,
                acb_added_cad=record.acb_added_cad,
                pool_units_after=record.pool_units_after,
                pool_acb_cad_after=record.pool_acb_cad_after,
            )
            for record in records
        ]
        self._session.add_all(orm_records)
        self._session.commit()

    def list(self) -> list[ReplayRecord]:
        # Insertion order is replay order.
        orm_records = self._session.query(models.ReplayRecordOrm).order_by(models.ReplayRecordOrm.id.asc()).all()
        return [self._to_domain(record) for record in orm_records]

    @staticmethod
    def _to_domain(orm_record: models.ReplayRecordOrm) -> ReplayRecord:
        event = ClassifiedEvent(
            kind=EventKind(orm_record.kind),
            time=_as_utc(orm_record.time),
            refid=orm_record.refid,
            txid=orm_record.txid,
            seq=orm_record.seq,
            leg_index=orm_record.leg_index,
            asset=AssetId(orm_record.asset),
            quantity=orm_record.quantity,
            value_cad=orm_record.value_cad,
            unpriced=orm_record.unpriced,
            notes=orm_record.notes,
        )
        return ReplayRecord(
            event=event,
            units_in=orm_record.units_in,
            units_out=orm_record.units_out,
            proceeds_cad=orm_record.proceeds_cad,
            acb_disposed_cad=orm_record.acb_disposed_cad,
            gain_cad=orm_record.gain_cad,
            income_cad=orm_record.income_cad,
            acb_added_cad=orm_record.acb_added_cad,
            pool_units_after=orm_record.pool_units_after,
            pool_acb_cad_after=orm_record.pool_acb_cad_after,
        )
