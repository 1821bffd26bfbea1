from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class LedgerEntryOrm(Base):
    __tablename__ = "ledger_entries"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True)
    txid: Mapped[str] = mapped_column(String, nullable=False)
    refid: Mapped[str] = mapped_column(String, nullable=False, index=True)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entry_type: Mapped[str] = mapped_column(String, nullable=False)
    raw_type: Mapped[str] = mapped_column(String, nullable=False)
    subtype: Mapped[str] = mapped_column(String, nullable=False, default="")
    asset: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    fee: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)


class ReplayRecordOrm(Base):
    __tablename__ = "replay_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    refid: Mapped[str] = mapped_column(String, nullable=False, index=True)
    txid: Mapped[str] = mapped_column(String, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    leg_index: Mapped[int] = mapped_column(Integer, nullable=False)
    asset: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    value_cad: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    unpriced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str] = mapped_column(String, nullable=False, default="")

    units_in: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    units_out: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    proceeds_cad: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    acb_disposed_cad: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    gain_cad: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    income_cad: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    acb_added_cad: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    pool_units_after: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    pool_acb_cad_after: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
