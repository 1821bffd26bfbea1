from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Sequence

from kraken_acb.config import config, default_tax_year
from kraken_acb.db.db import init_db
from kraken_acb.db.repositories import LedgerEntryRepository, ReplayRecordRepository
from kraken_acb.domain.acb_engine import AcbEngine, ReplayResult
from kraken_acb.domain.classifier import EventClassifier
from kraken_acb.domain.ledger import LedgerEntry, LedgerProcessingError
from kraken_acb.importers.kraken_importer import KrakenImporter
from kraken_acb.services.price_service import build_price_service
from kraken_acb.utils.tax_report import TaxReport, project_report, write_report_csv
from kraken_acb.utils.tax_summary import render_tax_summary

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@dataclass
class RunResult:
    entries: list[LedgerEntry]
    replay: ReplayResult
    report: TaxReport


def compute(
    csv_path: Path,
    *,
    tax_year: int,
    fallback_usd_cad_fx: Decimal,
    include_transfers: bool = False,
) -> RunResult:
    """Run the whole pipeline in memory; nothing is written here."""
    importer = KrakenImporter(csv_path)
    entries, groups = importer.load()

    # Pass 1: implied price series over the full history.
    price_service = build_price_service(groups, fallback_usd_cad_fx=fallback_usd_cad_fx)

    # Pass 2: classify and replay against those series.
    classifier = EventClassifier(price_provider=price_service)
    events = classifier.classify(entries, groups)
    replay = AcbEngine().process(events)

    report = project_report(replay, tax_year, include_transfers=include_transfers)
    return RunResult(entries=entries, replay=replay, report=report)


def run(
    csv_path: Path,
    output_path: Path,
    *,
    tax_year: int,
    fallback_usd_cad_fx: Decimal,
    include_transfers: bool = False,
    audit_db: Path | None = None,
) -> TaxReport:
    result = compute(
        csv_path,
        tax_year=tax_year,
        fallback_usd_cad_fx=fallback_usd_cad_fx,
        include_transfers=include_transfers,
    )

    write_report_csv(output_path, result.report.rows)
    if audit_db is not None:
        write_audit_db(audit_db, result)

    render_tax_summary(result.report.summary, fallback_usd_cad_fx=fallback_usd_cad_fx)
    print(f"\nWrote tax report: {output_path}")
    return result.report


def write_audit_db(db_file: Path, result: RunResult) -> None:
    session = init_db(db_file)
    try:
        LedgerEntryRepository(session).create_many(result.entries)
        ReplayRecordRepository(session).create_many(result.replay.records)
    finally:
        session.close()
    logger.info("Wrote %d replay records to %s", len(result.replay.records), db_file)


def _decimal_arg(value: str) -> Decimal:
    try:
        parsed = Decimal(value)
    except InvalidOperation as err:
        raise argparse.ArgumentTypeError(f"invalid decimal value: {value!r}") from err
    if not parsed.is_finite() or parsed <= 0:
        raise argparse.ArgumentTypeError(f"rate must be a positive number: {value!r}")
    return parsed


def main(argv: Sequence[str] | None = None) -> None:
    settings = config()
    parser = argparse.ArgumentParser(description="Build a Canadian pooled-ACB tax report from a Kraken ledger export.")
    parser.add_argument("--csv", type=Path, default=Path("data/kraken-ledger.csv"))
    parser.add_argument("--tax-year", type=int, default=default_tax_year())
    parser.add_argument("--output", type=Path, default=None)
    parser.add_argument("--fallback-usd-cad", type=_decimal_arg, default=settings.fallback_usd_cad_fx)
    parser.add_argument("--include-transfers", action="store_true", default=settings.include_transfers)
    parser.add_argument("--audit-db", type=Path, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    level = logging.INFO if args.verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    if not args.csv.exists():
        parser.error(f"CSV not found: {args.csv}")
    output = args.output or Path(f"kraken_tax_report_{args.tax_year}.csv")

    try:
        run(
            args.csv,
            output,
            tax_year=args.tax_year,
            fallback_usd_cad_fx=args.fallback_usd_cad,
            include_transfers=args.include_transfers,
            audit_db=args.audit_db,
        )
    except LedgerProcessingError as err:
        logger.error("Aborting, no report written: %s", err)
        raise SystemExit(f"error: {err}") from err


if __name__ == "__main__":
    main()
