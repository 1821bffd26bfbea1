# flake8: noqa E402
# Run via: uv run scripts/analyze_kraken.py data/kraken-ledger.csv
from __future__ import annotations

import argparse
import sys
from collections import Counter, defaultdict
from decimal import Decimal
from pathlib import Path
from typing import Iterable

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from kraken_acb.config import DEFAULT_FALLBACK_USD_CAD_FX
from kraken_acb.domain.ledger import LedgerEntry, LedgerProcessingError
from kraken_acb.importers.kraken_importer import KrakenImporter
from kraken_acb.services.price_service import build_price_service


def analyze(path: Path) -> None:
    try:
        entries, groups = KrakenImporter(path).load()
    except LedgerProcessingError as exc:
        print(f"Ledger rejected: {exc}")
        return

    type_counts: Counter[str] = Counter(f"{entry.raw_type}/{entry.subtype or '-'}" for entry in entries)

    print(f"Ledger rows: {len(entries)}")
    if entries:
        print(f"Time span:   {entries[0].time.isoformat()} -> {entries[-1].time.isoformat()}")
    print(f"Trade groups: {len(groups)}")
    print("By type/subtype:")
    for label, count in sorted(type_counts.items()):
        print(f"  {label:<32} {count}")

    balances = _net_balances(entries)
    if balances:
        print("\nNet ledger balances (amount - fee):")
        for asset, qty in sorted(balances.items()):
            print(f"  {asset:<8} {qty}")

    service = build_price_service(groups, fallback_usd_cad_fx=DEFAULT_FALLBACK_USD_CAD_FX)
    series = service.store.series()
    print("\nImplied price series:")
    if not series:
        print("  (none; every non-CAD deposit will be unpriced)")
    for pair, pair_series in sorted(series.items()):
        first = pair_series.first_timestamp
        since = first.isoformat() if first is not None else "-"
        print(f"  {str(pair):<12} {len(pair_series):>6} samples since {since}")


def _net_balances(entries: Iterable[LedgerEntry]) -> dict[str, Decimal]:
    balances: dict[str, Decimal] = defaultdict(Decimal)
    for entry in entries:
        balances[entry.asset] += entry.net_amount
    return {asset: qty for asset, qty in balances.items() if qty != 0}


def main(argv: Iterable[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Summarize a Kraken ledger CSV and its implied price coverage.")
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=Path("data/kraken-ledger.csv"),
        help="Path to Kraken ledger CSV (default: data/kraken-ledger.csv)",
    )
    args = parser.parse_args(argv)
    analyze(args.path)


if __name__ == "__main__":  # pragma: no cover
    main()
