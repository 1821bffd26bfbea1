from __future__ import annotations

from typing import Iterable

from kraken_acb.domain.pool import PoolSnapshot

from .formatting import format_currency, format_units


def render_pool_summary(pools: Iterable[PoolSnapshot]) -> None:
    print("Ending pools (full history):")
    rows: list[tuple[str, str, str, str]] = [
        (
            pool.asset_id,
            format_units(pool.units),
            format_currency(pool.total_acb_cad),
            format_currency(pool.average_cost_cad),
        )
        for pool in sorted(pools, key=lambda snapshot: snapshot.asset_id)
    ]
    if not rows:
        print("  (empty)")
        return

    labels = ("Asset", "Units", "ACB CAD", "Avg cost CAD")
    widths = [max(len(label), max(len(row[idx]) for row in rows)) for idx, label in enumerate(labels)]

    header = f"{labels[0]:<{widths[0]}} " + " ".join(
        f"{label:>{width}}" for label, width in zip(labels[1:], widths[1:])
    )
    lines = [header, "-" * len(header)]
    for row in rows:
        lines.append(
            f"{row[0]:<{widths[0]}} " + " ".join(f"{value:>{width}}" for value, width in zip(row[1:], widths[1:]))
        )
    lines.append("-" * len(header))
    print("\n".join(lines))
