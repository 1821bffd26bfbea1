from decimal import Decimal

import pytest

from kraken_acb.domain.ledger import AssetId
from kraken_acb.domain.pool import AssetPool, NegativePoolError


def test_add_accumulates_units_and_cost() -> None:
    pool = AssetPool(asset_id=AssetId("BTC"))

    pool.add(Decimal("1"), Decimal("40000"))
    pool.add(Decimal("1"), Decimal("60000"))

    assert pool.units == Decimal("2")
    assert pool.total_acb_cad == Decimal("100000")
    assert pool.average_cost_cad == Decimal("50000")


def test_remove_takes_cost_at_average() -> None:
    pool = AssetPool(asset_id=AssetId("BTC"), units=Decimal("2"), total_acb_cad=Decimal("100000"))

    removed = pool.remove(Decimal("0.5"))

    assert removed == Decimal("25000")
    assert pool.units == Decimal("1.5")
    assert pool.total_acb_cad == Decimal("75000")
    assert pool.average_cost_cad == Decimal("50000")


def test_removing_everything_resets_cost_base() -> None:
    pool = AssetPool(asset_id=AssetId("ETH"), units=Decimal("3"), total_acb_cad=Decimal("10000"))

    pool.remove(Decimal("1"))
    pool.remove(Decimal("2"))

    assert pool.units == Decimal(0)
    assert pool.total_acb_cad == Decimal(0)
    assert pool.average_cost_cad == Decimal(0)


def test_remove_more_than_held_raises() -> None:
    pool = AssetPool(asset_id=AssetId("ETH"), units=Decimal("1"), total_acb_cad=Decimal("3000"))

    with pytest.raises(NegativePoolError) as exc_info:
        pool.remove(Decimal("1.5"), context="TRADE_DISPOSITION refid=R1")

    err = exc_info.value
    assert err.asset_id == "ETH"
    assert err.attempted_quantity == Decimal("1.5")
    assert err.available_units == Decimal("1")
    assert "refid=R1" in str(err)
    assert pool.units == Decimal("1")
    assert pool.total_acb_cad == Decimal("3000")


def test_remove_zero_is_a_no_op() -> None:
    pool = AssetPool(asset_id=AssetId("ETH"), units=Decimal("1"), total_acb_cad=Decimal("3000"))

    assert pool.remove(Decimal(0)) == Decimal(0)
    assert pool.total_acb_cad == Decimal("3000")


def test_negative_additions_are_rejected() -> None:
    pool = AssetPool(asset_id=AssetId("ETH"))

    with pytest.raises(ValueError):
        pool.add(Decimal("-1"), Decimal("10"))
    with pytest.raises(ValueError):
        pool.add(Decimal("1"), Decimal("-10"))


def test_snapshot_copies_state() -> None:
    pool = AssetPool(asset_id=AssetId("SOL"), units=Decimal("4"), total_acb_cad=Decimal("800"))

    snapshot = pool.snapshot()
    pool.add(Decimal("1"), Decimal("200"))

    assert snapshot.units == Decimal("4")
    assert snapshot.total_acb_cad == Decimal("800")
    assert snapshot.average_cost_cad == Decimal("200")
