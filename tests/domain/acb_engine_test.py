from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from kraken_acb.domain.acb_engine import AcbEngine
from kraken_acb.domain.events import ClassifiedEvent, EventKind
from kraken_acb.domain.ledger import AssetId
from kraken_acb.domain.pool import NegativePoolError
from kraken_acb.domain.pricing import NoPriorPrice
from tests.helpers.ledger_rows import ledger_row, replay_rows, trade_rows

T1 = datetime(2025, 1, 10, tzinfo=timezone.utc)
T2 = datetime(2025, 3, 1, tzinfo=timezone.utc)
T3 = datetime(2025, 5, 1, tzinfo=timezone.utc)


def _event(
    kind: EventKind, *, asset: str = "BTC", quantity: str, value: str | None = None, **kwargs: Any
) -> ClassifiedEvent:
    return ClassifiedEvent(
        kind=kind,
        time=kwargs.pop("time", T1),
        refid=kwargs.pop("refid", "R1"),
        txid=kwargs.pop("txid", "TX1"),
        seq=kwargs.pop("seq", 1),
        asset=AssetId(asset),
        quantity=Decimal(quantity),
        value_cad=None if value is None else Decimal(value),
        **kwargs,
    )


def test_buy_sell_reward_history() -> None:
    rows = [
        *trade_rows(
            ts=datetime(2024, 6, 1), refid="R1", sell_asset="CAD", sell_amount="60000", buy_asset="BTC", buy_amount="2"
        ),
        *trade_rows(
            ts=datetime(2025, 2, 1), refid="R2", sell_asset="BTC", sell_amount="1", buy_asset="CAD", buy_amount="60000"
        ),
        ledger_row(ts=datetime(2025, 3, 1), refid="R3", tx_type="earn", subtype="reward", asset="BTC", amount="0.01"),
    ]

    result = replay_rows(rows)

    acquisition, disposition, reward = result.records
    assert acquisition.event.kind == EventKind.TRADE_ACQUISITION
    assert acquisition.acb_added_cad == Decimal("60000")

    assert disposition.event.kind == EventKind.TRADE_DISPOSITION
    assert disposition.proceeds_cad == Decimal("60000")
    assert disposition.acb_disposed_cad == Decimal("30000")
    assert disposition.gain_cad == Decimal("30000")
    assert disposition.pool_units_after == Decimal("1")
    assert disposition.pool_acb_cad_after == Decimal("30000")

    assert reward.event.kind == EventKind.REWARD_INCOME
    assert reward.income_cad == Decimal("600")
    assert reward.acb_added_cad == Decimal("600")
    assert reward.pool_units_after == Decimal("1.01")
    assert reward.pool_acb_cad_after == Decimal("30600")

    btc = result.pool("BTC")
    assert btc is not None
    assert btc.units == Decimal("1.01")
    assert btc.total_acb_cad == Decimal("30600")


def test_withdrawal_removes_cost_and_fee_is_disposed() -> None:
    rows = [
        *trade_rows(ts=T1, refid="R1", sell_asset="CAD", sell_amount="100000", buy_asset="BTC", buy_amount="2"),
        *trade_rows(ts=T2, refid="R2", sell_asset="BTC", sell_amount="0.5", buy_asset="CAD", buy_amount="30000"),
        ledger_row(ts=T3, refid="R3", tx_type="withdrawal", asset="BTC", amount="-1", fee="0.0005"),
    ]

    result = replay_rows(rows)

    _, sale, transfer_out, fee = result.records
    assert sale.acb_disposed_cad == Decimal("25000")
    assert sale.gain_cad == Decimal("5000")

    assert transfer_out.event.kind == EventKind.WITHDRAWAL_TRANSFER_OUT
    assert transfer_out.units_out == Decimal("1")
    assert transfer_out.acb_disposed_cad == Decimal("50000")
    assert transfer_out.proceeds_cad == Decimal(0)
    assert transfer_out.pool_units_after == Decimal("0.5")
    assert transfer_out.pool_acb_cad_after == Decimal("25000")

    assert fee.event.kind == EventKind.WITHDRAWAL_FEE_DISPOSITION
    assert fee.proceeds_cad == Decimal("30")
    assert fee.acb_disposed_cad == Decimal("25")
    assert fee.gain_cad == Decimal("5")
    assert fee.pool_units_after == Decimal("0.4995")
    assert fee.pool_acb_cad_after == Decimal("24975")


def test_unpriced_deposit_enters_pool_at_zero_cost() -> None:
    result = replay_rows([ledger_row(ts=T1, tx_type="deposit", asset="ETH", amount="2")])

    [record] = result.records
    assert record.event.unpriced
    assert record.units_in == Decimal("2")
    assert record.acb_added_cad == Decimal(0)
    eth = result.pool("ETH")
    assert eth is not None
    assert eth.units == Decimal("2")
    assert eth.total_acb_cad == Decimal(0)


def test_usd_trades_use_fallback_fx_without_usd_cad_history() -> None:
    rows = [
        ledger_row(ts=T1, tx_type="deposit", asset="USD", amount="5000"),
        *trade_rows(ts=T2, refid="R2", sell_asset="USD", sell_amount="3000", buy_asset="ETH", buy_amount="1"),
    ]

    result = replay_rows(rows, fallback_usd_cad_fx=Decimal("1.40"))

    deposit, disposition, acquisition = result.records
    assert deposit.acb_added_cad == Decimal("7000")
    assert disposition.event.asset == "USD"
    assert disposition.proceeds_cad == Decimal("4200")
    assert disposition.acb_disposed_cad == Decimal("4200")
    assert disposition.gain_cad == Decimal(0)
    assert acquisition.acb_added_cad == Decimal("4200")
    assert result.pool("USD").units == Decimal("2000")
    assert result.pool("ETH").total_acb_cad == Decimal("4200")


def test_cad_is_never_pooled() -> None:
    rows = [
        ledger_row(ts=T1, tx_type="deposit", asset="CAD", amount="1000"),
        *trade_rows(ts=T2, refid="R2", sell_asset="CAD", sell_amount="900", buy_asset="ETH", buy_amount="0.3"),
        ledger_row(ts=T3, tx_type="withdrawal", asset="CAD", amount="-100", fee="2"),
    ]

    result = replay_rows(rows)

    assert [pool.asset_id for pool in result.pools] == ["ETH"]
    cad_records = [record for record in result.records if record.event.asset == "CAD"]
    assert cad_records
    assert all(record.pool_units_after is None for record in cad_records)


def test_selling_without_holdings_fails() -> None:
    rows = trade_rows(ts=T1, refid="R1", sell_asset="BTC", sell_amount="1", buy_asset="CAD", buy_amount="50000")

    with pytest.raises(NegativePoolError) as exc_info:
        replay_rows(rows)

    assert exc_info.value.asset_id == "BTC"
    assert exc_info.value.available_units == Decimal(0)


def test_reward_without_price_history_is_fatal() -> None:
    rows = [ledger_row(ts=T1, tx_type="earn", subtype="reward", asset="DOT", amount="1")]

    with pytest.raises(NoPriorPrice):
        replay_rows(rows)


def test_pools_never_go_negative_and_units_are_conserved() -> None:
    rows = [
        *trade_rows(ts=T1, refid="R1", sell_asset="CAD", sell_amount="3000", buy_asset="ETH", buy_amount="1"),
        ledger_row(ts=T1, refid="R1b", tx_type="earn", subtype="reward", asset="ETH", amount="0.1"),
        ledger_row(ts=T2, tx_type="earn", subtype="allocation", asset="ETH", amount="-0.5"),
        *trade_rows(ts=T2, refid="R2", sell_asset="ETH", sell_amount="0.4", buy_asset="BTC", buy_amount="0.01"),
        ledger_row(ts=T3, tx_type="withdrawal", asset="ETH", amount="-0.2", fee="0.01"),
    ]

    result = replay_rows(rows)

    units: dict[str, Decimal] = {}
    for record in result.records:
        if record.pool_units_after is None:
            continue
        asset = record.event.asset
        units[asset] = units.get(asset, Decimal(0)) + record.units_in - record.units_out
        assert units[asset] == record.pool_units_after
        assert record.pool_units_after >= 0
        assert record.pool_acb_cad_after >= 0
    assert result.pool("ETH").units == Decimal("0.49")
    assert result.pool("BTC").units == Decimal("0.01")


def test_events_replay_in_time_refid_seq_leg_order() -> None:
    buy = _event(EventKind.TRADE_ACQUISITION, quantity="1", value="100", refid="A", seq=1)
    sell = _event(EventKind.TRADE_DISPOSITION, quantity="1", value="150", refid="B", seq=2, leg_index=0)
    rebuy = _event(EventKind.TRADE_ACQUISITION, quantity="2", value="300", refid="B", seq=2, leg_index=1)

    result = AcbEngine().process([rebuy, sell, buy])

    assert [record.event for record in result.records] == [buy, sell, rebuy]
    assert result.records[1].gain_cad == Decimal("50")
    assert result.pool("BTC").total_acb_cad == Decimal("300")


def test_internal_transfer_leaves_pool_unchanged() -> None:
    buy = _event(EventKind.TRADE_ACQUISITION, quantity="2", value="100", seq=1)
    move = _event(EventKind.INTERNAL_TRANSFER, quantity="2", refid="R2", seq=2)

    result = AcbEngine().process([buy, move])

    assert result.records[1].pool_units_after == Decimal("2")
    assert result.records[1].pool_acb_cad_after == Decimal("100")
    assert result.records[1].units_in == Decimal(0)
    assert result.records[1].units_out == Decimal(0)


def test_replay_is_deterministic() -> None:
    rows = [
        *trade_rows(ts=T1, refid="R1", sell_asset="CAD", sell_amount="1000", buy_asset="SOL", buy_amount="3"),
        *trade_rows(ts=T2, refid="R2", sell_asset="SOL", sell_amount="1", buy_asset="CAD", buy_amount="400"),
    ]

    assert replay_rows(rows) == replay_rows(rows)


def test_events_given_out_of_time_order_are_replayed_chronologically() -> None:
    buy = _event(EventKind.TRADE_ACQUISITION, quantity="1", value="100", time=T1, refid="Z")
    sell = _event(EventKind.TRADE_DISPOSITION, quantity="1", value="80", time=T2, refid="A", seq=2)

    result = AcbEngine().process([sell, buy])

    assert [record.event for record in result.records] == [buy, sell]
    assert result.records[1].gain_cad == Decimal("-20")
