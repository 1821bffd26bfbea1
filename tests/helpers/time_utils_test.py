from datetime import datetime, timezone
from random import Random

from kraken_acb.domain.ledger import EntryType
from tests.helpers.time_utils import TimeGenerator, make_entry


def test_time_generator_increases_with_seed() -> None:
    gen = TimeGenerator(_rng=Random(42))

    ts1 = gen()
    ts2 = gen()
    ts3 = gen()

    assert ts1 < ts2 < ts3
    gaps = [(ts2 - ts1).total_seconds(), (ts3 - ts2).total_seconds()]
    for gap in gaps:
        assert 5 <= gap <= 60

    gen_again = TimeGenerator(_rng=Random(42))
    ts1_b, ts2_b, ts3_b = gen_again(), gen_again(), gen_again()
    assert gaps == [(ts2_b - ts1_b).total_seconds(), (ts3_b - ts2_b).total_seconds()]


def test_make_entry_uses_generator_when_timestamp_missing() -> None:
    gen = TimeGenerator(_rng=Random(1))

    first = make_entry(entry_type="deposit", asset="ETH", amount="1", ts_gen=gen)
    second = make_entry(entry_type="deposit", asset="ETH", amount="1", ts_gen=gen)

    assert first.time < second.time
    assert first.time.tzinfo == timezone.utc
    assert first.seq < second.seq


def test_make_entry_respects_provided_timestamp() -> None:
    explicit_ts = datetime(2024, 2, 1, tzinfo=timezone.utc)

    entry = make_entry(entry_type="withdrawal", asset="ETH", amount="-1", timestamp=explicit_ts)

    assert entry.time == explicit_ts
    assert entry.type == EntryType.WITHDRAWAL


def test_make_entry_maps_unknown_types_to_other() -> None:
    entry = make_entry(entry_type="margin", asset="ETH", amount="1")

    assert entry.type == EntryType.OTHER
    assert entry.raw_type == "margin"


def test_default_generator_is_reset_between_tests() -> None:
    first = make_entry(entry_type="deposit", asset="ETH", amount="1")

    assert first.time == TimeGenerator(_rng=Random(0)).next()
