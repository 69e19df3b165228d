import pytest

from wallet_pnl.errors import InvalidDateRange
from wallet_pnl.metrics.daily import aggregate_daily, bucket_events
from wallet_pnl.models import SPOT

DATES = ["2025-01-01", "2025-01-02", "2025-01-03"]


def test_bucket_events_one_bucket_per_date(trade, funding_event):
    buckets = bucket_events(
        DATES,
        [
            trade("ETH", "buy", 3000.0, 1.0, "2025-01-02", hour=18),
            trade("ETH", "sell", 3100.0, 1.0, "2025-01-02", hour=9),
            trade("ETH", "buy", 2900.0, 1.0, "2024-12-31"),
            trade("ETH", "buy", 2900.0, 1.0, "2025-01-04"),
        ],
        [funding_event("ETH", -0.5, "2025-01-03")],
    )

    assert [bucket.date for bucket in buckets] == DATES
    assert buckets[0].trades == []
    assert [item.side for item in buckets[1].trades] == ["sell", "buy"]
    assert buckets[2].trades == []
    assert [event.amount for event in buckets[2].funding] == [-0.5]


def test_bucket_boundaries_follow_utc_midnight(trade):
    buckets = bucket_events(
        ["2025-01-01", "2025-01-02"],
        [
            trade("BTC", "buy", 1.0, 1.0, "2025-01-01", hour=23, minute=59),
            trade("BTC", "buy", 1.0, 1.0, "2025-01-02", hour=0),
        ],
    )

    assert len(buckets[0].trades) == 1
    assert len(buckets[1].trades) == 1


def test_bucket_events_rejects_gaps(trade):
    with pytest.raises(InvalidDateRange):
        bucket_events(["2025-01-01", "2025-01-03"], [])


def test_aggregate_daily_splits_perp_and_spot(trade, funding_event):
    buckets = bucket_events(
        DATES,
        [
            trade("BTC", "sell", 65000.0, 0.1, "2025-01-02", fee=5.0, closed_pnl=100.0),
            trade("PURR", "buy", 2.0, 10.0, "2025-01-02", fee=0.2, market=SPOT),
        ],
        [funding_event("BTC", 1.5, "2025-01-03"), funding_event("ETH", -0.5, "2025-01-03")],
    )

    rows = aggregate_daily(buckets, {"2025-01-03": 4.0})

    assert [row.date for row in rows] == DATES
    assert rows[1].perp.realized_pnl == pytest.approx(100.0)
    assert rows[1].perp.fees == pytest.approx(5.0)
    assert rows[1].spot.fees == pytest.approx(0.2)
    assert rows[1].fees == pytest.approx(5.2)
    assert rows[1].net_pnl == pytest.approx(94.8)
    assert rows[2].funding == pytest.approx(1.0)
    assert rows[2].spot.realized_pnl == pytest.approx(4.0)
    assert rows[2].net_pnl == pytest.approx(5.0)
    assert all(row.equity is None for row in rows)


def test_zero_activity_day_is_all_zero():
    rows = aggregate_daily(bucket_events(DATES, []))

    for row in rows:
        assert (row.realized_pnl, row.unrealized_pnl, row.fees, row.funding, row.net_pnl) == (0, 0, 0, 0, 0)


def test_unrealized_lands_on_mark_date_only():
    rows = aggregate_daily(
        bucket_events(DATES, []),
        mark_date="2025-01-02",
        perp_unrealized=30.0,
        spot_unrealized=-5.0,
    )

    assert [row.unrealized_pnl for row in rows] == [0.0, 25.0, 0.0]
    assert rows[1].perp.unrealized_pnl == 30.0
    assert rows[1].spot.unrealized_pnl == -5.0


def test_combined_fields_equal_perp_plus_spot(trade):
    rows = aggregate_daily(
        bucket_events(
            DATES,
            [
                trade("BTC", "buy", 1.0, 1.0, "2025-01-01", fee=1.25, closed_pnl=-3.0),
                trade("PURR", "sell", 1.0, 1.0, "2025-01-01", fee=0.75, market=SPOT),
            ],
        ),
        {"2025-01-01": 2.0},
    )

    row = rows[0]
    assert row.realized_pnl == row.perp.realized_pnl + row.spot.realized_pnl
    assert row.fees == row.perp.fees + row.spot.fees
    assert row.net_pnl == pytest.approx(row.perp.net_pnl + row.spot.net_pnl)


def test_unknown_market_raises(trade):
    buckets = bucket_events(DATES, [trade("BTC", "buy", 1.0, 1.0, "2025-01-01", market="option")])
    with pytest.raises(ValueError):
        aggregate_daily(buckets)
