import pytest

from conftest import to_ms

from wallet_pnl.errors import AMBIGUOUS_ANCHOR, InvalidDateRange, MalformedUpstreamData
from wallet_pnl.models import SPOT, AnchorPoint
from wallet_pnl.pnl_report import compute_daily_pnl, compute_daily_pnl_from_payloads, report_payload

DATES = ["2025-01-01", "2025-01-02", "2025-01-03"]


def test_closed_trade_with_live_anchor(raw_fill):
    report = compute_daily_pnl_from_payloads(
        DATES,
        [raw_fill("BTC", "A", 65000.0, 0.1, "2025-01-02", fee=5.0, closed_pnl=100.0, tid=1)],
        [],
        AnchorPoint(date="2025-01-03", equity=10_000.0, unrealized_pnl=0.0),
    )

    assert [row.date for row in report.daily] == DATES
    assert [row.net_pnl for row in report.daily] == [0.0, pytest.approx(95.0), 0.0]
    assert [row.equity for row in report.daily] == [pytest.approx(9905.0), 10_000.0, 10_000.0]
    assert report.summary.net_pnl == pytest.approx(95.0)
    assert report.diagnostics.equity_mode == "anchored"
    assert report.diagnostics.markets_included == ["perp"]


def test_spot_round_trip_realizes_on_sell_day(raw_fill):
    report = compute_daily_pnl_from_payloads(
        ["2025-01-01", "2025-01-02"],
        [
            raw_fill("PURR/USDC", "B", 2.0, 10.0, "2025-01-01"),
            raw_fill("PURR/USDC", "A", 3.0, 10.0, "2025-01-02"),
        ],
    )

    assert report.daily[0].spot.realized_pnl == 0.0
    assert report.daily[1].spot.realized_pnl == pytest.approx(10.0)
    assert report.daily[1].perp.realized_pnl == 0.0
    assert report.diagnostics.markets_included == [SPOT]


def test_without_anchor_equity_is_relative(raw_fill):
    report = compute_daily_pnl_from_payloads(
        ["2025-01-01"],
        [raw_fill("ETH", "B", 3000.0, 1.0, "2025-01-01", fee=20.0)],
    )

    assert report.daily[0].net_pnl == pytest.approx(-20.0)
    assert report.daily[0].equity == pytest.approx(20.0)
    assert report.diagnostics.equity_mode == "relative"
    assert report.diagnostics.warnings[0].startswith(AMBIGUOUS_ANCHOR)


def test_unrealized_is_placed_on_anchor_day_only():
    report = compute_daily_pnl(
        DATES,
        [],
        anchor=AnchorPoint(date="2025-01-02", equity=1000.0, unrealized_pnl=25.0, spot_unrealized_pnl=5.0),
    )

    assert [row.unrealized_pnl for row in report.daily] == [0.0, 30.0, 0.0]
    assert report.summary.total_unrealized == pytest.approx(30.0)
    assert [row.equity for row in report.daily] == [970.0, 1000.0, 1000.0]


def test_anchor_after_range_gives_zero_unrealized():
    report = compute_daily_pnl(
        DATES,
        [],
        anchor=AnchorPoint(date="2025-03-01", equity=1000.0, unrealized_pnl=25.0),
    )

    assert all(row.unrealized_pnl == 0.0 for row in report.daily)
    assert report.summary.total_unrealized == 0.0
    assert report.daily[-1].equity == 1000.0
    assert report.diagnostics.equity_mode == "anchored_last_row"


def test_net_and_combined_invariants_hold(raw_fill):
    fills = [
        raw_fill("BTC", "B", 60000.0, 0.2, "2025-01-01", fee=3.1, tid=1),
        raw_fill("BTC", "A", 61000.0, 0.2, "2025-01-02", fee=3.2, closed_pnl=200.0, tid=2),
        raw_fill("HYPE/USDC", "B", 20.0, 5.0, "2025-01-02", fee=0.05, tid=3),
        raw_fill("HYPE/USDC", "A", 22.0, 2.0, "2025-01-03", fee=0.02, tid=4),
    ]
    funding = [
        {"coin": "BTC", "usdc": "-0.8", "time": to_ms("2025-01-01", 8)},
        {"time": to_ms("2025-01-03", 16), "delta": {"type": "funding", "coin": "BTC", "usdc": "0.3"}},
    ]
    report = compute_daily_pnl_from_payloads(
        DATES, fills, funding, AnchorPoint(date="2025-01-03", equity=5000.0, unrealized_pnl=12.0)
    )

    for row in report.daily:
        assert row.net_pnl == pytest.approx(row.realized_pnl + row.unrealized_pnl - row.fees + row.funding, abs=1e-9)
        assert row.realized_pnl == pytest.approx(row.perp.realized_pnl + row.spot.realized_pnl)
        assert row.fees == pytest.approx(row.perp.fees + row.spot.fees)
    for previous, current in zip(report.daily, report.daily[1:]):
        assert current.equity - previous.equity == pytest.approx(current.net_pnl, abs=1e-9)
    assert report.daily[2].spot.realized_pnl == pytest.approx(4.0)
    assert report.diagnostics.markets_included == ["perp", "spot"]


def test_same_inputs_give_identical_payloads(raw_fill):
    fills = [raw_fill("ETH", "A", 3100.0, 1.0, "2025-01-02", fee=1.0, closed_pnl=50.0, tid=9)]
    anchor = AnchorPoint(date="2025-01-03", equity=2000.0, unrealized_pnl=3.0)

    first = report_payload(compute_daily_pnl_from_payloads(DATES, fills, [], anchor))
    second = report_payload(compute_daily_pnl_from_payloads(DATES, fills, [], anchor))

    assert first == second


def test_report_payload_shape(raw_fill):
    payload = report_payload(
        compute_daily_pnl_from_payloads(
            ["2025-01-01"], [raw_fill("ETH", "A", 3100.0, 1.0, "2025-01-01", fee=1.0, closed_pnl=50.0)]
        )
    )

    row = payload["daily"][0]
    assert set(row) == {
        "date",
        "realized_pnl_usd",
        "unrealized_pnl_usd",
        "fees_usd",
        "funding_usd",
        "net_pnl_usd",
        "equity_usd",
        "perp",
        "spot",
    }
    assert row["perp"]["realized_pnl_usd"] == pytest.approx(50.0)
    assert payload["summary"]["net_pnl_usd"] == pytest.approx(49.0)
    assert payload["diagnostics"]["equity_mode"] == "relative"
    assert payload["diagnostics"]["data_source"] == "hyperliquid_api"


def test_empty_date_list_yields_empty_report():
    report = compute_daily_pnl([], [])

    assert report.daily == []
    assert report.diagnostics.equity_mode == "empty"
    assert report.summary.net_pnl == 0


def test_gapped_dates_are_rejected():
    with pytest.raises(InvalidDateRange):
        compute_daily_pnl(["2025-01-01", "2025-01-05"], [])


def test_malformed_fill_fails_the_whole_report(raw_fill):
    bad = raw_fill("ETH", "B", 3000.0, 1.0, "2025-01-01")
    bad["px"] = None
    with pytest.raises(MalformedUpstreamData):
        compute_daily_pnl_from_payloads(["2025-01-01"], [bad])
