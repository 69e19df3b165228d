from __future__ import annotations

from dataclasses import asdict
from typing import Any, Iterable, Mapping, Sequence

from wallet_pnl.ingest.hyperliquid import load_hyperliquid_fills_payload, load_hyperliquid_funding_payload
from wallet_pnl.metrics.daily import aggregate_daily, bucket_events
from wallet_pnl.metrics.summary import DEFAULT_DATA_SOURCE, build_diagnostics, compute_summary
from wallet_pnl.models import (
    PERP,
    AnchorPoint,
    DailyPnlRow,
    MarketPnl,
    NormalizedFunding,
    NormalizedTrade,
    PnlReport,
)
from wallet_pnl.reconstruct.equity import reconstruct_equity
from wallet_pnl.reconstruct.spot import compute_spot_realized


def compute_daily_pnl(
    dates: Sequence[str],
    trades: Iterable[NormalizedTrade],
    funding: Iterable[NormalizedFunding] = (),
    anchor: AnchorPoint | None = None,
    *,
    stored_equity: Mapping[str, float] | None = None,
    warnings: Sequence[str] = (),
    data_source: str = DEFAULT_DATA_SOURCE,
) -> PnlReport:
    """Daily PnL and equity series for ``dates`` from normalized events.

    Pure: no I/O and no clock reads. ``anchor`` is the live account snapshot,
    if one was obtained; without it equity is reported as relative values.
    """
    buckets = bucket_events(dates, trades, funding)
    spot_realized = compute_spot_realized(buckets)

    mark_date = None
    if anchor is not None and any(bucket.date == anchor.date for bucket in buckets):
        mark_date = anchor.date
    rows = aggregate_daily(
        buckets,
        spot_realized,
        mark_date=mark_date,
        perp_unrealized=_or_zero(anchor.unrealized_pnl) if anchor else 0.0,
        spot_unrealized=_or_zero(anchor.spot_unrealized_pnl) if anchor else 0.0,
    )

    equity_mode = reconstruct_equity(rows, anchor, stored_equity=stored_equity)
    markets = {trade.market for bucket in buckets for trade in bucket.trades}
    if any(bucket.funding for bucket in buckets):
        markets.add(PERP)
    return PnlReport(
        daily=rows,
        summary=compute_summary(rows, mark_date=mark_date),
        diagnostics=build_diagnostics(
            equity_mode,
            anchor_date=anchor.date if anchor else None,
            markets=sorted(markets),
            warnings=warnings,
            data_source=data_source,
        ),
    )


def compute_daily_pnl_from_payloads(
    dates: Sequence[str],
    fills_payload: Any,
    funding_payload: Any = None,
    anchor: AnchorPoint | None = None,
    *,
    stored_equity: Mapping[str, float] | None = None,
    data_source: str = DEFAULT_DATA_SOURCE,
) -> PnlReport:
    trades = load_hyperliquid_fills_payload(fills_payload)
    funding = load_hyperliquid_funding_payload(funding_payload)
    return compute_daily_pnl(
        dates,
        trades,
        funding,
        anchor,
        stored_equity=stored_equity,
        data_source=data_source,
    )


def report_payload(report: PnlReport) -> dict[str, Any]:
    summary = report.summary
    return {
        "daily": [row_payload(row) for row in report.daily],
        "summary": {
            "total_realized_usd": summary.total_realized,
            "total_unrealized_usd": summary.total_unrealized,
            "total_fees_usd": summary.total_fees,
            "total_funding_usd": summary.total_funding,
            "net_pnl_usd": summary.net_pnl,
            "perp_realized_usd": summary.perp.realized_pnl,
            "perp_unrealized_usd": summary.perp.unrealized_pnl,
            "perp_fees_usd": summary.perp.fees,
            "spot_realized_usd": summary.spot.realized_pnl,
            "spot_unrealized_usd": summary.spot.unrealized_pnl,
            "spot_fees_usd": summary.spot.fees,
        },
        "diagnostics": asdict(report.diagnostics),
    }


def row_payload(row: DailyPnlRow) -> dict[str, Any]:
    return {
        "date": row.date,
        "realized_pnl_usd": row.realized_pnl,
        "unrealized_pnl_usd": row.unrealized_pnl,
        "fees_usd": row.fees,
        "funding_usd": row.funding,
        "net_pnl_usd": row.net_pnl,
        "equity_usd": row.equity,
        "perp": _market_payload(row.perp),
        "spot": _market_payload(row.spot),
    }


def _market_payload(item: MarketPnl) -> dict[str, float]:
    return {
        "realized_pnl_usd": item.realized_pnl,
        "unrealized_pnl_usd": item.unrealized_pnl,
        "fees_usd": item.fees,
    }


def _or_zero(value: float | None) -> float:
    return 0.0 if value is None else value
