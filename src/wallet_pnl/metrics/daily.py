from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from wallet_pnl.dates import timestamp_to_date, validate_date_sequence
from wallet_pnl.models import PERP, SPOT, DailyPnlRow, DayBucket, NormalizedFunding, NormalizedTrade


def bucket_events(
    dates: Sequence[str],
    trades: Iterable[NormalizedTrade],
    funding: Iterable[NormalizedFunding] = (),
) -> list[DayBucket]:
    """Partition trades and funding into one UTC day bucket per requested date.

    Events dated outside ``dates`` are dropped. Trades inside each bucket keep
    chronological order; ties keep their input order.
    """
    validate_date_sequence(list(dates))
    buckets = [DayBucket(date=day) for day in dates]
    by_date = {bucket.date: bucket for bucket in buckets}

    for trade in sorted(trades, key=lambda item: item.timestamp):
        bucket = by_date.get(timestamp_to_date(trade.timestamp))
        if bucket is not None:
            bucket.trades.append(trade)

    for event in sorted(funding, key=lambda item: item.timestamp):
        bucket = by_date.get(timestamp_to_date(event.timestamp))
        if bucket is not None:
            bucket.funding.append(event)

    return buckets


def aggregate_daily(
    buckets: Sequence[DayBucket],
    spot_realized: Mapping[str, float] | None = None,
    *,
    mark_date: str | None = None,
    perp_unrealized: float = 0.0,
    spot_unrealized: float = 0.0,
) -> list[DailyPnlRow]:
    """Build one row per bucket with perp and spot breakdowns.

    Unrealized PnL is only known for ``mark_date`` (the live snapshot day);
    every other day carries zero unrealized PnL. Equity is left unset.
    """
    spot_realized = spot_realized or {}
    rows: list[DailyPnlRow] = []
    for bucket in buckets:
        row = DailyPnlRow(date=bucket.date)
        for trade in bucket.trades:
            if trade.market == SPOT:
                row.spot.fees += abs(trade.fee)
            elif trade.market == PERP:
                row.perp.fees += abs(trade.fee)
                row.perp.realized_pnl += trade.closed_pnl
            else:
                raise ValueError(f"Unknown market kind: {trade.market!r}")
        row.perp.funding = sum(event.amount for event in bucket.funding)
        row.spot.realized_pnl = spot_realized.get(bucket.date, 0.0)
        if mark_date is not None and bucket.date == mark_date:
            row.perp.unrealized_pnl = perp_unrealized
            row.spot.unrealized_pnl = spot_unrealized
        rows.append(row)
    return rows
