from __future__ import annotations

from typing import Sequence

from wallet_pnl.errors import AMBIGUOUS_ANCHOR
from wallet_pnl.models import (
    MARKETS,
    DailyPnlRow,
    MarketPnl,
    MarketSummary,
    PnlDiagnostics,
    PnlSummary,
)
from wallet_pnl.reconstruct.equity import ANCHORED, ANCHORED_LAST_ROW, EMPTY, RELATIVE, STORED_SNAPSHOTS

DEFAULT_DATA_SOURCE = "hyperliquid_api"
DEFAULT_NOTES = (
    "PnL calculated from event data (fills and funding payments). "
    "Equity is reconstructed from net PnL deltas, not read from historical snapshots."
)


def compute_summary(rows: Sequence[DailyPnlRow], *, mark_date: str | None = None) -> PnlSummary:
    mark_row = _mark_row(rows, mark_date)
    perp = _market_summary([row.perp for row in rows], mark_row.perp if mark_row else None)
    spot = _market_summary([row.spot for row in rows], mark_row.spot if mark_row else None)
    return PnlSummary(
        total_realized=sum(row.realized_pnl for row in rows),
        # Point-in-time figure: read from the mark day only.
        total_unrealized=mark_row.unrealized_pnl if mark_row else 0.0,
        total_fees=sum(row.fees for row in rows),
        total_funding=sum(row.funding for row in rows),
        net_pnl=sum(row.net_pnl for row in rows),
        perp=perp,
        spot=spot,
    )


def build_diagnostics(
    equity_mode: str,
    *,
    anchor_date: str | None,
    markets: Sequence[str] = (),
    warnings: Sequence[str] = (),
    data_source: str = DEFAULT_DATA_SOURCE,
    notes: str = DEFAULT_NOTES,
) -> PnlDiagnostics:
    all_warnings: list[str] = []
    if equity_mode == RELATIVE:
        all_warnings.append(
            f"{AMBIGUOUS_ANCHOR}: no live account snapshot was available; "
            "equity values are relative, not absolute."
        )
    return PnlDiagnostics(
        data_source=data_source,
        equity_mode=equity_mode,
        anchor_date=anchor_date,
        unrealized_policy=unrealized_policy(equity_mode, anchor_date),
        notes=notes,
        markets_included=[market for market in MARKETS if market in set(markets)],
        warnings=all_warnings + list(warnings),
    )


def unrealized_policy(equity_mode: str, anchor_date: str | None) -> str:
    if equity_mode == ANCHORED:
        return (
            f"Unrealized PnL reflects only the snapshot day ({anchor_date}); historical days assume "
            "zero mark-to-market movement. Equity is reconstructed backwards and forwards from the "
            "live equity snapshot."
        )
    if equity_mode == ANCHORED_LAST_ROW:
        return (
            f"The live snapshot ({anchor_date}) is outside the requested range. Unrealized PnL is 0 "
            "for all days and the snapshot equity is applied to the last day of the range, then "
            "reconstructed backwards."
        )
    if equity_mode == STORED_SNAPSHOTS:
        pinned = (
            "Equity is pinned to stored daily snapshots where available and reconstructed from the "
            "nearest known day elsewhere."
        )
        if anchor_date is None:
            return f"{pinned} No live account snapshot available; unrealized PnL is 0 for all days."
        return f"{pinned} Unrealized PnL reflects only the live snapshot day ({anchor_date})."
    if equity_mode == EMPTY:
        return "No days in range."
    return (
        "No live account snapshot available. Equity is reconstructed as relative values (not "
        "anchored to a live snapshot). Unrealized PnL is 0 for all days."
    )


def _market_summary(items: Sequence[MarketPnl], mark: MarketPnl | None) -> MarketSummary:
    return MarketSummary(
        realized_pnl=sum(item.realized_pnl for item in items),
        unrealized_pnl=mark.unrealized_pnl if mark else 0.0,
        fees=sum(item.fees for item in items),
        funding=sum(item.funding for item in items),
        net_pnl=sum(item.net_pnl for item in items),
    )


def _mark_row(rows: Sequence[DailyPnlRow], mark_date: str | None) -> DailyPnlRow | None:
    if not rows:
        return None
    if mark_date is not None:
        for row in rows:
            if row.date == mark_date:
                return row
    return rows[-1]

