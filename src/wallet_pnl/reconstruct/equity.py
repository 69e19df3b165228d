from __future__ import annotations

from typing import Mapping, Sequence

from wallet_pnl.models import AnchorPoint, DailyPnlRow

ANCHORED = "anchored"
ANCHORED_LAST_ROW = "anchored_last_row"
RELATIVE = "relative"
STORED_SNAPSHOTS = "stored_snapshots"
EMPTY = "empty"


def reconstruct_equity(
    rows: Sequence[DailyPnlRow],
    anchor: AnchorPoint | None,
    *,
    stored_equity: Mapping[str, float] | None = None,
) -> str:
    """Fill ``equity`` on every row from the net PnL series and return the mode used.

    Equity cannot be observed for past days, so it is integrated from the one
    trusted point: ``equity[i+1] - equity[i] == net_pnl[i+1]`` holds between
    consecutive rows in every mode except across pinned stored snapshots.
    """
    if not rows:
        return EMPTY
    for row in rows:
        row.equity = None

    anchor_index = _index_of(rows, anchor.date) if anchor is not None else None
    if anchor is not None and anchor_index is not None:
        _apply_anchor_unrealized(rows[anchor_index], anchor)

    if stored_equity:
        known = {
            index: stored_equity[row.date]
            for index, row in enumerate(rows)
            if row.date in stored_equity
        }
        if anchor is not None and anchor_index is not None:
            known[anchor_index] = anchor.equity
        if known:
            _fill_from_known(rows, known)
            return STORED_SNAPSHOTS

    if anchor is None:
        _propagate_relative(rows)
        return RELATIVE

    if anchor_index is None:
        last = len(rows) - 1
        rows[last].equity = anchor.equity
        _propagate_backward(rows, last)
        return ANCHORED_LAST_ROW

    rows[anchor_index].equity = anchor.equity
    _propagate_backward(rows, anchor_index)
    _propagate_forward(rows, anchor_index)
    return ANCHORED


def _index_of(rows: Sequence[DailyPnlRow], date: str) -> int | None:
    for index, row in enumerate(rows):
        if row.date == date:
            return index
    return None


def _apply_anchor_unrealized(row: DailyPnlRow, anchor: AnchorPoint) -> None:
    # The live snapshot is ground truth for the anchor day.
    if anchor.unrealized_pnl is not None and row.perp.unrealized_pnl != anchor.unrealized_pnl:
        row.perp.unrealized_pnl = anchor.unrealized_pnl
    if anchor.spot_unrealized_pnl is not None and row.spot.unrealized_pnl != anchor.spot_unrealized_pnl:
        row.spot.unrealized_pnl = anchor.spot_unrealized_pnl


def _propagate_backward(rows: Sequence[DailyPnlRow], start: int) -> None:
    for index in range(start - 1, -1, -1):
        following = rows[index + 1]
        rows[index].equity = following.equity - following.net_pnl


def _propagate_forward(rows: Sequence[DailyPnlRow], start: int) -> None:
    for index in range(start + 1, len(rows)):
        rows[index].equity = rows[index - 1].equity + rows[index].net_pnl


def _propagate_relative(rows: Sequence[DailyPnlRow]) -> None:
    # Zero sits on a notional day after the last row.
    last = rows[-1]
    last.equity = -last.net_pnl
    _propagate_backward(rows, len(rows) - 1)


def _fill_from_known(rows: Sequence[DailyPnlRow], known: Mapping[int, float]) -> None:
    for index, equity in known.items():
        rows[index].equity = equity
    for index in range(len(rows) - 2, -1, -1):
        if index in known:
            continue
        following = rows[index + 1]
        if following.equity is not None:
            rows[index].equity = following.equity - following.net_pnl
    for index in range(1, len(rows)):
        if rows[index].equity is None and rows[index - 1].equity is not None:
            rows[index].equity = rows[index - 1].equity + rows[index].net_pnl
