from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from wallet_pnl.dates import timestamp_to_date
from wallet_pnl.models import SPOT, DayBucket, NormalizedTrade, SpotPosition

_SIZE_EPSILON = 1e-12


class SpotCostBasisTracker:
    """Weighted-average cost basis per coin for spot fills.

    One tracker lives for one request; feed it every spot fill of the range
    in chronological order so positions carry across day boundaries.
    """

    def __init__(self) -> None:
        self.positions: dict[str, SpotPosition] = {}
        self.realized_by_date: dict[str, float] = defaultdict(float)

    def position(self, coin: str) -> SpotPosition:
        position = self.positions.get(coin)
        if position is None:
            position = SpotPosition(coin=coin)
            self.positions[coin] = position
        return position

    def apply(self, trade: NormalizedTrade) -> float:
        position = self.position(trade.coin)
        if trade.side == "buy":
            _apply_buy(position, trade.size, trade.price)
            return 0.0
        if trade.side == "sell":
            realized = _apply_sell(position, trade.size, trade.price)
            if realized:
                self.realized_by_date[timestamp_to_date(trade.timestamp)] += realized
            return realized
        raise ValueError(f"Unsupported trade side: {trade.side!r}")


def compute_spot_realized(buckets: Iterable[DayBucket]) -> dict[str, float]:
    tracker = SpotCostBasisTracker()
    for bucket in buckets:
        for trade in bucket.trades:
            if trade.market == SPOT:
                tracker.apply(trade)
    return dict(tracker.realized_by_date)


def _apply_buy(position: SpotPosition, size: float, price: float) -> None:
    if position.size <= 0:
        position.size = size
        position.avg_cost = price
        return
    new_size = position.size + size
    position.avg_cost = (position.size * position.avg_cost + size * price) / new_size
    position.size = new_size


def _apply_sell(position: SpotPosition, size: float, price: float) -> float:
    matched = min(size, position.size)
    if matched <= 0:
        return 0.0
    realized = matched * (price - position.avg_cost)
    position.size -= matched
    if position.size < _SIZE_EPSILON:
        position.size = 0.0
    return realized
