from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

PERP = "perp"
SPOT = "spot"
MARKETS = (PERP, SPOT)


@dataclass(frozen=True)
class NormalizedTrade:
    coin: str
    side: str
    price: float
    size: float
    timestamp: datetime
    fee: float
    closed_pnl: float
    market: str


@dataclass(frozen=True)
class NormalizedFunding:
    coin: str
    amount: float
    timestamp: datetime


@dataclass
class DayBucket:
    date: str
    trades: list[NormalizedTrade] = field(default_factory=list)
    funding: list[NormalizedFunding] = field(default_factory=list)


@dataclass
class SpotPosition:
    coin: str
    size: float = 0.0
    avg_cost: float = 0.0


@dataclass(frozen=True)
class AnchorPoint:
    date: str
    equity: float
    unrealized_pnl: float | None = None
    spot_unrealized_pnl: float | None = None


@dataclass
class MarketPnl:
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    fees: float = 0.0
    funding: float = 0.0

    @property
    def net_pnl(self) -> float:
        return self.realized_pnl + self.unrealized_pnl - self.fees + self.funding


@dataclass
class DailyPnlRow:
    date: str
    perp: MarketPnl = field(default_factory=MarketPnl)
    spot: MarketPnl = field(default_factory=MarketPnl)
    equity: float | None = None

    @property
    def realized_pnl(self) -> float:
        return self.perp.realized_pnl + self.spot.realized_pnl

    @property
    def unrealized_pnl(self) -> float:
        return self.perp.unrealized_pnl + self.spot.unrealized_pnl

    @property
    def fees(self) -> float:
        return self.perp.fees + self.spot.fees

    @property
    def funding(self) -> float:
        return self.perp.funding + self.spot.funding

    @property
    def net_pnl(self) -> float:
        return self.realized_pnl + self.unrealized_pnl - self.fees + self.funding


@dataclass(frozen=True)
class MarketSummary:
    realized_pnl: float
    unrealized_pnl: float
    fees: float
    funding: float
    net_pnl: float


@dataclass(frozen=True)
class PnlSummary:
    total_realized: float
    total_unrealized: float
    total_fees: float
    total_funding: float
    net_pnl: float
    perp: MarketSummary
    spot: MarketSummary


@dataclass(frozen=True)
class PnlDiagnostics:
    data_source: str
    equity_mode: str
    anchor_date: str | None
    unrealized_policy: str
    notes: str
    markets_included: list[str]
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PnlReport:
    daily: list[DailyPnlRow]
    summary: PnlSummary
    diagnostics: PnlDiagnostics


@dataclass(frozen=True)
class PositionState:
    coin: str
    size: float
    entry_price: float | None
    unrealized_pnl: float
    position_value: float | None


@dataclass(frozen=True)
class AccountState:
    equity: float
    unrealized_pnl: float
    total_margin_used: float
    positions: list[PositionState] = field(default_factory=list)


@dataclass(frozen=True)
class SpotBalance:
    coin: str
    total: float
    hold: float
    entry_notional: float

    @property
    def available(self) -> float:
        return self.total - self.hold


@dataclass(frozen=True)
class EquitySnapshot:
    wallet: str
    date: str
    equity_usd: float
    unrealized_pnl_usd: float
    account_value: float
    total_margin_used: float
    positions_count: int
    snapshot_time: datetime
