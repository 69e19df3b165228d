from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

import pytest

from wallet_pnl.ingest.hyperliquid import market_for_coin
from wallet_pnl.ingest.hyperliquid_api import HyperliquidApiError
from wallet_pnl.models import NormalizedFunding, NormalizedTrade


def to_ms(day: str, hour: int = 12, minute: int = 0) -> int:
    moment = datetime.fromisoformat(day).replace(hour=hour, minute=minute, tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class FakeInfoClient:
    """In-memory stand-in for the Hyperliquid /info client."""

    def __init__(
        self,
        *,
        fills: list[Mapping[str, Any]] | None = None,
        funding: list[Mapping[str, Any]] | None = None,
        states: Mapping[str, Any] | None = None,
        spot_states: Mapping[str, Any] | None = None,
        spot_meta: Mapping[str, Any] | None = None,
    ) -> None:
        self.fills = list(fills or [])
        self.funding = list(funding or [])
        self.states = dict(states or {})
        self.spot_states = dict(spot_states or {})
        self.spot_meta = spot_meta
        self.calls: list[str] = []

    def fetch_clearinghouse_state(self, user: str) -> Mapping[str, Any] | None:
        self.calls.append("clearinghouseState")
        state = self.states.get(user)
        if isinstance(state, Exception):
            raise state
        return state

    def fetch_spot_clearinghouse_state(self, user: str) -> Mapping[str, Any] | None:
        self.calls.append("spotClearinghouseState")
        return self.spot_states.get(user)

    def fetch_spot_meta(self) -> Mapping[str, Any] | None:
        self.calls.append("spotMeta")
        return self.spot_meta

    def fetch_all_fills_by_time(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]:
        self.calls.append("userFillsByTime")
        return [fill for fill in self.fills if start_ms <= fill["time"] <= end_ms]

    def fetch_user_funding(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]:
        self.calls.append("userFunding")
        return [event for event in self.funding if start_ms <= event["time"] <= end_ms]


class FailingFillsClient(FakeInfoClient):
    def fetch_all_fills_by_time(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]:
        self.calls.append("userFillsByTime")
        raise HyperliquidApiError("userFillsByTime request failed: timed out")


@pytest.fixture
def raw_fill():
    def _build(
        coin: str,
        side: str,
        px: float,
        sz: float,
        day: str,
        *,
        hour: int = 12,
        fee: float = 0.0,
        closed_pnl: float = 0.0,
        tid: int | None = None,
    ) -> dict[str, Any]:
        fill: dict[str, Any] = {
            "coin": coin,
            "side": side,
            "px": str(px),
            "sz": str(sz),
            "time": to_ms(day, hour),
            "fee": str(fee),
            "closedPnl": str(closed_pnl),
        }
        if tid is not None:
            fill["tid"] = tid
        return fill

    return _build


@pytest.fixture
def trade():
    def _build(
        coin: str,
        side: str,
        price: float,
        size: float,
        day: str,
        *,
        hour: int = 12,
        minute: int = 0,
        fee: float = 0.0,
        closed_pnl: float = 0.0,
        market: str | None = None,
    ) -> NormalizedTrade:
        moment = datetime.fromisoformat(day).replace(hour=hour, minute=minute, tzinfo=timezone.utc)
        return NormalizedTrade(
            coin=coin,
            side=side,
            price=price,
            size=size,
            timestamp=moment,
            fee=fee,
            closed_pnl=closed_pnl,
            market=market or market_for_coin(coin),
        )

    return _build


@pytest.fixture
def funding_event():
    def _build(coin: str, amount: float, day: str, *, hour: int = 8) -> NormalizedFunding:
        moment = datetime.fromisoformat(day).replace(hour=hour, tzinfo=timezone.utc)
        return NormalizedFunding(coin=coin, amount=amount, timestamp=moment)

    return _build


@pytest.fixture
def clearinghouse_state():
    def _build(account_value: float, *, unrealized: float = 0.0, margin_used: float = 0.0) -> dict[str, Any]:
        positions = []
        if unrealized:
            positions.append(
                {
                    "type": "oneWay",
                    "position": {
                        "coin": "BTC",
                        "szi": "0.5",
                        "entryPx": "60000.0",
                        "positionValue": "30000.0",
                        "unrealizedPnl": str(unrealized),
                    },
                }
            )
        return {
            "marginSummary": {
                "accountValue": str(account_value),
                "totalMarginUsed": str(margin_used),
            },
            "assetPositions": positions,
        }

    return _build


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "wallet_pnl.sqlite"
