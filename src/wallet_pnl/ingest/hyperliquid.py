from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from wallet_pnl.errors import MalformedUpstreamData
from wallet_pnl.models import (
    PERP,
    SPOT,
    AccountState,
    AnchorPoint,
    NormalizedFunding,
    NormalizedTrade,
    PositionState,
    SpotBalance,
)

_QUOTE_ASSETS = {"USDC"}


def load_hyperliquid_fills_payload(payload: Any) -> list[NormalizedTrade]:
    return [_normalize_fill(raw) for raw in _extract_records(payload)]


def load_hyperliquid_funding_payload(payload: Any) -> list[NormalizedFunding]:
    events: list[NormalizedFunding] = []
    for raw in _extract_records(payload):
        delta = raw.get("delta")
        if isinstance(delta, Mapping):
            if str(delta.get("type") or "").strip().lower() != "funding":
                continue
            events.append(_normalize_funding(delta, raw.get("time")))
        else:
            events.append(_normalize_funding(raw, raw.get("time")))
    return events


def load_hyperliquid_clearinghouse_state_payload(payload: Any) -> AccountState | None:
    if not isinstance(payload, Mapping):
        return None
    margin_summary = payload.get("marginSummary")
    cross_margin_summary = payload.get("crossMarginSummary")
    equity = _coalesce_float(
        _first_float(margin_summary, "accountValue"),
        _first_float(cross_margin_summary, "accountValue"),
        _first_float(payload, "accountValue"),
    )
    if equity is None:
        raise MalformedUpstreamData("clearinghouseState is missing marginSummary.accountValue")
    margin_used = _coalesce_float(
        _first_float(margin_summary, "totalMarginUsed"),
        _first_float(cross_margin_summary, "totalMarginUsed"),
    )

    positions: list[PositionState] = []
    asset_positions = payload.get("assetPositions")
    if isinstance(asset_positions, list):
        for item in asset_positions:
            if not isinstance(item, Mapping):
                continue
            position = item.get("position")
            if isinstance(position, Mapping):
                positions.append(_normalize_position(position))

    return AccountState(
        equity=equity,
        unrealized_pnl=sum(position.unrealized_pnl for position in positions),
        total_margin_used=margin_used or 0.0,
        positions=positions,
    )


def load_hyperliquid_spot_state_payload(payload: Any) -> list[SpotBalance]:
    if not isinstance(payload, Mapping):
        return []
    balances = payload.get("balances")
    if not isinstance(balances, list):
        return []
    output: list[SpotBalance] = []
    for raw in balances:
        if not isinstance(raw, Mapping):
            continue
        coin = raw.get("coin")
        if coin in (None, ""):
            raise MalformedUpstreamData("Spot balance is missing coin")
        output.append(
            SpotBalance(
                coin=str(coin),
                total=_to_float(raw.get("total"), field="total"),
                hold=_to_float(raw.get("hold"), field="hold", default=0.0),
                entry_notional=_to_float(raw.get("entryNtl"), field="entryNtl", default=0.0),
            )
        )
    return output


def load_hyperliquid_spot_meta_payload(payload: Any) -> dict[str, str]:
    """Map spot pair names as they appear on fills (``@107``, ``PURR``) to base token names."""
    if not isinstance(payload, Mapping):
        return {}
    tokens = payload.get("tokens")
    universe = payload.get("universe")
    if not isinstance(tokens, list) or not isinstance(universe, list):
        return {}
    token_names: dict[int, str] = {}
    for token in tokens:
        if isinstance(token, Mapping) and token.get("name") and token.get("index") is not None:
            token_names[int(token["index"])] = str(token["name"])
    symbols: dict[str, str] = {}
    for pair in universe:
        if not isinstance(pair, Mapping):
            continue
        name = pair.get("name")
        pair_tokens = pair.get("tokens")
        if not name or not isinstance(pair_tokens, list) or not pair_tokens:
            continue
        base = token_names.get(int(pair_tokens[0]))
        if base is None:
            continue
        symbols[str(name).split("/", 1)[0]] = base
    return symbols


def spot_unrealized_pnl(balances: Iterable[SpotBalance], prices: Mapping[str, float]) -> float:
    total = 0.0
    for balance in _priceable_balances(balances):
        price = prices.get(balance.coin)
        if price is None:
            continue
        total += balance.total * price - balance.entry_notional
    return total


def unpriced_spot_balances(balances: Iterable[SpotBalance], prices: Mapping[str, float]) -> list[str]:
    return [balance.coin for balance in _priceable_balances(balances) if balance.coin not in prices]


def last_spot_prices(
    trades: Iterable[NormalizedTrade],
    symbols: Mapping[str, str] | None = None,
) -> dict[str, float]:
    symbols = symbols or {}
    prices: dict[str, float] = {}
    for trade in sorted(trades, key=lambda item: item.timestamp):
        if trade.market == SPOT:
            prices[symbols.get(trade.coin, trade.coin)] = trade.price
    return prices


def anchor_from_state(
    state: AccountState | None,
    date: str,
    *,
    spot_unrealized: float | None = None,
) -> AnchorPoint | None:
    if state is None:
        return None
    return AnchorPoint(
        date=date,
        equity=state.equity,
        unrealized_pnl=state.unrealized_pnl,
        spot_unrealized_pnl=spot_unrealized,
    )


def market_for_coin(coin: str) -> str:
    if "/" in coin or coin.startswith("@"):
        return SPOT
    return PERP


def _extract_records(payload: Any) -> list[Mapping[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, Mapping)]
    if isinstance(payload, Mapping):
        data = payload.get("data")
        if isinstance(data, list):
            return [row for row in data if isinstance(row, Mapping)]
    return []


def _normalize_fill(raw: Mapping[str, Any]) -> NormalizedTrade:
    coin_raw = raw.get("coin")
    if coin_raw in (None, ""):
        raise MalformedUpstreamData("Fill is missing coin")
    coin_raw = str(coin_raw)
    market = market_for_coin(coin_raw)
    coin = coin_raw.split("/", 1)[0] if market == SPOT else coin_raw
    closed_pnl = 0.0
    if market == PERP:
        closed_pnl = _to_float(raw.get("closedPnl"), field="closedPnl", default=0.0)
    return NormalizedTrade(
        coin=coin,
        side=_normalize_side(raw.get("side")),
        price=_to_float(raw.get("px"), field="px"),
        size=_to_float(raw.get("sz"), field="sz"),
        timestamp=_parse_timestamp(raw.get("time")),
        fee=abs(_to_float(raw.get("fee"), field="fee", default=0.0)),
        closed_pnl=closed_pnl,
        market=market,
    )


def _normalize_funding(raw: Mapping[str, Any], event_time: Any) -> NormalizedFunding:
    coin = raw.get("coin")
    if coin in (None, ""):
        raise MalformedUpstreamData("Funding record is missing coin")
    return NormalizedFunding(
        coin=str(coin),
        amount=_to_float(raw.get("usdc"), field="usdc"),
        timestamp=_parse_timestamp(event_time),
    )


def _normalize_position(raw: Mapping[str, Any]) -> PositionState:
    coin = raw.get("coin")
    if coin in (None, ""):
        raise MalformedUpstreamData("Position is missing coin")
    return PositionState(
        coin=str(coin),
        size=_to_float(raw.get("szi"), field="szi"),
        entry_price=_optional_float(raw.get("entryPx"), field="entryPx"),
        unrealized_pnl=_to_float(raw.get("unrealizedPnl"), field="unrealizedPnl", default=0.0),
        position_value=_optional_float(raw.get("positionValue"), field="positionValue"),
    )


def _normalize_side(value: Any) -> str:
    text = str(value or "").strip().upper()
    if text in {"B", "BUY", "BID"}:
        return "buy"
    if text in {"A", "S", "SELL", "ASK"}:
        return "sell"
    raise MalformedUpstreamData(f"Unsupported Hyperliquid fill side: {value!r}")


def _to_float(value: Any, *, field: str, default: float | None = None) -> float:
    if value in (None, ""):
        if default is None:
            raise MalformedUpstreamData(f"Missing numeric value for {field}")
        return default
    if isinstance(value, bool):
        raise MalformedUpstreamData(f"Invalid numeric value for {field}: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedUpstreamData(f"Invalid numeric value for {field}: {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedUpstreamData(f"Non-finite numeric value for {field}: {value!r}")
    return number


def _optional_float(value: Any, *, field: str) -> float | None:
    if value in (None, ""):
        return None
    return _to_float(value, field=field)


def _parse_timestamp(value: Any) -> datetime:
    if value in (None, ""):
        raise MalformedUpstreamData("Missing record timestamp")
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        try:
            text = str(value).strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise MalformedUpstreamData(f"Invalid record timestamp: {value!r}") from exc
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed
    if numeric > 1e12:
        numeric /= 1000.0
    try:
        return datetime.fromtimestamp(numeric, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedUpstreamData(f"Invalid record timestamp: {value!r}") from exc


def _first_float(payload: Any, *keys: str) -> float | None:
    if not isinstance(payload, Mapping):
        return None
    for key in keys:
        value = payload.get(key)
        if value in (None, ""):
            continue
        return _to_float(value, field=key)
    return None


def _coalesce_float(*values: float | None) -> float | None:
    for value in values:
        if value is not None:
            return value
    return None


def _priceable_balances(balances: Iterable[SpotBalance]) -> list[SpotBalance]:
    return [balance for balance in balances if balance.total > 0 and balance.coin.upper() not in _QUOTE_ASSETS]
