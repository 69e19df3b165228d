from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Protocol

from wallet_pnl.dates import date_range, day_bounds_ms, format_date
from wallet_pnl.errors import UNPRICED_SPOT_BALANCE
from wallet_pnl.ingest.hyperliquid import (
    anchor_from_state,
    last_spot_prices,
    load_hyperliquid_clearinghouse_state_payload,
    load_hyperliquid_fills_payload,
    load_hyperliquid_funding_payload,
    load_hyperliquid_spot_meta_payload,
    load_hyperliquid_spot_state_payload,
    spot_unrealized_pnl,
    unpriced_spot_balances,
)
from wallet_pnl.ingest.hyperliquid_api import HyperliquidApiError
from wallet_pnl.models import AccountState, EquitySnapshot, SpotBalance
from wallet_pnl.pnl_report import compute_daily_pnl, report_payload
from wallet_pnl.storage import sqlite_store

logger = logging.getLogger(__name__)


class InfoClient(Protocol):
    def fetch_clearinghouse_state(self, user: str) -> Mapping[str, Any] | None: ...

    def fetch_spot_clearinghouse_state(self, user: str) -> Mapping[str, Any] | None: ...

    def fetch_spot_meta(self) -> Mapping[str, Any] | None: ...

    def fetch_all_fills_by_time(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]: ...

    def fetch_user_funding(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]: ...


@dataclass(frozen=True)
class CaptureResult:
    success: int
    failed: int
    wallets: list[str] = field(default_factory=list)


class WalletPnlService:
    def __init__(
        self,
        client: InfoClient,
        *,
        db_path: Path | None = None,
        max_range_days: int | None = 365,
        cache_ttl_minutes: float = 0.0,
        use_stored_snapshots: bool = False,
    ) -> None:
        self._client = client
        self._db_path = db_path
        self._max_range_days = max_range_days
        self._cache_ttl_minutes = cache_ttl_minutes
        self._use_stored_snapshots = use_stored_snapshots

    def get_wallet_pnl(
        self,
        wallet: str,
        start: str,
        end: str,
        *,
        now: datetime | None = None,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        wallet = sqlite_store.normalize_wallet(wallet)
        if not wallet:
            raise ValueError("Wallet address is required")
        dates = date_range(start, end, max_days=self._max_range_days)
        now = now or datetime.now(timezone.utc)

        if use_cache and self._cache_ttl_minutes > 0:
            with self._connection() as conn:
                if conn is not None:
                    cached = sqlite_store.get_cached_pnl(
                        conn, wallet, start, end, ttl_minutes=self._cache_ttl_minutes, now=now
                    )
                    if cached is not None:
                        logger.info("Cache hit for wallet PnL wallet=%s start=%s end=%s", wallet, start, end)
                        return cached
            logger.info("Cache miss, calculating PnL wallet=%s start=%s end=%s", wallet, start, end)

        start_ms, _ = day_bounds_ms(dates[0])
        _, end_ms = day_bounds_ms(dates[-1])
        fills_raw = self._client.fetch_all_fills_by_time(user=wallet, start_ms=start_ms, end_ms=end_ms)
        funding_raw = self._client.fetch_user_funding(user=wallet, start_ms=start_ms, end_ms=end_ms)
        trades = load_hyperliquid_fills_payload(fills_raw)
        funding = load_hyperliquid_funding_payload(funding_raw)

        state = self._account_state(wallet)
        spot_unrealized = None
        warnings: list[str] = []
        if state is not None:
            balances = self._spot_balances(wallet)
            if balances:
                prices = last_spot_prices(trades, self._spot_symbols())
                spot_unrealized = spot_unrealized_pnl(balances, prices)
                unpriced = unpriced_spot_balances(balances, prices)
                if unpriced:
                    warnings.append(
                        f"{UNPRICED_SPOT_BALANCE}: no in-range spot fill price for {', '.join(unpriced)}; "
                        "their unrealized PnL is excluded."
                    )
        anchor = anchor_from_state(state, format_date(now), spot_unrealized=spot_unrealized)

        stored_equity = None
        if self._use_stored_snapshots:
            with self._connection() as conn:
                if conn is not None:
                    snapshots = sqlite_store.load_equity_snapshots(conn, wallet, dates[0], dates[-1])
                    stored_equity = {snap.date: snap.equity_usd for snap in snapshots}

        report = compute_daily_pnl(dates, trades, funding, anchor, stored_equity=stored_equity, warnings=warnings)
        logger.info(
            "Computed wallet PnL wallet=%s days=%d trades=%d funding=%d equity_mode=%s",
            wallet,
            len(dates),
            len(trades),
            len(funding),
            report.diagnostics.equity_mode,
        )

        payload: dict[str, Any] = {"wallet": wallet, "start": start, "end": end}
        payload.update(report_payload(report))
        payload["diagnostics"]["last_api_call"] = now.isoformat()

        if self._cache_ttl_minutes > 0:
            with self._connection() as conn:
                if conn is not None:
                    sqlite_store.put_cached_pnl(conn, wallet, start, end, payload, now=now)
        return payload

    def capture_snapshot(self, wallet: str, *, now: datetime | None = None) -> EquitySnapshot | None:
        wallet = sqlite_store.normalize_wallet(wallet)
        now = now or datetime.now(timezone.utc)
        state = load_hyperliquid_clearinghouse_state_payload(self._client.fetch_clearinghouse_state(wallet))
        if state is None:
            logger.warning("No clearinghouse state for wallet %s", wallet)
            return None
        snapshot = EquitySnapshot(
            wallet=wallet,
            date=format_date(now),
            equity_usd=state.equity,
            unrealized_pnl_usd=state.unrealized_pnl,
            account_value=state.equity,
            total_margin_used=state.total_margin_used,
            positions_count=len(state.positions),
            snapshot_time=now,
        )
        with self._connection(required=True) as conn:
            sqlite_store.upsert_equity_snapshots(conn, [snapshot])
        logger.info("Captured equity snapshot for %s: %.2f on %s", wallet, snapshot.equity_usd, snapshot.date)
        return snapshot

    def capture_all_snapshots(
        self, wallets: list[str] | None = None, *, now: datetime | None = None
    ) -> CaptureResult:
        if wallets is None:
            with self._connection(required=True) as conn:
                wallets = [row["wallet"] for row in sqlite_store.load_tracked_wallets(conn)]
        success = 0
        failed = 0
        captured: list[str] = []
        for wallet in wallets:
            try:
                snapshot = self.capture_snapshot(wallet, now=now)
            except (HyperliquidApiError, ValueError) as exc:
                logger.error("Failed to capture snapshot for %s: %s", wallet, exc)
                failed += 1
                continue
            if snapshot is None:
                failed += 1
                continue
            success += 1
            captured.append(snapshot.wallet)
        return CaptureResult(success=success, failed=failed, wallets=captured)

    def track_wallet(self, wallet: str, name: str | None = None) -> dict[str, Any]:
        with self._connection(required=True) as conn:
            return sqlite_store.upsert_tracked_wallet(conn, wallet, name)

    def untrack_wallet(self, wallet: str) -> bool:
        with self._connection(required=True) as conn:
            return sqlite_store.deactivate_tracked_wallet(conn, wallet)

    def tracked_wallets(self) -> list[dict[str, Any]]:
        with self._connection(required=True) as conn:
            return sqlite_store.load_tracked_wallets(conn)

    def equity_snapshots(self, wallet: str, start: str, end: str) -> list[EquitySnapshot]:
        date_range(start, end)
        with self._connection(required=True) as conn:
            return sqlite_store.load_equity_snapshots(conn, wallet, start, end)

    def _account_state(self, wallet: str) -> AccountState | None:
        try:
            payload = self._client.fetch_clearinghouse_state(wallet)
        except HyperliquidApiError as exc:
            logger.warning("Live account snapshot unavailable for %s: %s", wallet, exc)
            return None
        return load_hyperliquid_clearinghouse_state_payload(payload)

    def _spot_balances(self, wallet: str) -> list[SpotBalance]:
        try:
            payload = self._client.fetch_spot_clearinghouse_state(wallet)
        except HyperliquidApiError as exc:
            logger.warning("Spot balances unavailable for %s: %s", wallet, exc)
            return []
        return load_hyperliquid_spot_state_payload(payload)

    def _spot_symbols(self) -> dict[str, str]:
        try:
            payload = self._client.fetch_spot_meta()
        except HyperliquidApiError as exc:
            logger.warning("Spot metadata unavailable: %s", exc)
            return {}
        return load_hyperliquid_spot_meta_payload(payload)

    @contextmanager
    def _connection(self, *, required: bool = False) -> Iterator[sqlite3.Connection | None]:
        if self._db_path is None:
            if required:
                raise RuntimeError("No database configured for snapshot storage")
            yield None
            return
        conn = sqlite_store.connect(self._db_path)
        try:
            sqlite_store.init_db(conn)
            yield conn
        finally:
            conn.close()
