from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from wallet_pnl.models import EquitySnapshot


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS equity_snapshots (
            wallet TEXT NOT NULL,
            date TEXT NOT NULL,
            equity_usd REAL NOT NULL,
            unrealized_pnl_usd REAL NOT NULL,
            account_value REAL NOT NULL,
            total_margin_used REAL NOT NULL,
            positions_count INTEGER NOT NULL,
            snapshot_time TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (wallet, date)
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS tracked_wallets (
            wallet TEXT PRIMARY KEY,
            name TEXT,
            active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS pnl_cache (
            wallet TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            payload_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            PRIMARY KEY (wallet, start_date, end_date)
        )
        """
    )
    conn.commit()


def upsert_equity_snapshots(conn: sqlite3.Connection, snapshots: Iterable[EquitySnapshot]) -> int:
    rows = []
    for snap in snapshots:
        rows.append(
            {
                "wallet": normalize_wallet(snap.wallet),
                "date": snap.date,
                "equity_usd": snap.equity_usd,
                "unrealized_pnl_usd": snap.unrealized_pnl_usd,
                "account_value": snap.account_value,
                "total_margin_used": snap.total_margin_used,
                "positions_count": snap.positions_count,
                "snapshot_time": snap.snapshot_time.isoformat(),
            }
        )
    conn.executemany(
        """
        INSERT INTO equity_snapshots (
            wallet, date, equity_usd, unrealized_pnl_usd, account_value,
            total_margin_used, positions_count, snapshot_time
        )
        VALUES (
            :wallet, :date, :equity_usd, :unrealized_pnl_usd, :account_value,
            :total_margin_used, :positions_count, :snapshot_time
        )
        ON CONFLICT(wallet, date) DO UPDATE SET
            equity_usd=excluded.equity_usd,
            unrealized_pnl_usd=excluded.unrealized_pnl_usd,
            account_value=excluded.account_value,
            total_margin_used=excluded.total_margin_used,
            positions_count=excluded.positions_count,
            snapshot_time=excluded.snapshot_time
        """,
        rows,
    )
    conn.commit()
    return len(rows)


def load_equity_snapshots(
    conn: sqlite3.Connection, wallet: str, start: str, end: str
) -> list[EquitySnapshot]:
    rows = conn.execute(
        """
        SELECT * FROM equity_snapshots
        WHERE wallet = ? AND date >= ? AND date <= ?
        ORDER BY date ASC
        """,
        (normalize_wallet(wallet), start, end),
    ).fetchall()
    return [
        EquitySnapshot(
            wallet=row["wallet"],
            date=row["date"],
            equity_usd=row["equity_usd"],
            unrealized_pnl_usd=row["unrealized_pnl_usd"],
            account_value=row["account_value"],
            total_margin_used=row["total_margin_used"],
            positions_count=row["positions_count"],
            snapshot_time=_parse_iso(row["snapshot_time"]),
        )
        for row in rows
    ]


def upsert_tracked_wallet(conn: sqlite3.Connection, wallet: str, name: str | None = None) -> dict[str, Any]:
    now = _utc_now().isoformat()
    conn.execute(
        """
        INSERT INTO tracked_wallets (wallet, name, active, created_at, updated_at)
        VALUES (?, ?, 1, ?, ?)
        ON CONFLICT(wallet) DO UPDATE SET
            name=COALESCE(excluded.name, tracked_wallets.name),
            active=1,
            updated_at=excluded.updated_at
        """,
        (normalize_wallet(wallet), name, now, now),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM tracked_wallets WHERE wallet = ?", (normalize_wallet(wallet),)
    ).fetchone()
    return dict(row)


def deactivate_tracked_wallet(conn: sqlite3.Connection, wallet: str) -> bool:
    cursor = conn.execute(
        "UPDATE tracked_wallets SET active = 0, updated_at = ? WHERE wallet = ? AND active = 1",
        (_utc_now().isoformat(), normalize_wallet(wallet)),
    )
    conn.commit()
    return cursor.rowcount > 0


def load_tracked_wallets(conn: sqlite3.Connection, *, active_only: bool = True) -> list[dict[str, Any]]:
    query = "SELECT * FROM tracked_wallets"
    if active_only:
        query += " WHERE active = 1"
    query += " ORDER BY created_at ASC, wallet ASC"
    return [dict(row) for row in conn.execute(query).fetchall()]


def get_cached_pnl(
    conn: sqlite3.Connection,
    wallet: str,
    start: str,
    end: str,
    *,
    ttl_minutes: float,
    now: datetime | None = None,
) -> dict[str, Any] | None:
    if ttl_minutes <= 0:
        return None
    row = conn.execute(
        """
        SELECT payload_json, created_at FROM pnl_cache
        WHERE wallet = ? AND start_date = ? AND end_date = ?
        """,
        (normalize_wallet(wallet), start, end),
    ).fetchone()
    if row is None:
        return None
    created_at = _parse_iso(row["created_at"])
    if (now or _utc_now()) - created_at >= timedelta(minutes=ttl_minutes):
        return None
    return json.loads(row["payload_json"])


def put_cached_pnl(
    conn: sqlite3.Connection,
    wallet: str,
    start: str,
    end: str,
    payload: dict[str, Any],
    *,
    now: datetime | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO pnl_cache (wallet, start_date, end_date, payload_json, created_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(wallet, start_date, end_date) DO UPDATE SET
            payload_json=excluded.payload_json,
            created_at=excluded.created_at
        """,
        (
            normalize_wallet(wallet),
            start,
            end,
            json.dumps(payload, sort_keys=True),
            (now or _utc_now()).isoformat(),
        ),
    )
    conn.commit()


def normalize_wallet(wallet: str) -> str:
    return str(wallet).strip().lower()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(value: str | None) -> datetime:
    if value is None:
        raise ValueError("Missing timestamp")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
