from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from wallet_pnl.config.app_config import hyperliquid_config, load_app_config, resolve_env
from wallet_pnl.errors import InvalidDateRange, MalformedUpstreamData
from wallet_pnl.ingest.hyperliquid_api import HyperliquidApiError, HyperliquidInfoClient
from wallet_pnl.service import WalletPnlService


def main(argv: list[str] | None = None) -> int:
    app_config = load_app_config()
    parser = argparse.ArgumentParser(description="Daily PnL and reconstructed equity for a Hyperliquid wallet.")
    parser.add_argument("wallet", type=str, help="Wallet address.")
    parser.add_argument("--start", type=str, required=True, help="First day (YYYY-MM-DD, UTC).")
    parser.add_argument("--end", type=str, required=True, help="Last day (YYYY-MM-DD, UTC).")
    parser.add_argument("--db", type=Path, default=app_config.app.db_path, help="SQLite DB path.")
    parser.add_argument("--no-cache", action="store_true", help="Ignore cached results.")
    parser.add_argument("--json", action="store_true", help="Print JSON output.")
    parser.add_argument("--out", type=Path, default=None, help="Write output to a file instead of stdout.")
    args = parser.parse_args(argv)

    client = HyperliquidInfoClient(hyperliquid_config(app_config, resolve_env(app_config)))
    service = WalletPnlService(
        client,
        db_path=args.db,
        max_range_days=app_config.pnl.max_range_days,
        cache_ttl_minutes=app_config.pnl.cache_ttl_minutes,
        use_stored_snapshots=app_config.pnl.use_stored_snapshots,
    )

    try:
        payload = service.get_wallet_pnl(args.wallet, args.start, args.end, use_cache=not args.no_cache)
    except InvalidDateRange as exc:
        print(f"Invalid date range: {exc}", file=sys.stderr)
        return 2
    except (MalformedUpstreamData, HyperliquidApiError) as exc:
        print(f"Hyperliquid data unavailable: {exc}", file=sys.stderr)
        return 1

    for warning in payload["diagnostics"].get("warnings", []):
        print(f"warning: {warning}", file=sys.stderr)

    if args.json:
        text = json.dumps(payload, indent=2, sort_keys=True)
    else:
        text = "\n".join(_format_table(payload))

    if args.out is None:
        print(text)
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text + "\n", encoding="utf-8")
    return 0


def _format_table(payload: dict[str, Any]) -> list[str]:
    output = ["date realized unrealized fees funding net equity"]
    for row in payload["daily"]:
        output.append(
            f"{row['date']} {row['realized_pnl_usd']:.2f} {row['unrealized_pnl_usd']:.2f} "
            f"{row['fees_usd']:.2f} {row['funding_usd']:.2f} {row['net_pnl_usd']:.2f} "
            f"{_format_metric(row['equity_usd'])}"
        )
    summary = payload["summary"]
    output.append(
        f"total {summary['total_realized_usd']:.2f} {summary['total_unrealized_usd']:.2f} "
        f"{summary['total_fees_usd']:.2f} {summary['total_funding_usd']:.2f} {summary['net_pnl_usd']:.2f}"
    )
    output.append(f"equity_mode={payload['diagnostics']['equity_mode']}")
    return output


def _format_metric(value: float | None) -> str:
    return "na" if value is None else f"{value:.2f}"


if __name__ == "__main__":
    raise SystemExit(main())
