from __future__ import annotations

import argparse
import sys
from pathlib import Path

from wallet_pnl.config.app_config import hyperliquid_config, load_app_config, resolve_env
from wallet_pnl.ingest.hyperliquid_api import HyperliquidInfoClient
from wallet_pnl.service import WalletPnlService


def main(argv: list[str] | None = None) -> int:
    app_config = load_app_config()
    parser = argparse.ArgumentParser(description="Capture end-of-day equity snapshots for tracked wallets.")
    parser.add_argument(
        "--wallet",
        action="append",
        default=None,
        help="Wallet to capture (repeatable). Defaults to every tracked wallet.",
    )
    parser.add_argument("--track", action="store_true", help="Add the given wallets to the tracking list first.")
    parser.add_argument("--db", type=Path, default=app_config.app.db_path, help="SQLite DB path.")
    args = parser.parse_args(argv)

    client = HyperliquidInfoClient(hyperliquid_config(app_config, resolve_env(app_config)))
    service = WalletPnlService(client, db_path=args.db)

    if args.track:
        if not args.wallet:
            print("--track requires at least one --wallet.", file=sys.stderr)
            return 2
        for wallet in args.wallet:
            service.track_wallet(wallet)

    result = service.capture_all_snapshots(args.wallet)
    print(f"Equity snapshot capture: {result.success} success, {result.failed} failed")
    if result.wallets:
        print(f"Captured wallets: {', '.join(result.wallets)}")
    return 0 if result.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
