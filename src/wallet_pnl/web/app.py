from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query

from wallet_pnl.config.app_config import hyperliquid_config, load_app_config, resolve_env
from wallet_pnl.errors import InvalidDateRange, MalformedUpstreamData
from wallet_pnl.ingest.hyperliquid_api import HyperliquidApiError, HyperliquidInfoClient
from wallet_pnl.models import EquitySnapshot
from wallet_pnl.service import WalletPnlService

logger = logging.getLogger(__name__)

app = FastAPI(title="Wallet PnL")

_SNAPSHOT_LOCK = asyncio.Lock()
_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


@lru_cache(maxsize=1)
def get_service() -> WalletPnlService:
    app_config = load_app_config()
    client = HyperliquidInfoClient(hyperliquid_config(app_config, resolve_env(app_config)))
    return WalletPnlService(
        client,
        db_path=app_config.app.db_path,
        max_range_days=app_config.pnl.max_range_days,
        cache_ttl_minutes=app_config.pnl.cache_ttl_minutes,
        use_stored_snapshots=app_config.pnl.use_stored_snapshots,
    )


@app.on_event("startup")
async def _start_snapshot_capture() -> None:
    app_config = load_app_config()
    if not app_config.snapshots.auto_capture:
        return
    asyncio.create_task(_snapshot_capture_loop(app_config.snapshots.interval_seconds))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/hyperliquid/{wallet}/pnl")
def wallet_pnl_api(
    wallet: str,
    start: str = Query(..., pattern=_DATE_PATTERN),
    end: str = Query(..., pattern=_DATE_PATTERN),
    service: WalletPnlService = Depends(get_service),
) -> dict[str, Any]:
    if not wallet.strip():
        raise HTTPException(status_code=400, detail="Wallet address is required.")
    try:
        return service.get_wallet_pnl(wallet, start, end)
    except InvalidDateRange as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (MalformedUpstreamData, HyperliquidApiError) as exc:
        logger.error("Upstream failure for wallet %s: %s", wallet, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/api/snapshots/tracked/list")
def tracked_wallets_api(service: WalletPnlService = Depends(get_service)) -> dict[str, Any]:
    wallets = service.tracked_wallets()
    return {"wallets": wallets, "count": len(wallets)}


@app.post("/api/snapshots/capture-all")
def capture_all_api(service: WalletPnlService = Depends(get_service)) -> dict[str, Any]:
    result = service.capture_all_snapshots()
    return {"message": "Snapshot capture complete", **asdict(result)}


@app.post("/api/snapshots/capture/{wallet}")
def capture_wallet_api(wallet: str, service: WalletPnlService = Depends(get_service)) -> dict[str, Any]:
    try:
        snapshot = service.capture_snapshot(wallet)
    except (MalformedUpstreamData, HyperliquidApiError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if snapshot is None:
        raise HTTPException(
            status_code=404,
            detail="No clearinghouse state available for this wallet. It may have no positions or balance.",
        )
    return {"message": "Snapshot captured successfully", "snapshot": _snapshot_payload(snapshot)}


@app.post("/api/snapshots/track/{wallet}")
def track_wallet_api(
    wallet: str,
    name: str | None = None,
    service: WalletPnlService = Depends(get_service),
) -> dict[str, Any]:
    tracked = service.track_wallet(wallet, name)
    try:
        snapshot = service.capture_snapshot(wallet)
    except (MalformedUpstreamData, HyperliquidApiError) as exc:
        logger.warning("Initial snapshot failed for %s: %s", wallet, exc)
        snapshot = None
    return {
        "message": "Wallet added to tracking",
        "tracked_wallet": tracked,
        "initial_snapshot": _snapshot_payload(snapshot) if snapshot else None,
    }


@app.delete("/api/snapshots/track/{wallet}")
def untrack_wallet_api(wallet: str, service: WalletPnlService = Depends(get_service)) -> dict[str, Any]:
    if not service.untrack_wallet(wallet):
        raise HTTPException(status_code=404, detail="Wallet is not tracked.")
    return {"message": "Wallet removed from tracking", "wallet": wallet.strip().lower()}


@app.get("/api/snapshots/{wallet}")
def wallet_snapshots_api(
    wallet: str,
    start: str = Query(..., pattern=_DATE_PATTERN),
    end: str = Query(..., pattern=_DATE_PATTERN),
    service: WalletPnlService = Depends(get_service),
) -> dict[str, Any]:
    try:
        snapshots = service.equity_snapshots(wallet, start, end)
    except InvalidDateRange as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "wallet": wallet.strip().lower(),
        "start": start,
        "end": end,
        "snapshots": [_snapshot_payload(snap) for snap in snapshots],
        "count": len(snapshots),
    }


async def _snapshot_capture_loop(interval: int) -> None:
    while True:
        await _run_snapshot_capture_once()
        await asyncio.sleep(interval)


async def _run_snapshot_capture_once() -> None:
    if _SNAPSHOT_LOCK.locked():
        return
    async with _SNAPSHOT_LOCK:
        try:
            result = await asyncio.to_thread(get_service().capture_all_snapshots)
        except Exception:
            logger.exception("Scheduled equity snapshot capture failed")
            return
    logger.info("Scheduled equity snapshot capture: %d success, %d failed", result.success, result.failed)


def _snapshot_payload(snapshot: EquitySnapshot) -> dict[str, Any]:
    payload = asdict(snapshot)
    payload["snapshot_time"] = snapshot.snapshot_time.isoformat()
    return payload


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app_config = load_app_config()
    uvicorn.run(
        "wallet_pnl.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
    )


if __name__ == "__main__":
    main()
