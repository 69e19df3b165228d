from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib

from wallet_pnl.ingest.hyperliquid_api import HyperliquidInfoConfig

DEFAULT_CONFIG_PATH = Path("config/app.toml")


@dataclass(frozen=True)
class AppSettings:
    db_path: Path
    host: str
    port: int
    reload: bool
    env_path: Path


@dataclass(frozen=True)
class ApiSettings:
    info_url: str
    timeout_seconds: float
    retry_attempts: int
    retry_backoff_seconds: float
    fills_page_limit: int
    max_pages: int


@dataclass(frozen=True)
class PnlSettings:
    max_range_days: int
    cache_ttl_minutes: float
    use_stored_snapshots: bool


@dataclass(frozen=True)
class SnapshotSettings:
    auto_capture: bool
    interval_seconds: int


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    api: ApiSettings
    pnl: PnlSettings
    snapshots: SnapshotSettings


def load_app_config(path: Path | None = None) -> AppConfig:
    config_path = path or Path(os.environ.get("WALLET_PNL_CONFIG", str(DEFAULT_CONFIG_PATH)))
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    api_raw = _section(raw, "api")
    pnl_raw = _section(raw, "pnl")
    snapshots_raw = _section(raw, "snapshots")

    app = AppSettings(
        db_path=Path(app_raw.get("db_path", "data/wallet_pnl.sqlite")),
        host=str(app_raw.get("host", "127.0.0.1")),
        port=int(app_raw.get("port", 8000)),
        reload=bool(app_raw.get("reload", False)),
        env_path=Path(app_raw.get("env_path", ".env")),
    )

    api = ApiSettings(
        info_url=str(api_raw.get("info_url", "https://api.hyperliquid.xyz/info")),
        timeout_seconds=float(api_raw.get("timeout_seconds", 30.0)),
        retry_attempts=int(api_raw.get("retry_attempts", 3)),
        retry_backoff_seconds=float(api_raw.get("retry_backoff_seconds", 0.75)),
        fills_page_limit=int(api_raw.get("fills_page_limit", 2000)),
        max_pages=int(api_raw.get("max_pages", 50)),
    )

    pnl = PnlSettings(
        max_range_days=int(pnl_raw.get("max_range_days", 365)),
        cache_ttl_minutes=float(pnl_raw.get("cache_ttl_minutes", 1440)),
        use_stored_snapshots=bool(pnl_raw.get("use_stored_snapshots", False)),
    )

    snapshots = SnapshotSettings(
        auto_capture=bool(snapshots_raw.get("auto_capture", False)),
        interval_seconds=max(60, int(snapshots_raw.get("interval_seconds", 3600))),
    )

    return AppConfig(app=app, api=api, pnl=pnl, snapshots=snapshots)


def hyperliquid_config(app_config: AppConfig, env: Mapping[str, str] | None = None) -> HyperliquidInfoConfig:
    api = app_config.api
    defaults = HyperliquidInfoConfig(
        info_url=api.info_url,
        timeout_seconds=api.timeout_seconds,
        retry_attempts=api.retry_attempts,
        retry_backoff_seconds=api.retry_backoff_seconds,
        fills_page_limit=api.fills_page_limit,
        max_pages=api.max_pages,
    )
    return HyperliquidInfoConfig.from_env(env or {}, defaults)


def load_dotenv(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip("\"").strip("'")
    return env


def resolve_env(app_config: AppConfig) -> dict[str, str]:
    env = dict(os.environ)
    env.update(load_dotenv(app_config.app.env_path))
    return env


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}
