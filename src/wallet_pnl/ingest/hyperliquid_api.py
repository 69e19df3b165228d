from __future__ import annotations

import json
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_INFO_URL = "https://api.hyperliquid.xyz/info"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.75
DEFAULT_FILLS_PAGE_LIMIT = 2000
DEFAULT_MAX_PAGES = 50


class HyperliquidApiError(RuntimeError):
    pass


@dataclass(frozen=True)
class HyperliquidInfoConfig:
    info_url: str = DEFAULT_INFO_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    fills_page_limit: int = DEFAULT_FILLS_PAGE_LIMIT
    max_pages: int = DEFAULT_MAX_PAGES

    @classmethod
    def from_env(
        cls, env: Mapping[str, str], defaults: "HyperliquidInfoConfig | None" = None
    ) -> "HyperliquidInfoConfig":
        base = defaults or cls()
        return cls(
            info_url=str(env.get("HYPERLIQUID_INFO_URL", base.info_url)).strip() or base.info_url,
            timeout_seconds=_to_float(env.get("HYPERLIQUID_TIMEOUT_SECONDS"), base.timeout_seconds),
            retry_attempts=_to_int(env.get("HYPERLIQUID_RETRY_ATTEMPTS"), base.retry_attempts),
            retry_backoff_seconds=_to_float(
                env.get("HYPERLIQUID_RETRY_BACKOFF_SECONDS"), base.retry_backoff_seconds
            ),
            fills_page_limit=_to_int(env.get("HYPERLIQUID_FILLS_PAGE_LIMIT"), base.fills_page_limit),
            max_pages=_to_int(env.get("HYPERLIQUID_MAX_PAGES"), base.max_pages),
        )


class HyperliquidInfoClient:
    def __init__(self, config: HyperliquidInfoConfig) -> None:
        self._config = config

    def fetch_clearinghouse_state(self, user: str) -> Mapping[str, Any] | None:
        response = self._post_info({"type": "clearinghouseState", "user": user})
        if response is None:
            return None
        if not isinstance(response, Mapping):
            raise HyperliquidApiError("Unexpected clearinghouseState response shape")
        return response

    def fetch_spot_clearinghouse_state(self, user: str) -> Mapping[str, Any] | None:
        response = self._post_info({"type": "spotClearinghouseState", "user": user})
        if response is None:
            return None
        if not isinstance(response, Mapping):
            raise HyperliquidApiError("Unexpected spotClearinghouseState response shape")
        return response

    def fetch_spot_meta(self) -> Mapping[str, Any] | None:
        response = self._post_info({"type": "spotMeta"})
        if response is None:
            return None
        if not isinstance(response, Mapping):
            raise HyperliquidApiError("Unexpected spotMeta response shape")
        return response

    def fetch_user_fills_by_time(
        self, *, user: str, start_ms: int, end_ms: int, aggregate_by_time: bool = False
    ) -> list[Mapping[str, Any]]:
        payload = {
            "type": "userFillsByTime",
            "user": user,
            "startTime": int(start_ms),
            "endTime": int(end_ms),
            "aggregateByTime": bool(aggregate_by_time),
        }
        return _records(self._post_info(payload))

    def fetch_all_fills_by_time(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]:
        """Page through ``userFillsByTime`` until a short page or the page limit is reached."""
        cursor_ms = int(start_ms)
        seen: set[tuple[Any, ...]] = set()
        output: list[Mapping[str, Any]] = []
        for _ in range(max(1, self._config.max_pages)):
            records = self.fetch_user_fills_by_time(user=user, start_ms=cursor_ms, end_ms=end_ms)
            if not records:
                break
            for record in records:
                key = _fill_key(record)
                if key in seen:
                    continue
                seen.add(key)
                output.append(record)
            if len(records) < self._config.fills_page_limit:
                break
            next_cursor = _max_time(records)
            if next_cursor is None or next_cursor <= cursor_ms:
                raise HyperliquidApiError(
                    f"userFillsByTime returned a full page at time {cursor_ms} that cannot advance the cursor; "
                    "fills would be truncated"
                )
            cursor_ms = next_cursor
        else:
            raise HyperliquidApiError(
                f"userFillsByTime paging hit max_pages={self._config.max_pages}; fills would be truncated"
            )
        return output

    def fetch_user_funding(self, *, user: str, start_ms: int, end_ms: int) -> list[Mapping[str, Any]]:
        payload = {
            "type": "userFunding",
            "user": user,
            "startTime": int(start_ms),
            "endTime": int(end_ms),
        }
        return _records(self._post_info(payload))

    def _post_info(self, payload: Mapping[str, Any]) -> Any:
        body = json.dumps(payload).encode("utf-8")
        last_error: Exception | None = None
        attempts = max(1, self._config.retry_attempts)
        for attempt in range(attempts):
            try:
                request = urllib.request.Request(
                    self._config.info_url,
                    method="POST",
                    data=body,
                    headers={"Content-Type": "application/json", "Accept": "application/json"},
                )
                with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
                    raw = response.read()
                if not raw:
                    raise HyperliquidApiError("Empty response body from Hyperliquid /info")
                return json.loads(raw.decode("utf-8"))
            except (urllib.error.URLError, json.JSONDecodeError, HyperliquidApiError, TimeoutError) as exc:
                last_error = exc
                if attempt >= attempts - 1:
                    break
                time.sleep(self._config.retry_backoff_seconds * (2**attempt))
        raise HyperliquidApiError(
            f"Hyperliquid /info {payload.get('type')} request failed: {last_error}"
        ) from last_error


def _records(response: Any) -> list[Mapping[str, Any]]:
    if isinstance(response, list):
        return [row for row in response if isinstance(row, Mapping)]
    if isinstance(response, Mapping):
        data = response.get("data")
        if isinstance(data, list):
            return [row for row in data if isinstance(row, Mapping)]
    return []


def _fill_key(record: Mapping[str, Any]) -> tuple[Any, ...]:
    tid = record.get("tid")
    if tid is not None:
        return ("tid", tid)
    return (record.get("hash"), record.get("time"), record.get("coin"), record.get("px"), record.get("sz"))


def _max_time(records: list[Mapping[str, Any]]) -> int | None:
    values: list[int] = []
    for record in records:
        try:
            values.append(int(record.get("time")))
        except (TypeError, ValueError):
            continue
    return max(values) if values else None


def _to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
