"""Periodic dispatch sweep: asks the API to auto-assign unclaimed deliveries."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, replace
from typing import Callable

ENV_PREFIX = "DISPATCH_WORKER_"

logger = logging.getLogger("dispatch.worker")


@dataclass(frozen=True)
class WorkerSettings:
    api_base_url: str
    interval_s: int
    timeout_s: float
    max_assignments: int | None
    auth_token: str | None
    max_retries: int
    retry_backoff_s: float


@dataclass(frozen=True)
class SweepResult:
    ok: bool
    assigned_count: int = 0
    searching_count: int = 0
    conflict_count: int = 0
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1


def _env(source, name: str, default: str | None = None) -> str | None:
    return source.get(f"{ENV_PREFIX}{name}", default)


def load_settings(env: dict[str, str] | None = None) -> WorkerSettings:
    source = env if env is not None else os.environ
    api_base_url = _env(source, "API_BASE_URL", "http://localhost:8000").strip()
    interval_s = int(_env(source, "INTERVAL_S", "15"))
    timeout_s = float(_env(source, "TIMEOUT_S", "5"))
    max_retries = int(_env(source, "MAX_RETRIES", "2"))
    retry_backoff_s = float(_env(source, "RETRY_BACKOFF_S", "0.5"))
    auth_token = _env(source, "AUTH_TOKEN") or None

    if interval_s < 1:
        raise ValueError(f"{ENV_PREFIX}INTERVAL_S must be >= 1")
    if timeout_s <= 0:
        raise ValueError(f"{ENV_PREFIX}TIMEOUT_S must be > 0")
    if max_retries < 0:
        raise ValueError(f"{ENV_PREFIX}MAX_RETRIES must be >= 0")
    if retry_backoff_s < 0:
        raise ValueError(f"{ENV_PREFIX}RETRY_BACKOFF_S must be >= 0")

    max_assignments: int | None = None
    raw_max = _env(source, "MAX_ASSIGNMENTS")
    if raw_max is not None and raw_max.strip():
        max_assignments = int(raw_max)
        if not 1 <= max_assignments <= 200:
            raise ValueError(f"{ENV_PREFIX}MAX_ASSIGNMENTS must be between 1 and 200")

    return WorkerSettings(
        api_base_url=api_base_url.rstrip("/"),
        interval_s=interval_s,
        timeout_s=timeout_s,
        max_assignments=max_assignments,
        auth_token=auth_token,
        max_retries=max_retries,
        retry_backoff_s=retry_backoff_s,
    )


def _count(body: dict, key: str) -> int:
    value = int(body.get(key, 0))
    if value < 0:
        raise ValueError(f"{key} must be >= 0 in dispatch response")
    return value


def parse_sweep_response(raw: str, status_code: int | None = None) -> SweepResult:
    if not raw:
        return SweepResult(ok=True, status_code=status_code)
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return SweepResult(
            ok=False, status_code=status_code, error="Invalid JSON in dispatch response"
        )
    if not isinstance(body, dict):
        return SweepResult(
            ok=False, status_code=status_code, error="Dispatch response must be an object"
        )

    try:
        return SweepResult(
            ok=True,
            assigned_count=_count(body, "assigned_count"),
            searching_count=_count(body, "searching_count"),
            conflict_count=_count(body, "conflict_count"),
            status_code=status_code,
        )
    except (TypeError, ValueError) as exc:
        return SweepResult(ok=False, status_code=status_code, error=str(exc))


def build_request(settings: WorkerSettings) -> urllib.request.Request:
    payload: dict[str, int] = {}
    if settings.max_assignments is not None:
        payload["max_assignments"] = settings.max_assignments

    headers = {"Content-Type": "application/json"}
    if settings.auth_token:
        headers["Authorization"] = f"Bearer {settings.auth_token}"

    return urllib.request.Request(
        url=f"{settings.api_base_url}/api/v1/dispatch/run",
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers=headers,
    )


def run_sweep_once(
    settings: WorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> SweepResult:
    request = build_request(settings)
    try:
        with opener(request, timeout=settings.timeout_s) as response:
            raw = response.read().decode("utf-8")
            return parse_sweep_response(raw, getattr(response, "status", 200))
    except urllib.error.HTTPError as exc:
        return SweepResult(ok=False, status_code=exc.code, error=f"HTTPError: {exc.code}")
    except urllib.error.URLError as exc:
        return SweepResult(ok=False, error=f"URLError: {exc.reason}")


def is_retryable(result: SweepResult) -> bool:
    if result.ok:
        return False
    if result.status_code is None:
        return True
    if result.status_code in {408, 429}:
        return True
    return result.status_code >= 500


def run_sweep_with_retries(
    settings: WorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> SweepResult:
    attempts = 0
    while True:
        attempts += 1
        result = run_sweep_once(settings, opener=opener)
        if not is_retryable(result) or attempts > settings.max_retries:
            return replace(result, attempts=attempts)

        logger.warning(
            "dispatch sweep attempt %d failed (%s), retrying", attempts, result.error
        )
        sleep(settings.retry_backoff_s * (2 ** (attempts - 1)))


def run_forever(
    settings: WorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
    max_ticks: int | None = None,
) -> None:
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        result = run_sweep_with_retries(settings, opener=opener, sleep=sleep)
        if result.ok:
            logger.info(
                "dispatch sweep assigned=%d searching=%d conflicts=%d",
                result.assigned_count,
                result.searching_count,
                result.conflict_count,
            )
        else:
            logger.error(
                "dispatch sweep failed after %d attempts: %s", result.attempts, result.error
            )
        ticks += 1
        sleep(settings.interval_s)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    run_forever(load_settings())


if __name__ == "__main__":
    main()
