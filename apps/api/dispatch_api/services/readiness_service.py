from collections.abc import Callable
from typing import Literal

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dispatch_api.integrations.redis_client import RedisClient, RedisProtocolError
from dispatch_api.observability import log_event, metrics_store

ReadinessStatus = Literal["ok", "error"]


def safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        status = checker()
    except Exception as exc:  # readiness fails closed to degraded
        metrics_store.increment("readiness_dependency_error_total")
        log_event(f"readiness_dependency_check_failed:{dependency_name}:{type(exc).__name__}")
        return "error"

    if status == "ok":
        return "ok"

    metrics_store.increment("readiness_dependency_error_total")
    if status != "error":
        log_event(f"readiness_dependency_status_invalid:{dependency_name}:{status}")
    return "error"


def database_dependency_status(
    session_factory: Callable[[], Session],
) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"


def redis_dependency_status(redis_url: str, timeout_s: float = 1.0) -> ReadinessStatus:
    try:
        client = RedisClient(redis_url, timeout_s=timeout_s)
    except ValueError:
        return "error"

    try:
        return "ok" if client.ping() else "error"
    except (OSError, RedisProtocolError):
        return "error"
