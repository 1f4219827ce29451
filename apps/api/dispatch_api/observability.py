import json
import logging
import time
from collections import defaultdict
from contextvars import ContextVar
from dataclasses import dataclass
from threading import Lock

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_LOGGER_NAME = "dispatch.delivery"
_CONTEXT_FIELDS = ("assignment_id", "order_id", "driver_id")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", _request_id_ctx.get()),
        }
        for field in _CONTEXT_FIELDS:
            payload[field] = getattr(record, field, None)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: int = logging.INFO) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)


@dataclass
class MetricsSnapshot:
    counters: dict[str, int]
    timings: dict[str, dict[str, float]]


@dataclass
class _TimingSeries:
    count: int = 0
    total_s: float = 0.0
    max_s: float = 0.0

    def add(self, value_s: float) -> None:
        self.count += 1
        self.total_s += value_s
        self.max_s = max(self.max_s, value_s)


class MetricsStore:
    """Process-local counters and timing aggregates.

    Sync handlers run in a threadpool, so every access takes the lock.
    Timings keep running aggregates rather than samples.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, _TimingSeries] = defaultdict(_TimingSeries)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def observe(self, name: str, value_s: float) -> None:
        with self._lock:
            self._timings[name].add(value_s)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            timings = {
                name: {
                    "count": series.count,
                    "avg_s": series.total_s / series.count,
                    "max_s": series.max_s,
                }
                for name, series in self._timings.items()
                if series.count
            }
            return MetricsSnapshot(counters=dict(self._counters), timings=timings)


metrics_store = MetricsStore()


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def _emit(level: int, message: str, context: dict[str, object | None], **kwargs) -> None:
    extra: dict[str, str | None] = {"request_id": get_request_id()}
    for field in _CONTEXT_FIELDS:
        value = context.get(field)
        extra[field] = str(value) if value is not None else None
    logging.getLogger(_LOGGER_NAME).log(level, message, extra=extra, **kwargs)


def log_event(
    message: str,
    *,
    assignment_id: object | None = None,
    order_id: object | None = None,
    driver_id: object | None = None,
) -> None:
    _emit(
        logging.INFO,
        message,
        {"assignment_id": assignment_id, "order_id": order_id, "driver_id": driver_id},
    )


def log_failure(
    message: str,
    *,
    assignment_id: object | None = None,
    order_id: object | None = None,
    driver_id: object | None = None,
) -> None:
    """Log the exception currently being handled, with dispatch context."""
    _emit(
        logging.WARNING,
        message,
        {"assignment_id": assignment_id, "order_id": order_id, "driver_id": driver_id},
        exc_info=True,
    )


class observe_timing:
    def __init__(self, metric_name: str) -> None:
        self.metric_name = metric_name
        self._start = 0.0

    def __enter__(self) -> "observe_timing":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        metrics_store.observe(self.metric_name, time.perf_counter() - self._start)
