import json
import logging

from dispatch_api.observability import (
    JsonFormatter,
    log_event,
    log_failure,
    metrics_store,
    observe_timing,
    set_request_id,
)


def test_metrics_store_counts_and_resets():
    metrics_store.increment("assignments_created_total")
    metrics_store.increment("assignments_created_total", 2)
    metrics_store.observe("dispatch_run_seconds", 0.2)
    metrics_store.observe("dispatch_run_seconds", 0.4)

    snapshot = metrics_store.snapshot()
    assert snapshot.counters == {"assignments_created_total": 3}
    assert snapshot.timings["dispatch_run_seconds"]["count"] == 2
    assert snapshot.timings["dispatch_run_seconds"]["max_s"] == 0.4

    metrics_store.reset()
    assert metrics_store.snapshot().counters == {}


def test_observe_timing_records_elapsed():
    with observe_timing("matching_seconds"):
        pass

    assert metrics_store.snapshot().timings["matching_seconds"]["count"] == 1


def test_log_event_carries_dispatch_context(caplog):
    set_request_id("req-7")
    with caplog.at_level(logging.INFO, logger="dispatch.delivery"):
        log_event("assignment_accepted", assignment_id="a-1", driver_id="d-1")

    record = caplog.records[-1]
    assert record.getMessage() == "assignment_accepted"
    assert record.request_id == "req-7"
    assert record.assignment_id == "a-1"
    assert record.driver_id == "d-1"
    assert record.order_id is None


def test_log_failure_attaches_exception(caplog):
    with caplog.at_level(logging.WARNING, logger="dispatch.delivery"):
        try:
            raise RuntimeError("push gateway down")
        except RuntimeError:
            log_failure("notification_failed", order_id="o-1")

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.exc_info is not None
    assert record.order_id == "o-1"


def test_json_formatter_renders_context_fields():
    record = logging.LogRecord(
        name="dispatch.delivery",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="assignment_delivered",
        args=(),
        exc_info=None,
    )
    record.assignment_id = "a-9"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "assignment_delivered"
    assert payload["level"] == "INFO"
    assert payload["assignment_id"] == "a-9"
    assert payload["driver_id"] is None
