import json
import urllib.error

import pytest

from dispatch_worker import tasks
from dispatch_worker import worker as worker_module


class _FakeResponse:
    def __init__(self, body: dict | str, status: int = 200) -> None:
        raw = body if isinstance(body, str) else json.dumps(body)
        self._body = raw.encode("utf-8")
        self.status = status

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _settings(**overrides) -> worker_module.WorkerSettings:
    fields = {
        "api_base_url": "http://api",
        "interval_s": 15,
        "timeout_s": 2.0,
        "max_assignments": None,
        "auth_token": None,
        "max_retries": 2,
        "retry_backoff_s": 0.5,
    }
    fields.update(overrides)
    return worker_module.WorkerSettings(**fields)


def _http_error(request, code: int, msg: str) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(url=request.full_url, code=code, msg=msg, hdrs=None, fp=None)


def test_load_settings_defaults():
    settings = worker_module.load_settings({})

    assert settings.api_base_url == "http://localhost:8000"
    assert settings.interval_s == 15
    assert settings.timeout_s == 5.0
    assert settings.max_assignments is None
    assert settings.auth_token is None
    assert settings.max_retries == 2


def test_load_settings_reads_prefixed_environment():
    settings = worker_module.load_settings(
        {
            "DISPATCH_WORKER_API_BASE_URL": "http://dispatch:8000/",
            "DISPATCH_WORKER_INTERVAL_S": "30",
            "DISPATCH_WORKER_MAX_ASSIGNMENTS": "25",
            "DISPATCH_WORKER_AUTH_TOKEN": "tok",
        }
    )

    assert settings.api_base_url == "http://dispatch:8000"
    assert settings.interval_s == 30
    assert settings.max_assignments == 25
    assert settings.auth_token == "tok"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("INTERVAL_S", "0"),
        ("TIMEOUT_S", "0"),
        ("MAX_RETRIES", "-1"),
        ("RETRY_BACKOFF_S", "-0.5"),
        ("MAX_ASSIGNMENTS", "201"),
    ],
)
def test_load_settings_rejects_invalid_values(name, value):
    with pytest.raises(ValueError, match=name):
        worker_module.load_settings({f"DISPATCH_WORKER_{name}": value})


def test_parse_sweep_response_rejects_bad_bodies():
    assert worker_module.parse_sweep_response("", 204).ok is True
    assert worker_module.parse_sweep_response("{oops", 200).error == (
        "Invalid JSON in dispatch response"
    )
    assert worker_module.parse_sweep_response("[]", 200).error == (
        "Dispatch response must be an object"
    )
    negative = worker_module.parse_sweep_response('{"assigned_count": -1}', 200)
    assert negative.ok is False
    assert "assigned_count" in negative.error


def test_run_sweep_once_success_with_max_assignments():
    settings = _settings(max_assignments=3, auth_token="abc")

    def opener(request, timeout):
        assert timeout == 2.0
        assert request.full_url == "http://api/api/v1/dispatch/run"
        assert request.get_method() == "POST"
        assert request.headers["Authorization"] == "Bearer abc"
        assert json.loads(request.data.decode("utf-8")) == {"max_assignments": 3}
        return _FakeResponse(
            {"assigned_count": 2, "searching_count": 1, "conflict_count": 0}, status=200
        )

    result = worker_module.run_sweep_once(settings, opener=opener)

    assert result.ok is True
    assert result.assigned_count == 2
    assert result.searching_count == 1
    assert result.status_code == 200


def test_run_sweep_once_http_error_returns_failure():
    def opener(request, timeout):
        raise _http_error(request, 503, "Service Unavailable")

    result = worker_module.run_sweep_once(_settings(), opener=opener)

    assert result.ok is False
    assert result.status_code == 503
    assert result.error == "HTTPError: 503"
    assert result.assigned_count == 0


def test_run_sweep_with_retries_retries_retryable_errors_then_succeeds():
    sleeps: list[float] = []
    calls = {"count": 0}

    def opener(request, timeout):
        calls["count"] += 1
        if calls["count"] < 3:
            raise urllib.error.URLError("temporary network")
        return _FakeResponse({"assigned_count": 1}, status=200)

    result = worker_module.run_sweep_with_retries(
        _settings(retry_backoff_s=0.25),
        opener=opener,
        sleep=sleeps.append,
    )

    assert result.ok is True
    assert result.attempts == 3
    assert sleeps == [0.25, 0.5]


def test_run_sweep_with_retries_does_not_retry_4xx():
    def opener(request, timeout):
        raise _http_error(request, 401, "Unauthorized")

    result = worker_module.run_sweep_with_retries(
        _settings(max_retries=5), opener=opener, sleep=lambda _seconds: None
    )

    assert result.ok is False
    assert result.status_code == 401
    assert result.attempts == 1


def test_run_sweep_with_retries_retries_429_then_succeeds():
    calls = {"count": 0}

    def opener(request, timeout):
        calls["count"] += 1
        if calls["count"] == 1:
            raise _http_error(request, 429, "Too Many Requests")
        return _FakeResponse({"assigned_count": 4}, status=200)

    result = worker_module.run_sweep_with_retries(
        _settings(max_retries=1), opener=opener, sleep=lambda _seconds: None
    )

    assert result.ok is True
    assert result.assigned_count == 4
    assert result.attempts == 2


def test_run_sweep_with_retries_stops_after_max_retries():
    def opener(request, timeout):
        raise urllib.error.URLError("still-down")

    result = worker_module.run_sweep_with_retries(
        _settings(max_retries=1), opener=opener, sleep=lambda _seconds: None
    )

    assert result.ok is False
    assert result.error == "URLError: still-down"
    assert result.attempts == 2


def test_run_forever_sleeps_interval_between_ticks():
    sleeps: list[float] = []

    def opener(request, timeout):
        return _FakeResponse({"assigned_count": 0}, status=200)

    worker_module.run_forever(_settings(), opener=opener, sleep=sleeps.append, max_ticks=2)

    assert sleeps == [15, 15]


def test_dispatch_tick_runs_single_sweep():
    def opener(request, timeout):
        return _FakeResponse({"assigned_count": 5}, status=200)

    result = tasks.dispatch_tick(_settings(), opener=opener)

    assert result.ok is True
    assert result.assigned_count == 5
