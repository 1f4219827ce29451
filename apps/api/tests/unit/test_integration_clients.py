import json

import httpx
import pytest

from dispatch_api.errors import (
    IntegrationBadGatewayError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)
from dispatch_api.integrations import redis_client as redis_module
from dispatch_api.integrations.cache_client import (
    NoopCacheInvalidator,
    RedisCacheInvalidator,
    get_cache_invalidator,
    order_cache_keys,
)
from dispatch_api.integrations.notification_client import (
    HttpNotificationClient,
    NoopNotificationSink,
    get_notification_sink,
)
from dispatch_api.integrations.redis_client import RedisClient, RedisProtocolError, RespReader


def _client(handler, max_retries: int = 0) -> HttpNotificationClient:
    return HttpNotificationClient(
        "http://notify/",
        timeout_s=0.1,
        max_retries=max_retries,
        backoff_s=0,
        transport=httpx.MockTransport(handler),
    )


def test_notification_client_posts_payload():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    delivered = _client(handler).notify("driver-1", "new_assignment", {"assignment_id": "a-1"})

    assert delivered is True
    assert str(requests[0].url) == "http://notify/api/v1/notifications"
    assert json.loads(requests[0].content) == {
        "target": "driver-1",
        "kind": "new_assignment",
        "payload": {"assignment_id": "a-1"},
    }


def test_notification_client_retries_5xx_then_succeeds():
    responses = iter([httpx.Response(503), httpx.Response(200)])

    assert _client(lambda _request: next(responses), max_retries=1).notify("c-1", "k", {})


def test_notification_client_raises_after_retries():
    calls = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(500)

    with pytest.raises(IntegrationUnavailableError):
        _client(handler, max_retries=2).notify("c-1", "k", {})
    assert calls["count"] == 3


def test_notification_client_maps_4xx_to_bad_gateway_without_retry():
    calls = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(422)

    with pytest.raises(IntegrationBadGatewayError):
        _client(handler, max_retries=2).notify("c-1", "k", {})
    assert calls["count"] == 1


def test_notification_client_maps_timeouts():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timeout", request=request)

    with pytest.raises(IntegrationTimeoutError):
        _client(handler).notify("c-1", "k", {})


def test_notification_client_without_base_url_reports_undelivered():
    client = HttpNotificationClient("", timeout_s=0.1, max_retries=0, backoff_s=0)

    assert client.notify("c-1", "k", {}) is False


def test_sink_factories_default_to_noop(monkeypatch):
    from dispatch_api.config import settings

    monkeypatch.setattr(settings, "notification_base_url", "")
    monkeypatch.setattr(settings, "redis_url", "")

    assert isinstance(get_notification_sink(), NoopNotificationSink)
    assert isinstance(get_cache_invalidator(), NoopCacheInvalidator)

    monkeypatch.setattr(settings, "notification_base_url", "http://notify")
    monkeypatch.setattr(settings, "redis_url", "redis://cache:6379/2")

    assert isinstance(get_notification_sink(), HttpNotificationClient)
    assert isinstance(get_cache_invalidator(), RedisCacheInvalidator)


def test_order_cache_keys():
    assert order_cache_keys("o-1", "c-1") == ["order:o-1", "orders:c-1", "user-orders:c-1"]


class _FakeRedis:
    def __init__(self, error: Exception | None = None) -> None:
        self.deleted: list[str] = []
        self._error = error

    def delete(self, *keys: str) -> int:
        if self._error is not None:
            raise self._error
        self.deleted.extend(keys)
        return len(keys)


def test_redis_invalidator_deletes_key():
    fake = _FakeRedis()

    assert RedisCacheInvalidator(fake).invalidate("order:o-1") is True
    assert fake.deleted == ["order:o-1"]


@pytest.mark.parametrize("error", [OSError("refused"), RedisProtocolError("READONLY")])
def test_redis_invalidator_maps_failures(error):
    with pytest.raises(IntegrationUnavailableError) as exc_info:
        RedisCacheInvalidator(_FakeRedis(error)).invalidate("order:o-1")

    assert exc_info.value.service == "cache"
    assert exc_info.value.retryable is True


class _FakeSocket:
    def __init__(self, replies: bytes) -> None:
        self._buffer = bytearray(replies)
        self.sent: list[bytes] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def sendall(self, payload: bytes) -> None:
        self.sent.append(payload)

    def recv(self, size: int) -> bytes:
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        return chunk


def test_redis_client_selects_db_and_deletes(monkeypatch):
    fake = _FakeSocket(b"+OK\r\n:2\r\n")
    monkeypatch.setattr(redis_module.socket, "create_connection", lambda *_a, **_k: fake)

    removed = RedisClient("redis://cache:6379/3").delete("order:o-1", "orders:c-1")

    assert removed == 2
    assert fake.sent == [
        b"*2\r\n$6\r\nSELECT\r\n$1\r\n3\r\n"
        b"*3\r\n$3\r\nDEL\r\n$9\r\norder:o-1\r\n$10\r\norders:c-1\r\n"
    ]


def test_redis_client_raises_on_error_reply(monkeypatch):
    fake = _FakeSocket(b"-ERR unknown command\r\n")
    monkeypatch.setattr(redis_module.socket, "create_connection", lambda *_a, **_k: fake)

    with pytest.raises(RedisProtocolError, match="unknown command"):
        RedisClient("redis://cache:6379").ping()


def test_redis_client_rejects_bad_url():
    with pytest.raises(ValueError):
        RedisClient("http://cache:6379")


def test_resp_reader_decodes_nested_replies_across_chunks():
    reader = RespReader(_FakeSocket(b"*3\r\n$5\r\norder\r\n$-1\r\n:7\r\n"), chunk_size=3)

    assert reader.reply() == ["order", None, 7]
