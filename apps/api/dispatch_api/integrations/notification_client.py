import time
from typing import Protocol

import httpx

from dispatch_api.config import settings
from dispatch_api.errors import (
    IntegrationBadGatewayError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)


class NotificationSink(Protocol):
    def notify(self, target_ref: str, kind: str, payload: dict) -> bool: ...


class NoopNotificationSink:
    def notify(self, target_ref: str, kind: str, payload: dict) -> bool:
        return True


class HttpNotificationClient:
    """Hand notifications to the notification service when configured."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._transport = transport

    def notify(self, target_ref: str, kind: str, payload: dict) -> bool:
        if not self.base_url:
            return False

        body = {"target": target_ref, "kind": kind, "payload": payload}
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                    response = client.post(f"{self.base_url}/api/v1/notifications", json=body)

                if response.status_code >= 500:
                    raise IntegrationUnavailableError(
                        "notifications", "Notification service returned 5xx"
                    )
                if response.status_code >= 400:
                    raise IntegrationBadGatewayError(
                        "notifications",
                        f"Notification service returned {response.status_code}",
                    )
                return True
            except httpx.TimeoutException:
                integration_error = IntegrationTimeoutError("notifications")
            except httpx.TransportError as err:
                integration_error = IntegrationUnavailableError("notifications", str(err))
            except IntegrationUnavailableError as err:
                integration_error = err

            if attempt >= self.max_retries:
                raise integration_error
            time.sleep(self.backoff_s * (2**attempt))

        return False


def get_notification_sink() -> NotificationSink:
    if not settings.notification_base_url.strip():
        return NoopNotificationSink()
    return HttpNotificationClient(
        base_url=settings.notification_base_url,
        timeout_s=settings.notification_timeout_s,
        max_retries=settings.notification_max_retries,
        backoff_s=settings.notification_backoff_s,
    )
