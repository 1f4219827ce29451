from dispatch_api.errors import (
    IntegrationBadGatewayError,
    IntegrationError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)

__all__ = [
    "IntegrationError",
    "IntegrationTimeoutError",
    "IntegrationUnavailableError",
    "IntegrationBadGatewayError",
]
