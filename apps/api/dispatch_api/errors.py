from dataclasses import dataclass


@dataclass
class DispatchError(Exception):
    code: str
    message: str
    status_code: int = 400

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class NotFoundError(DispatchError):
    def __init__(self, code: str = "NOT_FOUND", message: str = "Resource not found") -> None:
        super().__init__(code=code, message=message, status_code=404)


class OrderNotFoundError(NotFoundError):
    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(code="ORDER_NOT_FOUND", message=message)


class ChefNotFoundError(NotFoundError):
    def __init__(self, message: str = "Chef not found for order") -> None:
        super().__init__(code="CHEF_NOT_FOUND", message=message)


class DriverNotFoundError(NotFoundError):
    def __init__(self, message: str = "Driver not found") -> None:
        super().__init__(code="DRIVER_NOT_FOUND", message=message)


class AssignmentNotFoundError(NotFoundError):
    def __init__(self, message: str = "Assignment not found") -> None:
        super().__init__(code="ASSIGNMENT_NOT_FOUND", message=message)


class ConflictError(DispatchError):
    def __init__(self, code: str = "CONFLICT", message: str = "Conflicting update") -> None:
        super().__init__(code=code, message=message, status_code=409)


class AssignmentAlreadyExistsError(ConflictError):
    def __init__(self, message: str = "Assignment already exists for this order") -> None:
        super().__init__(code="ASSIGNMENT_ALREADY_EXISTS", message=message)


class DriverUnavailableError(ConflictError):
    def __init__(self, message: str = "Driver already has an active assignment") -> None:
        super().__init__(code="DRIVER_UNAVAILABLE", message=message)


class InvalidTransitionError(ConflictError):
    def __init__(self, message: str) -> None:
        super().__init__(code="INVALID_TRANSITION", message=message)


class AlreadyTerminalError(ConflictError):
    def __init__(self, message: str) -> None:
        super().__init__(code="ALREADY_TERMINAL", message=message)


class NotAssignedDriverError(DispatchError):
    def __init__(self, message: str = "Assignment is not held by this driver") -> None:
        super().__init__(code="NOT_ASSIGNED_DRIVER", message=message, status_code=403)


class ValidationFailedError(DispatchError):
    def __init__(self, message: str) -> None:
        super().__init__(code="VALIDATION_FAILED", message=message, status_code=400)


class InvalidConfirmationCodeError(DispatchError):
    def __init__(self, message: str = "Invalid confirmation code") -> None:
        super().__init__(code="INVALID_CONFIRMATION_CODE", message=message, status_code=400)


class CodeExhaustedError(DispatchError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            code="CODE_EXHAUSTED",
            message=f"Could not generate a unique confirmation code after {attempts} attempts",
            status_code=503,
        )


@dataclass
class IntegrationError(Exception):
    """Failure talking to a collaborator service (notifications, cache)."""

    service: str
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.service}:{self.code}:{self.message}"


class IntegrationTimeoutError(IntegrationError):
    def __init__(self, service: str, message: str = "Upstream timeout") -> None:
        super().__init__(service=service, code="TIMEOUT", message=message, retryable=True)


class IntegrationUnavailableError(IntegrationError):
    def __init__(self, service: str, message: str = "Upstream unavailable") -> None:
        super().__init__(service=service, code="UNAVAILABLE", message=message, retryable=True)


class IntegrationBadGatewayError(IntegrationError):
    def __init__(self, service: str, message: str = "Unexpected upstream response") -> None:
        super().__init__(service=service, code="BAD_GATEWAY", message=message, retryable=False)
