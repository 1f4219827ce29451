import secrets
import string
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from dispatch_api.errors import CodeExhaustedError
from dispatch_api.models.assignment import AssignmentStatus, DriverAssignment
from dispatch_api.observability import log_event, metrics_store

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 20


def generate_code(
    length: int = DEFAULT_CODE_LENGTH,
    choice: Callable[[str], str] = secrets.choice,
) -> str:
    return "".join(choice(CODE_ALPHABET) for _ in range(length))


def generate_unique_code(
    is_taken: Callable[[str], bool],
    *,
    length: int = DEFAULT_CODE_LENGTH,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    choice: Callable[[str], str] = secrets.choice,
) -> str:
    for attempt in range(1, max_attempts + 1):
        candidate = generate_code(length, choice)
        if not is_taken(candidate):
            return candidate
        metrics_store.increment("confirmation_code_collisions_total")
        log_event(f"confirmation_code_collision attempt={attempt}")

    raise CodeExhaustedError(max_attempts)


def code_in_use(db: Session, code: str) -> bool:
    """True when a non-cancelled assignment already holds ``code``."""
    existing = db.scalar(
        select(DriverAssignment.id).where(
            DriverAssignment.confirmation_code == code,
            DriverAssignment.status != AssignmentStatus.CANCELLED,
        )
    )
    return existing is not None


def issue_confirmation_code(
    db: Session,
    *,
    length: int = DEFAULT_CODE_LENGTH,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    return generate_unique_code(
        lambda candidate: code_in_use(db, candidate),
        length=length,
        max_attempts=max_attempts,
    )
