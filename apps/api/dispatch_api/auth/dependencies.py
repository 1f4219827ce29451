import uuid
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from dispatch_api.auth.jwt import JwtError, jwt_http_exception, read_claims
from dispatch_api.config import allowed_roles_list, settings

TEST_BYPASS_USER_ID = "test-admin"


@dataclass
class AuthContext:
    user_id: str
    role: str
    source: str | None = None


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    if not authorization and settings.enable_test_auth_bypass:
        return AuthContext(user_id=TEST_BYPASS_USER_ID, role="ADMIN", source="test-bypass")

    if not authorization or not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")

    token = authorization.removeprefix("Bearer ").strip()
    return auth_context_from_token(token)


def auth_context_from_token(token: str) -> AuthContext:
    try:
        claims = read_claims(token, settings.jwt_secret, allowed_roles_list())
    except JwtError as err:
        raise jwt_http_exception("Invalid JWT") from err
    return AuthContext(user_id=claims.subject, role=claims.role, source="jwt")


def require_roles(*roles: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


def driver_id_of(auth: AuthContext) -> uuid.UUID:
    """Driver tokens carry the driver's UUID as subject."""
    try:
        return uuid.UUID(auth.user_id)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Driver identity is not a valid id"
        ) from err
