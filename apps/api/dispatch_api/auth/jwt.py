import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status


class JwtError(Exception):
    pass


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    role: str
    expires_at: int


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(data + padding)
    except (binascii.Error, ValueError) as exc:
        raise JwtError("Malformed JWT segment") from exc


def _sign(signing_input: bytes, secret: str) -> str:
    return _b64url_encode(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def issue_jwt(payload: dict[str, Any], secret: str, expires_in_s: int = 3600) -> str:
    header = {"alg": "HS256", "typ": "JWT"}
    claims = {**payload, "exp": int(time.time()) + expires_in_s}

    encoded_header = _b64url_encode(json.dumps(header, separators=(",", ":")).encode())
    encoded_payload = _b64url_encode(json.dumps(claims, separators=(",", ":")).encode())
    signature = _sign(f"{encoded_header}.{encoded_payload}".encode(), secret)
    return f"{encoded_header}.{encoded_payload}.{signature}"


def issue_user_token(subject: str, role: str, secret: str, expires_in_s: int = 3600) -> str:
    return issue_jwt({"sub": subject, "role": role}, secret, expires_in_s=expires_in_s)


def decode_jwt(token: str, secret: str) -> dict[str, Any]:
    try:
        encoded_header, encoded_payload, encoded_signature = token.split(".")
    except ValueError as exc:
        raise JwtError("Malformed JWT") from exc

    expected = _sign(f"{encoded_header}.{encoded_payload}".encode(), secret)
    if not hmac.compare_digest(expected, encoded_signature):
        raise JwtError("Invalid JWT signature")

    try:
        header = json.loads(_b64url_decode(encoded_header))
        payload = json.loads(_b64url_decode(encoded_payload))
    except json.JSONDecodeError as exc:
        raise JwtError("Malformed JWT") from exc
    if not isinstance(header, dict) or header.get("alg") != "HS256":
        raise JwtError("Unsupported JWT algorithm")
    if not isinstance(payload, dict):
        raise JwtError("Malformed JWT claims")

    exp = payload.get("exp")
    if not isinstance(exp, int) or exp < int(time.time()):
        raise JwtError("Expired JWT")

    return payload


def read_claims(token: str, secret: str, allowed_roles: list[str]) -> TokenClaims:
    payload = decode_jwt(token, secret)
    subject = payload.get("sub")
    role = payload.get("role")
    if not isinstance(subject, str) or not subject or role not in allowed_roles:
        raise JwtError("Invalid JWT claims")
    return TokenClaims(subject=subject, role=role, expires_at=payload["exp"])


def jwt_http_exception(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)
