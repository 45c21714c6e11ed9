from __future__ import annotations

import hmac
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from guardwise.errors import ApiError
from guardwise.settings import get_settings

logger = logging.getLogger("guardwise.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_ALGORITHM = "HS256"
ADMIN_ROLE = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoginThrottle:
    """Sliding-window counter of failed logins per client address."""

    def __init__(self, max_attempts: int = 10, window: timedelta = timedelta(minutes=10)) -> None:
        self.max_attempts = max_attempts
        self.window = window
        self._lock = threading.Lock()
        self._failures: dict[str, deque[datetime]] = {}

    def _prune(self, ip: str, now: datetime) -> deque[datetime]:
        failures = self._failures.get(ip, deque())
        while failures and failures[0] < now - self.window:
            failures.popleft()
        if failures:
            self._failures[ip] = failures
        else:
            self._failures.pop(ip, None)
        return failures

    def check(self, ip: str) -> None:
        with self._lock:
            blocked = len(self._prune(ip, _utcnow())) >= self.max_attempts
        if blocked:
            raise ApiError(
                status_code=429,
                code="TOO_MANY_ATTEMPTS",
                message="Too many failed login attempts. Please try again later.",
            )

    def record_failure(self, ip: str) -> None:
        now = _utcnow()
        with self._lock:
            failures = self._prune(ip, now)
            failures.append(now)
            self._failures[ip] = failures

    def reset(self, ip: str) -> None:
        with self._lock:
            self._failures.pop(ip, None)


login_throttle = LoginThrottle()


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_in: int
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AdminPrincipal:
    username: str
    token_id: str | None = None


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def _unquote(value: str | None) -> str:
    value = (value or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def verify_admin_credentials(username: str, password: str) -> bool:
    settings = get_settings()
    expected_user = _unquote(settings.admin_user)
    expected_hash = _unquote(settings.admin_pass_hash)
    if not expected_hash or not hmac.compare_digest(username, expected_user):
        return False
    return verify_password(password, expected_hash)


def _signing_secret() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise ApiError(
            status_code=503,
            code="AUTH_NOT_CONFIGURED",
            message="Admin authentication is not configured.",
        )
    return secret


def create_access_token(username: str) -> IssuedToken:
    settings = get_settings()
    issued_at = _utcnow()
    lifetime = timedelta(minutes=settings.access_token_minutes)
    claims = {
        "sub": username,
        "username": username,
        "role": ADMIN_ROLE,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, _signing_secret(), algorithm=TOKEN_ALGORITHM)
    return IssuedToken(access_token=token, expires_in=int(lifetime.total_seconds()), claims=claims)


def authenticate_admin(username: str, password: str, ip: str | None) -> IssuedToken:
    """Run one admin login attempt.

    Failed attempts count against the caller's address; a success clears them.
    """
    if ip:
        login_throttle.check(ip)
    if not verify_admin_credentials(username, password):
        if ip:
            login_throttle.record_failure(ip)
        logger.warning("admin_login_failed", extra={"username": username, "ip": ip})
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")
    if ip:
        login_throttle.reset(ip)
    issued = create_access_token(username)
    logger.info("admin_login_ok", extra={"username": username, "ip": ip, "jti": issued.claims["jti"]})
    return issued


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            _signing_secret(),
            algorithms=[TOKEN_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    subject = payload.get("sub")
    if payload.get("typ") != "access" or not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.")
    if payload.get("role") != ADMIN_ROLE:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    return payload


def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AdminPrincipal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)
    principal = AdminPrincipal(
        username=str(payload.get("username") or payload["sub"]),
        token_id=payload.get("jti"),
    )
    request.state.actor_id = principal.username
    return principal
