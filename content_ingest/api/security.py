"""
API Security
============
Bearer-token authentication and per-client rate limiting.

Tokens are issued by the external auth service and signed with the
shared JWT secret; ``sub`` is the account ID and ``is_superuser`` marks
operators.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ..core.config import APIConfig
from ..core.exceptions import RateLimitError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    account_id: str
    is_operator: bool = False


def create_access_token(
    config: APIConfig,
    account_id: str,
    is_operator: bool = False,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign a bearer token for ``account_id`` (operator tooling and tests)."""
    if not config.jwt_secret:
        raise ValueError("JWT secret is not configured")

    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=24))
    to_encode = {"sub": account_id, "exp": expire}
    if is_operator:
        to_encode["is_superuser"] = True
    return jwt.encode(to_encode, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(config: APIConfig, token: str) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except JWTError:
        raise credentials_exception

    account_id = payload.get("sub")
    if not account_id or not isinstance(account_id, str):
        raise credentials_exception
    return Principal(account_id=account_id, is_operator=payload.get("is_superuser") is True)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    config: APIConfig = request.app.state.config.api
    if not config.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(config, credentials.credentials)


async def get_operator(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_operator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator privileges required",
        )
    return principal


@dataclass
class RateLimiter:
    """
    Token bucket rate limiter.

    Refills continuously at ``limit`` tokens per ``window_seconds``.
    """

    limit: int
    window_seconds: int
    clock: Callable[[], float] = time.monotonic
    tokens: float = field(init=False)
    last_update: float = field(init=False)

    def __post_init__(self) -> None:
        self.tokens = float(self.limit)
        self.last_update = self.clock()

    def acquire(self, tokens: int = 1) -> bool:
        """
        Try to acquire tokens from the bucket.

        Args:
            tokens: Number of tokens to acquire

        Returns:
            bool: True if tokens were acquired
        """
        now = self.clock()
        elapsed = now - self.last_update

        self.tokens = min(
            self.limit,
            self.tokens + (elapsed * self.limit / self.window_seconds)
        )
        self.last_update = now

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def time_until_available(self, tokens: int = 1) -> float:
        if self.tokens >= tokens:
            return 0.0
        needed = tokens - self.tokens
        return (needed * self.window_seconds) / self.limit


class ClientRateLimiter:
    """One token bucket per client key."""

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._buckets: Dict[str, RateLimiter] = {}
        self._last_prune = clock()

    @property
    def tracked(self) -> int:
        return len(self._buckets)

    def _prune(self, now: float) -> None:
        """Forget buckets idle for a full window; they have refilled to ``limit``."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        idle = [
            key for key, bucket in self._buckets.items()
            if now - bucket.last_update >= self.window_seconds
        ]
        for key in idle:
            del self._buckets[key]

    def check(self, key: str) -> None:
        """
        Consume one request for ``key``.

        Raises:
            RateLimitError: If the client's bucket is empty
        """
        self._prune(self.clock())
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = RateLimiter(self.limit, self.window_seconds, clock=self.clock)
            self._buckets[key] = bucket

        if not bucket.acquire():
            retry_after = max(1, int(bucket.time_until_available() + 0.999))
            raise RateLimitError(
                "Too many requests. Please wait before trying again.",
                source=key,
                limit=self.limit,
                window_seconds=self.window_seconds,
                retry_after=retry_after,
            )


def client_key(request: Request) -> str:
    """Client address, honouring the first ``X-Forwarded-For`` hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"
