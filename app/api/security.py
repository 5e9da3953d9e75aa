"""
Admin key authentication and request budgets for the relay endpoints.

Every relay endpoint except `/relay/status` requires the `X-Admin-Key` header.
Run triggers and failed authentication attempts are counted per client address
in a process-local sliding window.
"""
from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
import secrets
import time
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, Security, HTTPException, status
from fastapi.security import APIKeyHeader
from api.settings import settings

admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


@dataclass(frozen=True)
class Budget:
    """How many requests of one kind a client may make per window."""

    scope: str
    limit: int
    window_seconds: int


RUN_BUDGET = Budget(scope="relay runs", limit=12, window_seconds=3600)
AUTH_FAILURE_BUDGET = Budget(scope="auth failures", limit=20, window_seconds=300)


class SlidingWindowCounter:
    """Count events per key over a sliding time window.

    Note:
        State lives in memory and is lost on restart.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def hit(self, key: str, budget: Budget) -> int:
        """Record one event for `key` if the budget allows it.

        Args:
            key: Client bucket.
            budget: Limit to enforce.

        Returns:
            int: 0 when the event was recorded, otherwise seconds until the
            oldest event leaves the window.
        """

        now = self._clock()
        hits = self._hits[f"{budget.scope}:{key}"]
        while hits and now - hits[0] > budget.window_seconds:
            hits.popleft()

        if len(hits) >= budget.limit:
            return max(1, int(hits[0] + budget.window_seconds - now))

        hits.append(now)
        return 0

    def reset(self) -> None:
        self._hits.clear()


_counter = SlidingWindowCounter()


def _client_address(request: Optional[Request]) -> str:
    if request is None or request.client is None:
        return "unknown"
    return request.client.host or "unknown"


def consume_budget(request: Optional[Request], budget: Budget) -> None:
    """Charge one request against a client's budget.

    Raises:
        HTTPException: 429 with a Retry-After header when the budget is spent.
    """

    wait = _counter.hit(_client_address(request), budget)
    if wait:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many {budget.scope}; retry in {wait}s.",
            headers={"Retry-After": str(wait)},
        )


def enforce_run_budget(request: Request) -> None:
    consume_budget(request, RUN_BUDGET)


async def verify_admin_key(
    request: Request,
    admin_key: Optional[str] = Security(admin_key_header),
) -> str:
    """
    Check the `X-Admin-Key` header against the configured key.

    Returns:
        The accepted key.

    Raises:
        HTTPException: 503 when no key is configured, 401 when the header is
            missing, 403 when it does not match, 429 after too many failures.
    """
    expected = settings.get_admin_api_key()
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay admin key is not configured (ADMIN_API_KEY or ADMIN_API_KEY_FILE)."
        )

    if not admin_key:
        consume_budget(request, AUTH_FAILURE_BUDGET)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Admin-Key header."
        )

    if not secrets.compare_digest(admin_key.encode(), expected.encode()):
        consume_budget(request, AUTH_FAILURE_BUDGET)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API key."
        )

    return admin_key


def is_admin_key(candidate: Optional[str]) -> bool:
    """Return True when `candidate` matches the configured admin key."""

    expected = settings.get_admin_api_key()
    if not expected or not candidate:
        return False
    return secrets.compare_digest(candidate.encode(), expected.encode())
