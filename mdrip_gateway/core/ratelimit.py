"""
Per-scope rate limiting.

`FixedWindowRateLimiter` is the storage primitive: it only answers
`limit(key) -> RateLimitOutcome(success)` over a fixed window. `RateLimitGate`
composes "<scope>:<identity>" keys and keeps one limiter per scope, so the
budgets of different scopes never interact.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope as ASGIScope, Send

from mdrip_gateway.core.config import settings
from mdrip_gateway.core.errors import RateLimitExceeded, error_response
from mdrip_gateway.core.identity import identity_kind, resolve_identity

logger = logging.getLogger(__name__)


class Scope:
    TRANSPORT = "transport"
    API = "api"
    API_BATCH = "api-batch"


@dataclass
class RateLimitOutcome:
    success: bool


@dataclass
class _Window:
    window_start: float
    count: int


class FixedWindowRateLimiter:
    """In-memory fixed-window counter keyed by an opaque string."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: Dict[str, _Window] = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        """Drop expired windows, at most once per window length."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        expired = [key for key, window in self._store.items() if now - window.window_start >= self.window_seconds]
        for key in expired:
            del self._store[key]

    async def limit(self, key: str) -> RateLimitOutcome:
        now = self._clock()
        self._sweep(now)
        window = self._store.get(key)
        if window is None or now - window.window_start >= self.window_seconds:
            self._store[key] = _Window(window_start=now, count=1)
            return RateLimitOutcome(success=self.max_requests > 0)
        if window.count < self.max_requests:
            window.count += 1
            return RateLimitOutcome(success=True)
        return RateLimitOutcome(success=False)

    def reset(self) -> None:
        self._store.clear()
        self._last_sweep = self._clock()

    def active_keys(self) -> int:
        return len(self._store)


@dataclass
class RateLimitDecision:
    allowed: bool
    scope: str
    retry_after_seconds: Optional[int] = None


class RateLimitGate:
    def __init__(self, limiters: Dict[str, FixedWindowRateLimiter], window_seconds: int):
        self.limiters = limiters
        self.window_seconds = window_seconds

    async def check(self, scope: str, identity: str) -> RateLimitDecision:
        limiter = self.limiters[scope]
        outcome = await limiter.limit(f"{scope}:{identity}")
        if outcome.success:
            return RateLimitDecision(allowed=True, scope=scope)
        # The window size is advertised as a hint, not the limiter's real reset time
        return RateLimitDecision(allowed=False, scope=scope, retry_after_seconds=self.window_seconds)

    async def enforce(self, scope: str, identity: str) -> None:
        """Raise RateLimitExceeded when `identity` is over budget for `scope`."""
        decision = await self.check(scope, identity)
        if not decision.allowed:
            # Identities can carry credentials; only their source is logged
            logger.warning("Denied %s caller for scope %s", identity_kind(identity), scope)
            raise RateLimitExceeded(scope, decision.retry_after_seconds)

    def reset(self) -> None:
        for limiter in self.limiters.values():
            limiter.reset()


def build_gate() -> RateLimitGate:
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    return RateLimitGate(
        {
            Scope.TRANSPORT: FixedWindowRateLimiter(settings.RATE_LIMIT_TRANSPORT, window),
            Scope.API: FixedWindowRateLimiter(settings.RATE_LIMIT_API, window),
            Scope.API_BATCH: FixedWindowRateLimiter(settings.RATE_LIMIT_API_BATCH, window),
        },
        window_seconds=window,
    )


gate = build_gate()


def request_identity(request: Request) -> str:
    client_host = request.client.host if request.client else None
    return resolve_identity(request.headers, client_host)


async def enforce_api_limit(request: Request) -> str:
    """FastAPI dependency: gate the request on the `api` scope, return the caller identity."""
    identity = request_identity(request)
    await gate.enforce(Scope.API, identity)
    return identity


def _matches(path: str, prefixes: Iterable[str]) -> bool:
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


class TransportRateLimitMiddleware:
    """ASGI middleware charging the `transport` scope before MCP transports parse anything."""

    def __init__(self, app: ASGIApp, prefixes: Iterable[str] = ("/mcp", "/sse")):
        self.app = app
        self.prefixes = tuple(prefixes)

    async def __call__(self, scope: ASGIScope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not _matches(scope["path"], self.prefixes):
            await self.app(scope, receive, send)
            return

        identity = request_identity(Request(scope))
        try:
            await gate.enforce(Scope.TRANSPORT, identity)
        except RateLimitExceeded as exc:
            response = error_response(exc)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
