"""
Error taxonomy shared by the HTTP API and the tool interface.

Validation and rate-limit errors terminate the whole request. Upstream fetch
errors are isolated per URL by the orchestrator and only surface as a 502 on
the single-URL HTTP path.
"""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class PrettyJSONResponse(JSONResponse):
    """JSON response indented by two spaces, with CORS headers for every origin."""

    def __init__(self, content: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None, **kwargs):
        merged = dict(CORS_HEADERS)
        if headers:
            merged.update(headers)
        super().__init__(content, status_code=status_code, headers=merged, **kwargs)

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False, indent=2).encode("utf-8")


class GatewayError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}

    def headers(self) -> Dict[str, str]:
        return {}


class ValidationError(GatewayError):
    """Malformed, missing or out-of-range input. Never reaches the engine."""

    status_code = 400

    MISSING_URL = "missing_url"
    INVALID_URL = "invalid_url"
    BATCH_SIZE_OUT_OF_RANGE = "batch_size_out_of_range"
    INVALID_TIMEOUT = "invalid_timeout"
    INVALID_BODY = "invalid_body"
    AMBIGUOUS_BODY = "ambiguous_body"

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class TransportError(GatewayError):
    status_code = 400


class RateLimitExceeded(GatewayError):
    status_code = 429

    def __init__(self, scope: str, retry_after_seconds: int):
        super().__init__("Rate limit exceeded")
        self.scope = scope
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "scope": self.scope,
            "retryAfterSeconds": self.retry_after_seconds,
        }

    def headers(self) -> Dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class UpstreamFetchError(GatewayError):
    """The conversion engine failed for one URL."""

    status_code = 502

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.url is not None:
            payload["url"] = self.url
        return payload


def describe_exception(exc: BaseException) -> str:
    """One-line, caller-safe description of a failure."""
    message = str(exc).strip()
    if not message:
        return type(exc).__name__
    return message.splitlines()[0]


def error_response(exc: GatewayError) -> PrettyJSONResponse:
    return PrettyJSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.headers())


async def gateway_error_handler(request: Request, exc: GatewayError) -> PrettyJSONResponse:
    if isinstance(exc, RateLimitExceeded):
        logger.warning("Rate limit exceeded on %s (scope=%s)", request.url.path, exc.scope)
    return error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
