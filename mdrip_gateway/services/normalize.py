"""
Turn raw HTTP input into FetchRequest / BatchFetchRequest.

Checks run in a fixed order and stop at the first failure, so nothing here
ever triggers network activity for a request that is going to be rejected.
"""
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Union

from mdrip_gateway.core.config import settings
from mdrip_gateway.core.errors import TransportError, ValidationError
from mdrip_gateway.fetch.utils import is_absolute_url
from mdrip_gateway.schemas import BatchFetchRequest, FetchRequest

_DIGITS = re.compile(r"[0-9]+")

SHAPE_MESSAGE = "Body must contain 'url' (string) or 'urls' (array)"


def _require_url(url: Any) -> str:
    if not is_absolute_url(url):
        raise ValidationError(ValidationError.INVALID_URL, f"Invalid URL: {url}")
    return url


def _check_batch_size(urls: List[Any]) -> None:
    if not 1 <= len(urls) <= settings.MAX_BATCH_URLS:
        raise ValidationError(
            ValidationError.BATCH_SIZE_OUT_OF_RANGE,
            f"urls must contain 1-{settings.MAX_BATCH_URLS} URLs",
        )


def _query_timeout(raw: Optional[str]) -> int:
    if not raw:
        return settings.DEFAULT_TIMEOUT_MS
    message = "Invalid 'timeout' parameter: must be a positive integer"
    raw = raw.strip()
    if not _DIGITS.fullmatch(raw):
        raise ValidationError(ValidationError.INVALID_TIMEOUT, message)
    try:
        timeout = int(raw)
    except ValueError:
        # More digits than int() accepts from a string
        raise ValidationError(ValidationError.INVALID_TIMEOUT, message)
    if timeout <= 0:
        raise ValidationError(ValidationError.INVALID_TIMEOUT, message)
    # Not clamped: the engine owns range handling for the HTTP API
    return timeout


def _body_timeout(raw: Any) -> int:
    if raw is None:
        return settings.DEFAULT_TIMEOUT_MS
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        raise ValidationError(ValidationError.INVALID_TIMEOUT, "Invalid 'timeout_ms': must be a positive integer")
    return raw


def normalize_query(params: Mapping[str, str]) -> FetchRequest:
    """GET /api?url=&timeout=&html_fallback="""
    url = params.get("url")
    if not url:
        raise ValidationError(ValidationError.MISSING_URL, "Missing required 'url' query parameter")
    _require_url(url)

    return FetchRequest(
        url=url,
        timeout_ms=_query_timeout(params.get("timeout")),
        # Only the exact string "false" disables the fallback
        html_fallback=params.get("html_fallback") != "false",
    )


def parse_json_body(raw: bytes) -> Dict[str, Any]:
    try:
        body = json.loads(raw)
    except ValueError:
        raise TransportError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError(ValidationError.INVALID_BODY, SHAPE_MESSAGE)
    return body


def is_batch_body(body: Mapping[str, Any]) -> bool:
    """True when the body selects the batch shape ({"urls": [...]} without "url")."""
    return body.get("urls") is not None and body.get("url") is None


def normalize_body(body: Mapping[str, Any]) -> Union[FetchRequest, BatchFetchRequest]:
    """POST /api with either {"url": ...} or {"urls": [...]}."""
    has_url = body.get("url") is not None
    has_urls = body.get("urls") is not None

    if has_url and has_urls:
        raise ValidationError(ValidationError.AMBIGUOUS_BODY, "Body must contain either 'url' or 'urls', not both")

    if has_url:
        url = body["url"]
        if not isinstance(url, str):
            raise ValidationError(ValidationError.INVALID_BODY, SHAPE_MESSAGE)
        _require_url(url)
        return FetchRequest(
            url=url,
            timeout_ms=_body_timeout(body.get("timeout_ms")),
            html_fallback=body.get("html_fallback") is not False,
        )

    if has_urls:
        urls = body["urls"]
        if not isinstance(urls, list):
            raise ValidationError(ValidationError.INVALID_BODY, SHAPE_MESSAGE)
        _check_batch_size(urls)
        for url in urls:
            _require_url(url)
        return BatchFetchRequest(
            urls=urls,
            timeout_ms=_body_timeout(body.get("timeout_ms")),
            html_fallback=body.get("html_fallback") is not False,
        )

    raise ValidationError(ValidationError.MISSING_URL, SHAPE_MESSAGE)
