from typing import Mapping, Optional

from mdrip_gateway.core.config import settings

ANONYMOUS = "anonymous"

# Checked in order for the caller's network address
_ADDRESS_HEADERS = ("cf-connecting-ip", "x-real-ip")


def _clip(value: str) -> str:
    return value[: settings.IDENTITY_MAX_LENGTH]


def _first(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _client_address(headers: Mapping[str, str], client_host: Optional[str]) -> Optional[str]:
    for name in _ADDRESS_HEADERS:
        value = _first(headers, name)
        if value:
            return value

    forwarded = _first(headers, "x-forwarded-for")
    if forwarded:
        hop = forwarded.split(",")[0].strip()
        if hop:
            return hop

    if client_host:
        return client_host.strip() or None
    return None


def resolve_identity(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """
    Derive the rate-limit partition key for a caller.

    Precedence: explicit key header > Authorization header > network address >
    User-Agent > "anonymous". Pure function of its inputs; never raises.

    `headers` must be a case-insensitive mapping (Starlette's Headers) or use
    lower-case keys.
    """
    key = _first(headers, settings.IDENTITY_KEY_HEADER.lower())
    if key:
        return f"key:{_clip(key)}"

    auth = _first(headers, "authorization")
    if auth:
        return f"auth:{_clip(auth)}"

    address = _client_address(headers, client_host)
    if address:
        return f"ip:{_clip(address)}"

    user_agent = _first(headers, "user-agent")
    if user_agent:
        return f"ua:{_clip(user_agent)}"

    return ANONYMOUS


def identity_kind(identity: str) -> str:
    """Source of an identity ("key", "auth", "ip", "ua" or "anonymous"), safe to log."""
    if identity == ANONYMOUS:
        return ANONYMOUS
    return identity.split(":", 1)[0]
