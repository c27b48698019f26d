import math
import re
from typing import Optional
from urllib.parse import urlsplit

def is_absolute_url(value: object) -> bool:
    """True when `value` is a string carrying both a scheme and a host."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parts = urlsplit(value)
        # Accessing .port validates the port component
        parts.port
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.hostname)

def media_type(content_type: Optional[str]) -> str:
    """'text/html; charset=utf-8' -> 'text/html'"""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()

def parse_token_header(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    value = value.strip()
    if not re.fullmatch(r"[0-9]+", value):
        return None
    return int(value)

def estimate_tokens(text: str) -> int:
    """Rough token count, about four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)

def normalize_markdown(text: str) -> str:
    text = re.sub(r"\u00a0", " ", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
