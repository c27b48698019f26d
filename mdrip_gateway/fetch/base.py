from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class FetchOptions:
    timeout_ms: int
    html_fallback: bool
    user_agent: str

@dataclass
class MarkdownResult:
    resolved_url: str
    status: int
    content_type: str
    source: str  # "native" or "html-fallback"
    markdown_tokens: int
    content_signal: Optional[str]
    markdown: str
