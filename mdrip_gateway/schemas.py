from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator
from typing import List, Optional

from mdrip_gateway.core.config import settings
from mdrip_gateway.fetch.utils import is_absolute_url

class FetchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    timeout_ms: int = Field(default=settings.DEFAULT_TIMEOUT_MS, description="Engine timeout in milliseconds")
    html_fallback: bool = Field(default=True, description="Convert HTML when native markdown is unavailable")

class BatchFetchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    urls: List[str]
    timeout_ms: int = Field(default=settings.DEFAULT_TIMEOUT_MS, description="Engine timeout per URL in milliseconds")
    html_fallback: bool = Field(default=True, description="Convert HTML when native markdown is unavailable")

    def requests(self) -> List[FetchRequest]:
        return [
            FetchRequest(url=url, timeout_ms=self.timeout_ms, html_fallback=self.html_fallback)
            for url in self.urls
        ]

# Tool arguments. Timeouts are bounded here, unlike the raw HTTP API.

def _check_url(value: str) -> str:
    if not is_absolute_url(value):
        raise ValueError(f"Invalid URL: {value}")
    return value

class FetchMarkdownArgs(BaseModel):
    url: str = Field(
        ...,
        description="The URL of the webpage to fetch as markdown",
        json_schema_extra={"format": "uri"},
    )
    timeout_ms: Optional[StrictInt] = Field(
        None,
        ge=settings.MIN_TOOL_TIMEOUT_MS,
        le=settings.MAX_TOOL_TIMEOUT_MS,
        description=f"Request timeout in milliseconds (default: {settings.DEFAULT_TIMEOUT_MS})",
    )
    html_fallback: Optional[StrictBool] = Field(
        None,
        description="Fall back to HTML-to-markdown conversion if native markdown is unavailable (default: true)",
    )

    @field_validator("url")
    @classmethod
    def url_must_be_absolute(cls, v: str) -> str:
        return _check_url(v)

    def to_request(self) -> FetchRequest:
        return FetchRequest(
            url=self.url,
            timeout_ms=settings.DEFAULT_TIMEOUT_MS if self.timeout_ms is None else self.timeout_ms,
            html_fallback=self.html_fallback is not False,
        )

class BatchFetchMarkdownArgs(BaseModel):
    urls: List[str] = Field(
        ...,
        min_length=1,
        max_length=settings.MAX_BATCH_URLS,
        description=f"Array of URLs to fetch as markdown (1-{settings.MAX_BATCH_URLS} URLs)",
        json_schema_extra={"items": {"type": "string", "format": "uri"}},
    )
    timeout_ms: Optional[StrictInt] = Field(
        None,
        ge=settings.MIN_TOOL_TIMEOUT_MS,
        le=settings.MAX_TOOL_TIMEOUT_MS,
        description=f"Request timeout per URL in milliseconds (default: {settings.DEFAULT_TIMEOUT_MS})",
    )
    html_fallback: Optional[StrictBool] = Field(
        None,
        description="Fall back to HTML-to-markdown conversion if native markdown is unavailable (default: true)",
    )

    @field_validator("urls")
    @classmethod
    def urls_must_be_absolute(cls, v: List[str]) -> List[str]:
        for url in v:
            _check_url(url)
        return v

    def to_request(self) -> BatchFetchRequest:
        return BatchFetchRequest(
            urls=self.urls,
            timeout_ms=settings.DEFAULT_TIMEOUT_MS if self.timeout_ms is None else self.timeout_ms,
            html_fallback=self.html_fallback is not False,
        )
