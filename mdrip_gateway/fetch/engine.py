"""
Conversion engine: fetch a URL and return its markdown representation.

Markdown is requested first through content negotiation
(`Accept: text/markdown`). When the origin answers with HTML instead and the
caller allows it, the page is converted locally with markdownify.
"""
import logging
from typing import Optional

import httpx
from bs4 import BeautifulSoup
from markdownify import markdownify

from mdrip_gateway.core.errors import UpstreamFetchError
from mdrip_gateway.fetch.base import FetchOptions, MarkdownResult
from mdrip_gateway.fetch.utils import estimate_tokens, media_type, normalize_markdown, parse_token_header

logger = logging.getLogger(__name__)

ACCEPT = "text/markdown, text/html;q=0.9, */*;q=0.8"
MARKDOWN_TYPES = ("text/markdown", "text/x-markdown")
HTML_TYPES = ("text/html", "application/xhtml+xml")

SOURCE_NATIVE = "native"
SOURCE_HTML_FALLBACK = "html-fallback"

# Overridable in tests to route requests through httpx.MockTransport
transport: Optional[httpx.AsyncBaseTransport] = None


def html_to_markdown(html: str) -> str:
    """Strip non-content elements and convert the remaining HTML to markdown."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template", "iframe"]):
        tag.decompose()
    markdown = markdownify(str(soup), heading_style="ATX", bullets="-")
    return normalize_markdown(markdown)


async def _request(url: str, options: FetchOptions) -> httpx.Response:
    headers = {
        "User-Agent": options.user_agent,
        "Accept": ACCEPT,
    }
    try:
        async with httpx.AsyncClient(
            timeout=options.timeout_ms / 1000,
            headers=headers,
            follow_redirects=True,
            transport=transport,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response
    except httpx.TimeoutException:
        raise UpstreamFetchError(f"Request timed out after {options.timeout_ms}ms", url=url)
    except httpx.HTTPStatusError as e:
        raise UpstreamFetchError(
            f"HTTP {e.response.status_code} {e.response.reason_phrase}".strip(), url=url
        )
    except httpx.HTTPError as e:
        raise UpstreamFetchError(str(e) or f"Failed to fetch {url}", url=url)


async def fetch_markdown(url: str, options: FetchOptions) -> MarkdownResult:
    """
    Fetch `url` as markdown.

    Raises UpstreamFetchError on network failure, non-2xx responses, timeouts
    and content that cannot be represented as markdown.
    """
    response = await _request(url, options)
    content_type = response.headers.get("content-type", "")
    kind = media_type(content_type)
    content_signal = response.headers.get("content-signal")

    if kind in MARKDOWN_TYPES:
        markdown = response.text
        tokens = parse_token_header(response.headers.get("x-markdown-tokens"))
        source = SOURCE_NATIVE
    elif kind in HTML_TYPES:
        if not options.html_fallback:
            raise UpstreamFetchError(
                f"Server returned {kind} instead of markdown and HTML fallback is disabled", url=url
            )
        markdown = html_to_markdown(response.text)
        tokens = None
        source = SOURCE_HTML_FALLBACK
    else:
        raise UpstreamFetchError(f"Unsupported content type: {kind or 'unknown'}", url=url)

    if tokens is None:
        tokens = estimate_tokens(markdown)

    logger.debug("Fetched %s via %s (%d tokens)", url, source, tokens)
    return MarkdownResult(
        resolved_url=str(response.url),
        status=response.status_code,
        content_type=content_type,
        source=source,
        markdown_tokens=tokens,
        content_signal=content_signal,
        markdown=markdown,
    )
