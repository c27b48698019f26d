import json
from typing import Any, Dict, List

from mdrip_gateway.fetch.base import MarkdownResult
from mdrip_gateway.services.orchestrator import FetchFailure, FetchOutcome, FetchSuccess


def result_metadata(url: str, result: MarkdownResult) -> Dict[str, Any]:
    """Result fields without the markdown body."""
    return {
        "url": url,
        "resolvedUrl": result.resolved_url,
        "status": result.status,
        "contentType": result.content_type,
        "source": result.source,
        "markdownTokens": result.markdown_tokens,
        "contentSignal": result.content_signal,
    }


def format_result(url: str, result: MarkdownResult) -> Dict[str, Any]:
    payload = result_metadata(url, result)
    payload["markdown"] = result.markdown
    return payload


def format_single(outcome: FetchSuccess) -> Dict[str, Any]:
    return format_result(outcome.url, outcome.result)


def format_failure(outcome: FetchFailure) -> Dict[str, Any]:
    return {"error": outcome.error, "url": outcome.url}


def format_batch_item(outcome: FetchOutcome) -> Dict[str, Any]:
    if isinstance(outcome, FetchSuccess):
        payload = format_result(outcome.url, outcome.result)
        payload["success"] = True
        return payload
    return {"url": outcome.url, "success": False, "error": outcome.error}


def format_batch(outcomes: List[FetchOutcome]) -> Dict[str, Any]:
    return {"results": [format_batch_item(outcome) for outcome in outcomes]}


# Tool content blocks

def tool_single_texts(outcome: FetchSuccess) -> List[str]:
    """Metadata JSON first, then the raw markdown."""
    return [
        json.dumps(result_metadata(outcome.url, outcome.result), ensure_ascii=False),
        outcome.result.markdown,
    ]


def tool_error_text(outcome: FetchFailure) -> str:
    return f"Error fetching {outcome.url}: {outcome.error}"


def tool_batch_item(outcome: FetchOutcome) -> Dict[str, Any]:
    if isinstance(outcome, FetchSuccess):
        payload: Dict[str, Any] = {"url": outcome.url, "success": True}
        payload.update(format_result(outcome.url, outcome.result))
        return payload
    return {"url": outcome.url, "success": False, "error": outcome.error}


def tool_batch_texts(outcomes: List[FetchOutcome]) -> List[str]:
    return [json.dumps(tool_batch_item(outcome), ensure_ascii=False) for outcome in outcomes]
