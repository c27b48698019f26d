from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from mdrip_gateway.core.config import settings
from mdrip_gateway.core.errors import CORS_HEADERS, PrettyJSONResponse
from mdrip_gateway.core.ratelimit import Scope, enforce_api_limit, gate
from mdrip_gateway.schemas import BatchFetchRequest, FetchRequest
from mdrip_gateway.services import orchestrator
from mdrip_gateway.services.formatter import format_batch, format_failure, format_single
from mdrip_gateway.services.normalize import is_batch_body, normalize_body, normalize_query, parse_json_body
from mdrip_gateway.services.orchestrator import FetchSuccess

router = APIRouter()


async def _single_response(fetch_request: FetchRequest) -> PrettyJSONResponse:
    outcome = await orchestrator.run_single(fetch_request, settings.API_USER_AGENT)
    if isinstance(outcome, FetchSuccess):
        return PrettyJSONResponse(format_single(outcome))
    return PrettyJSONResponse(format_failure(outcome), status_code=502)


@router.options("/api")
@router.options("/api/", include_in_schema=False)
async def api_preflight():
    """CORS preflight, no body"""
    return Response(status_code=204, headers=CORS_HEADERS)


@router.get("/api")
@router.get("/api/", include_in_schema=False)
async def fetch_markdown_get(request: Request, identity: str = Depends(enforce_api_limit)):
    """
    Fetch one URL as markdown.

    Query parameters: url (required), timeout (ms), html_fallback ("false" disables it).
    """
    fetch_request = normalize_query(request.query_params)
    return await _single_response(fetch_request)


@router.post("/api")
@router.post("/api/", include_in_schema=False)
async def fetch_markdown_post(request: Request, identity: str = Depends(enforce_api_limit)):
    """
    Fetch one URL ({"url": ...}) or a batch ({"urls": [...]}) as markdown.

    A batch always answers 200; each item carries its own success flag.
    """
    body = parse_json_body(await request.body())
    if is_batch_body(body):
        await gate.enforce(Scope.API_BATCH, identity)
    fetch_request = normalize_body(body)

    if isinstance(fetch_request, BatchFetchRequest):
        outcomes = await orchestrator.run_batch(fetch_request, settings.API_USER_AGENT)
        return PrettyJSONResponse(format_batch(outcomes))

    return await _single_response(fetch_request)


@router.api_route("/api", methods=["PUT", "PATCH", "DELETE", "HEAD"], include_in_schema=False)
@router.api_route("/api/", methods=["PUT", "PATCH", "DELETE", "HEAD"], include_in_schema=False)
async def api_method_not_allowed(identity: str = Depends(enforce_api_limit)):
    return PrettyJSONResponse({"error": "Method not allowed"}, status_code=405)
