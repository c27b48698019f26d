import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mdrip_gateway.api.routes import router
from mdrip_gateway.core.config import settings
from mdrip_gateway.core.errors import PrettyJSONResponse, register_exception_handlers
from mdrip_gateway.core.ratelimit import TransportRateLimitMiddleware
from mdrip_gateway.tools.server import registry, sse, streamable_http

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs the MCP session manager for as long as the app serves requests.
    """
    logger.info("Starting %s %s", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    async with streamable_http.lifespan():
        yield
    logger.info("Shutting down %s", settings.SERVICE_NAME)

app = FastAPI(
    title=settings.SERVICE_NAME,
    description="Remote MCP server and API for mdrip - fetch markdown snapshots of web pages optimized for AI agents",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(TransportRateLimitMiddleware, prefixes=("/mcp", "/sse"))
register_exception_handlers(app)

# JSON API
app.include_router(router)

# MCP transports
app.add_route("/mcp", streamable_http)
app.add_route("/mcp/", streamable_http, include_in_schema=False)
app.add_route("/sse", sse, methods=["GET"])
app.add_route("/sse/", sse, methods=["GET"], include_in_schema=False)
app.mount("/sse/messages", app=sse.handle_post_message)

@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    """Unknown paths answer with plain text"""
    if exc.status_code == 404:
        return PlainTextResponse("Not found", status_code=404)
    return await http_exception_handler(request, exc)

@app.get("/")
async def root():
    """Static service descriptor, not rate limited"""
    return PrettyJSONResponse({
        "name": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "description": "Remote MCP server and API for mdrip - fetch markdown snapshots of web pages optimized for AI agents",
        "endpoints": {
            "mcp": "/mcp",
            "sse": "/sse",
            "api": "/api",
        },
        "tools": registry.names(),
        "npm": "https://www.npmjs.com/package/mdrip",
        "docs": "https://github.com/charl-kruger/mdrip",
    })

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": settings.SERVICE_NAME}

def run():
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())

if __name__ == "__main__":
    run()
