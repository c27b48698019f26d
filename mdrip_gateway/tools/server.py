"""
MCP front end: the two fetch tools, the low-level server and its HTTP transports.

Rate limiting for these paths happens in TransportRateLimitMiddleware, before
either transport reads the request.
"""
import contextlib
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp.types import TextContent, Tool
from starlette.types import Receive, Scope, Send

from mdrip_gateway.core.config import settings
from mdrip_gateway.schemas import BatchFetchMarkdownArgs, FetchMarkdownArgs
from mdrip_gateway.services import orchestrator
from mdrip_gateway.services.formatter import tool_batch_texts, tool_error_text, tool_single_texts
from mdrip_gateway.services.orchestrator import FetchSuccess
from mdrip_gateway.tools.registry import ToolError, ToolRegistry

logger = logging.getLogger(__name__)

SSE_MESSAGE_PATH = "/sse/messages/"

registry = ToolRegistry()


@registry.register(
    "fetch_markdown",
    "Fetch a webpage and convert it to clean markdown optimized for AI agents. Returns the markdown "
    "content along with metadata (token count, source method, resolved URL, content signal).",
    FetchMarkdownArgs,
)
async def fetch_markdown_tool(args: FetchMarkdownArgs) -> List[str]:
    outcome = await orchestrator.run_single(args.to_request(), settings.MCP_USER_AGENT)
    if not isinstance(outcome, FetchSuccess):
        raise ToolError(tool_error_text(outcome))
    return tool_single_texts(outcome)


@registry.register(
    "batch_fetch_markdown",
    "Fetch multiple webpages concurrently and convert them to markdown. Returns results for each URL "
    f"including markdown content and metadata. Limited to {settings.MAX_BATCH_URLS} URLs per request.",
    BatchFetchMarkdownArgs,
)
async def batch_fetch_markdown_tool(args: BatchFetchMarkdownArgs) -> List[str]:
    outcomes = await orchestrator.run_batch(args.to_request(), settings.MCP_USER_AGENT)
    return tool_batch_texts(outcomes)


def create_server(tools: ToolRegistry = registry) -> Server:
    server = Server(settings.SERVICE_NAME, version=settings.SERVICE_VERSION)

    @server.list_tools()
    async def list_tools() -> List[Tool]:
        return tools.definitions()

    @server.call_tool()
    async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
        # Exceptions become isError results with str(exc) as the text
        return await tools.call(name, arguments)

    return server


mcp_server = create_server()


class StreamableHTTPTransport:
    """ASGI app for /mcp. The session manager only exists while lifespan() is active."""

    def __init__(self, server: Server):
        self.server = server
        self._manager: Optional[StreamableHTTPSessionManager] = None

    @contextlib.asynccontextmanager
    async def lifespan(self) -> AsyncIterator[None]:
        # A session manager can only be run once, so build a fresh one per lifespan
        self._manager = StreamableHTTPSessionManager(
            app=self.server,
            stateless=True,
            json_response=settings.MCP_JSON_RESPONSE,
        )
        async with self._manager.run():
            logger.info("MCP streamable HTTP transport started")
            try:
                yield
            finally:
                self._manager = None
                logger.info("MCP streamable HTTP transport stopped")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self._manager is None:
            raise RuntimeError("MCP transport is not running")
        await self._manager.handle_request(scope, receive, send)


class SSETransport:
    """ASGI app for GET /sse; clients post messages to SSE_MESSAGE_PATH."""

    def __init__(self, server: Server, message_path: str = SSE_MESSAGE_PATH):
        self.server = server
        self.transport = SseServerTransport(message_path)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        async with self.transport.connect_sse(scope, receive, send) as (read_stream, write_stream):
            await self.server.run(read_stream, write_stream, self.server.create_initialization_options())

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.transport.handle_post_message(scope, receive, send)


streamable_http = StreamableHTTPTransport(mcp_server)
sse = SSETransport(mcp_server)
