"""
Named tool registry.

A tool is a name, a description, a pydantic model describing its arguments,
and an async handler taking the validated model and returning text blocks.
Handlers signal a failed call by raising ToolError; the MCP layer turns that
into an error-flagged result carrying the message.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Type

from mcp.types import TextContent, Tool
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[List[str]]]


class ToolError(Exception):
    pass


@dataclass
class RegisteredTool:
    name: str
    description: str
    arguments: Type[BaseModel]
    handler: ToolHandler

    def definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.arguments.model_json_schema(),
        )


def _first_error(exc: SchemaValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


class ToolRegistry:
    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}

    def register(self, name: str, description: str, arguments: Type[BaseModel]) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering `handler` under `name`."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            if name in self._tools:
                raise ValueError(f"Tool already registered: {name}")
            self._tools[name] = RegisteredTool(name, description, arguments, handler)
            return handler

        return decorator

    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[Tool]:
        return [tool.definition() for tool in self._tools.values()]

    async def call(self, name: str, arguments: Dict[str, Any]) -> List[TextContent]:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolError(f"Unknown tool: {name}")

        try:
            parsed = tool.arguments.model_validate(arguments or {})
        except SchemaValidationError as e:
            raise ToolError(f"Invalid arguments for {name}: {_first_error(e)}")

        texts = await tool.handler(parsed)
        return [TextContent(type="text", text=text) for text in texts]
