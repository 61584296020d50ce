"""A small Model Context Protocol server core: JSON-RPC over line-delimited streams."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

_JSONRPC = "2.0"
_DEFAULT_PROTOCOL_VERSION = "2025-03-26"

_PARSE_ERROR = -32700
_INVALID_REQUEST = -32600
_METHOD_NOT_FOUND = -32601
_INVALID_PARAMS = -32602
_INTERNAL_ERROR = -32603


class McpError(Exception):
    """An error reported to the client as a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __repr__(self) -> str:
        return f"McpError(code={self.code}, message={self.message!r})"


def invalid_params(message: str) -> McpError:
    """Build an error for bad arguments supplied by the caller."""
    return McpError(_INVALID_PARAMS, message)


def internal_error(message: str) -> McpError:
    """Build an error for a failure on the server side."""
    return McpError(_INTERNAL_ERROR, message)


def text_content(text: str) -> dict[str, Any]:
    """A text content item."""
    return {"type": "text", "text": text}


def image_content(data: str, mime_type: str) -> dict[str, Any]:
    """An image content item holding base64 data."""
    return {"type": "image", "data": data, "mimeType": mime_type}


@dataclass
class CallToolResult:
    """The outcome of a tool call."""

    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"content": list(self.content), "isError": self.is_error}


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass
class Tool:
    """A named tool with a handler taking keyword arguments."""

    name: str
    description: str
    handler: Callable[..., CallToolResult | Awaitable[CallToolResult]]
    input_schema: dict[str, Any] = field(default_factory=_empty_schema)


def _tool_descriptor(tool: Tool) -> dict[str, Any]:
    return {
        "name": tool.name,
        "description": tool.description,
        "inputSchema": tool.input_schema,
    }


def _check_arguments(tool: Tool, arguments: dict[str, Any]) -> None:
    """Validate argument names against the tool's declared input schema."""
    schema = tool.input_schema or {}
    properties = schema.get("properties")
    if properties:
        unknown = sorted(set(arguments) - set(properties))
        if unknown:
            raise invalid_params(f"invalid arguments: unexpected argument(s) {', '.join(unknown)}")
    missing = sorted(name for name in schema.get("required", ()) if name not in arguments)
    if missing:
        raise invalid_params(f"invalid arguments: missing argument(s) {', '.join(missing)}")


class ToolRouter:
    """Holds the tools a server offers, in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def add(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def remove(self, name: str) -> None:
        self._tools.pop(name, None)

    def has_route(self, name: str) -> bool:
        return name in self._tools

    def list_all(self) -> list[Tool]:
        return list(self._tools.values())

    async def call(self, name: str, arguments: dict[str, Any] | None) -> CallToolResult:
        tool = self._tools.get(name)
        if tool is None:
            raise invalid_params("tool not found")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise invalid_params("arguments must be an object")
        _check_arguments(tool, arguments)
        result = tool.handler(**arguments)
        if isinstance(result, Awaitable):
            result = await result
        return result


def _result_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": _JSONRPC, "id": request_id, "result": result}


def _error_response(request_id: Any, error: McpError) -> dict[str, Any]:
    body: dict[str, Any] = {"code": error.code, "message": error.message}
    if error.data is not None:
        body["data"] = error.data
    return {"jsonrpc": _JSONRPC, "id": request_id, "error": body}


class McpServer:
    """Dispatches MCP requests to the tools in its router."""

    def __init__(self, name: str, version: str = "0.1.0", instructions: str | None = None) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self.tool_router = ToolRouter()

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {
            "protocolVersion": params.get("protocolVersion", _DEFAULT_PROTOCOL_VERSION),
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.name, "version": self.version},
        }
        if self.instructions is not None:
            result["instructions"] = self.instructions
        return result

    async def _dispatch(self, method: str, params: dict[str, Any]) -> Any:
        if method == "initialize":
            return self._initialize(params)
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [_tool_descriptor(t) for t in self.tool_router.list_all()]}
        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str):
                raise invalid_params("missing tool name")
            result = await self.tool_router.call(name, params.get("arguments"))
            return result.to_dict()
        raise McpError(_METHOD_NOT_FOUND, f"method not found: {method}")

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Handle one decoded message; return the response, or None for notifications."""
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            if isinstance(message, dict) and "method" not in message:
                # A response from the client; nothing to answer.
                return None
            return _error_response(request_id, McpError(_INVALID_REQUEST, "invalid request"))
        method = message["method"]
        is_notification = "id" not in message
        request_id = message.get("id")
        params = message.get("params") or {}
        if is_notification:
            logger.debug("notification %s", method)
            return None
        if not isinstance(params, dict):
            return _error_response(request_id, invalid_params("params must be an object"))
        try:
            result = await self._dispatch(method, params)
        except McpError as err:
            return _error_response(request_id, err)
        except Exception as exc:  # noqa: BLE001 - report any failure to the client
            logger.exception("tool failure")
            return _error_response(request_id, internal_error(str(exc)))
        return _result_response(request_id, result)

    async def serve(self, reader: Any, writer: Any) -> None:
        """Serve line-delimited JSON-RPC until the reader reaches end of input."""
        while True:
            line = await reader.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
            if not text.strip():
                continue
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                response = _error_response(None, McpError(_PARSE_ERROR, "parse error"))
            else:
                response = await self.handle_message(message)
            if response is None:
                continue
            writer.write((json.dumps(response) + "\n").encode("utf-8"))
            drain = getattr(writer, "drain", None)
            if drain is not None:
                outcome = drain()
                if isinstance(outcome, Awaitable):
                    await outcome


class _StdinReader:
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    async def readline(self) -> bytes:
        return await self._loop.run_in_executor(None, sys.stdin.buffer.readline)


class _StdoutWriter:
    def write(self, data: bytes) -> None:
        sys.stdout.buffer.write(data)

    def drain(self) -> None:
        sys.stdout.buffer.flush()


async def run_stdio(server: McpServer) -> None:
    """Serve the given server over standard input and output."""
    loop = asyncio.get_running_loop()
    await server.serve(_StdinReader(loop), _StdoutWriter())