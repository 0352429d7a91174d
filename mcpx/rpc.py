"""A small Model Context Protocol server speaking newline-delimited JSON-RPC."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Optional, TextIO

log = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_EMPTY_SCHEMA = {"type": "object", "properties": {}}


class _RpcError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class _Tool:
    name: str
    description: str
    schema: dict
    handler: Callable[..., Any]

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.schema,
        }

    def check_arguments(self, arguments: dict) -> None:
        """Raise if the arguments do not fit the tool's input schema."""
        properties = self.schema.get("properties") or {}
        unknown = sorted(key for key in arguments if key not in properties)
        if unknown:
            raise _RpcError(
                INVALID_PARAMS,
                f"Invalid arguments for tool {self.name}: unexpected {', '.join(unknown)}",
            )
        missing = [key for key in self.schema.get("required") or () if key not in arguments]
        if missing:
            raise _RpcError(
                INVALID_PARAMS,
                f"Invalid arguments for tool {self.name}: missing {', '.join(missing)}",
            )


def _error(request_id: Any, code: int, message: str) -> dict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


class ToolServer:
    """Registry of tools answering MCP requests."""

    def __init__(self, name: str, version: str = "0.1.0", instructions: Optional[str] = None) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self._tools: dict[str, _Tool] = {}
        self._methods: dict[str, Callable[[dict], Any]] = {
            "initialize": self._initialize,
            "ping": lambda params: {},
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def tool(self, name: Optional[str] = None, description: str = "", schema: Optional[dict] = None):
        """Register the decorated function as a tool."""

        def register(func: Callable[..., Any]) -> Callable[..., Any]:
            tool_name = name or func.__name__
            self._tools[tool_name] = _Tool(
                tool_name, description, schema if schema is not None else dict(_EMPTY_SCHEMA), func
            )
            return func

        return register

    def handle(self, message: Any) -> Optional[dict]:
        """Answer one decoded JSON-RPC message; notifications get ``None``."""
        if not isinstance(message, dict):
            return _error(None, INVALID_REQUEST, "Invalid request")
        if "method" not in message and ("result" in message or "error" in message):
            return None
        request_id = message.get("id")
        is_notification = "id" not in message
        method = message.get("method")
        if message.get("jsonrpc") != JSONRPC_VERSION or not isinstance(method, str):
            return None if is_notification else _error(request_id, INVALID_REQUEST, "Invalid request")

        params = message.get("params") or {}
        try:
            if not isinstance(params, dict):
                raise _RpcError(INVALID_PARAMS, "Params must be an object")
            handler = self._methods.get(method)
            if handler is None:
                if method.startswith("notifications/"):
                    return None
                raise _RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")
            result = handler(params)
        except _RpcError as exc:
            return None if is_notification else _error(request_id, exc.code, exc.message)
        except Exception as exc:  # noqa: BLE001 - reported to the client
            log.exception("Internal error while handling %s", method)
            return None if is_notification else _error(request_id, INTERNAL_ERROR, str(exc))

        if is_notification:
            return None
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def serve(self, reader: Optional[TextIO] = None, writer: Optional[TextIO] = None) -> None:
        """Read requests line by line and write responses until the input ends."""
        reader = reader if reader is not None else sys.stdin
        writer = writer if writer is not None else sys.stdout
        log.info("Serving %s over stdio", self.name)
        for line in reader:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError as exc:
                self._send(writer, _error(None, PARSE_ERROR, f"Parse error: {exc}"))
                continue
            if isinstance(message, list):
                responses = [r for r in map(self.handle, message) if r is not None]
                if responses:
                    self._send(writer, responses)
                continue
            response = self.handle(message)
            if response is not None:
                self._send(writer, response)
        log.info("Input closed, %s shutting down", self.name)

    @staticmethod
    def _send(writer: TextIO, payload: Any) -> None:
        writer.write(json.dumps(payload, ensure_ascii=False) + "\n")
        writer.flush()

    def _initialize(self, params: dict) -> dict:
        result: dict[str, Any] = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.name, "version": self.version},
        }
        if self.instructions is not None:
            result["instructions"] = self.instructions
        return result

    def _list_tools(self, params: dict) -> dict:
        return {"tools": [tool.describe() for tool in self._tools.values()]}

    def _call_tool(self, params: dict) -> dict:
        name = params.get("name")
        tool = self._tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise _RpcError(INVALID_PARAMS, f"Unknown tool: {name}")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise _RpcError(INVALID_PARAMS, "Tool arguments must be an object")
        tool.check_arguments(arguments)
        try:
            text = tool.handler(**arguments)
        except Exception as exc:  # noqa: BLE001 - reported as a tool error
            log.exception("Tool %s failed", name)
            return {"content": [{"type": "text", "text": f"Error: {exc}"}], "isError": True}
        return {"content": [{"type": "text", "text": str(text)}], "isError": False}