"""
Tool Bridge

Maps JSON-RPC tool calls (MCP shaped) onto the session connector and
command gateway. Transport independent: feed it decoded messages, get
back response dicts.

Usage:
    bridge = ToolBridge(connector, gateway)
    bridge.handle_message({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    bridge.call_tool("browser_navigate", {"url": "https://example.com"})
"""

import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import mcp.types as types
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS

from .errors import ConnectorError, MissingArgumentError, UnknownToolError
from .gateway import CommandGateway
from .response import format_console_logs, format_network_logs, to_text
from .session import SessionConnector


SERVER_NAME = "browser-connector"
SERVER_VERSION = "1.0.0"


# ══════════════════════════════════════════════════════════════════════════════
# Tool descriptors
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ToolDescriptor:
    """Static description of one tool and the operation it runs."""
    name: str
    description: str
    operation: Callable[["ToolBridge", Dict[str, Any]], Any]
    required: Tuple[str, ...] = ()
    optional: Mapping[str, Any] = field(default_factory=dict)
    properties: Mapping[str, Dict[str, Any]] = field(default_factory=dict)

    def resolve(self, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Check required arguments and fill in defaults."""
        args = dict(arguments or {})
        for name in self.required:
            if args.get(name) is None:
                raise MissingArgumentError(self.name, name)
        for name, default in self.optional.items():
            if args.get(name) is None:
                args[name] = default
        return args

    def input_schema(self) -> Dict[str, Any]:
        props = {}
        for name, schema in self.properties.items():
            prop = dict(schema)
            if name in self.optional:
                prop["default"] = self.optional[name]
            props[name] = prop
        schema: Dict[str, Any] = {"type": "object", "properties": props}
        if self.required:
            schema["required"] = list(self.required)
        return schema

    def to_dict(self) -> Dict[str, Any]:
        tool = types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema())
        return tool.model_dump(by_alias=True, exclude_none=True, mode="json")


def _connect(bridge: "ToolBridge", args: Dict) -> Dict:
    info = bridge.connector.connect(args["host"], int(args["port"]))
    return {"success": True, "message": "Connected to browser", **info.to_dict()}


def _navigate(bridge: "ToolBridge", args: Dict) -> Dict:
    return {"success": True, **bridge.gateway.navigate(args["url"])}


def _page_info(bridge: "ToolBridge", args: Dict) -> Dict:
    return bridge.gateway.page_info()


def _console_logs(bridge: "ToolBridge", args: Dict) -> Dict:
    result = bridge.gateway.get_console_logs(int(args["limit"]))
    return {"success": True, **result, "formatted": format_console_logs(result["logs"])}


def _network_logs(bridge: "ToolBridge", args: Dict) -> Dict:
    result = bridge.gateway.get_network_logs(int(args["limit"]))
    return {"success": True, **result, "formatted": format_network_logs(result["logs"])}


def _clear_logs(bridge: "ToolBridge", args: Dict) -> Dict:
    return {"success": True, **bridge.gateway.clear_logs()}


def _click(bridge: "ToolBridge", args: Dict) -> Dict:
    return {"success": True, **bridge.gateway.click(args["selector"])}


def _type(bridge: "ToolBridge", args: Dict) -> Dict:
    return {"success": True, **bridge.gateway.type(args["selector"], str(args["text"]))}


def _execute(bridge: "ToolBridge", args: Dict) -> Dict:
    return {"success": True, **bridge.gateway.execute_script(args["script"])}


def _screenshot(bridge: "ToolBridge", args: Dict) -> Dict:
    result = bridge.gateway.screenshot(bool(args["fullPage"]))
    return {"success": True, **result, "message": "Screenshot captured"}


def _status(bridge: "ToolBridge", args: Dict) -> Dict:
    return bridge.gateway.status()


_LIMIT = {"type": "number", "description": "Maximum number of logs to return"}

TOOLS: Tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        "browser_connect",
        "Connect to existing browser instance with remote debugging",
        _connect,
        optional={"host": "localhost", "port": 9222},
        properties={
            "port": {"type": "number", "description": "Remote debugging port"},
            "host": {"type": "string", "description": "Browser host"},
        },
    ),
    ToolDescriptor(
        "browser_navigate",
        "Navigate to a URL",
        _navigate,
        required=("url",),
        properties={"url": {"type": "string", "description": "URL to navigate to"}},
    ),
    ToolDescriptor(
        "browser_get_page_info",
        "Get current page information including title, URL, and errors",
        _page_info,
    ),
    ToolDescriptor(
        "browser_get_console_logs",
        "Get console logs from the browser",
        _console_logs,
        optional={"limit": 50},
        properties={"limit": _LIMIT},
    ),
    ToolDescriptor(
        "browser_get_network_logs",
        "Get network request/response logs",
        _network_logs,
        optional={"limit": 50},
        properties={"limit": _LIMIT},
    ),
    ToolDescriptor(
        "browser_clear_logs",
        "Clear all console and network logs",
        _clear_logs,
    ),
    ToolDescriptor(
        "browser_click",
        "Click on an element using CSS selector",
        _click,
        required=("selector",),
        properties={"selector": {"type": "string", "description": "CSS selector for the element"}},
    ),
    ToolDescriptor(
        "browser_type",
        "Type text into an input element",
        _type,
        required=("selector", "text"),
        properties={
            "selector": {"type": "string", "description": "CSS selector for the input element"},
            "text": {"type": "string", "description": "Text to type"},
        },
    ),
    ToolDescriptor(
        "browser_execute",
        "Execute JavaScript code in the browser",
        _execute,
        required=("script",),
        properties={"script": {"type": "string", "description": "JavaScript code to execute"}},
    ),
    ToolDescriptor(
        "browser_screenshot",
        "Take a screenshot of the current page",
        _screenshot,
        optional={"fullPage": False},
        properties={"fullPage": {"type": "boolean", "description": "Capture full page or just viewport"}},
    ),
    ToolDescriptor(
        "browser_status",
        "Get browser connection status and basic info",
        _status,
    ),
)


# ══════════════════════════════════════════════════════════════════════════════
# Replies
# ══════════════════════════════════════════════════════════════════════════════

@dataclass
class ToolReply:
    """Uniform outcome of a tool call: a payload or an error code + message."""
    result: Any = None
    code: Optional[int] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code is None

    @classmethod
    def success(cls, result: Any) -> "ToolReply":
        return cls(result=result)

    @classmethod
    def failure(cls, code: int, message: str) -> "ToolReply":
        return cls(code=code, message=message)

    def content(self) -> List[Dict[str, Any]]:
        text = types.TextContent(type="text", text=to_text(self.result))
        return [text.model_dump(by_alias=True, exclude_none=True, mode="json")]


def jsonrpc_error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    error = types.ErrorData(code=code, message=message)
    return {"jsonrpc": "2.0", "id": request_id, "error": error.model_dump(exclude_none=True)}


def jsonrpc_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


# ══════════════════════════════════════════════════════════════════════════════
# Bridge
# ══════════════════════════════════════════════════════════════════════════════

class ToolBridge:
    """JSON-RPC front for the connector."""

    def __init__(self, connector: SessionConnector, gateway: CommandGateway,
                 tools: Tuple[ToolDescriptor, ...] = TOOLS):
        self.connector = connector
        self.gateway = gateway
        self._tools: Dict[str, ToolDescriptor] = {t.name: t for t in tools}

    def list_tools(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self._tools.values()]

    def lookup(self, name: str) -> ToolDescriptor:
        descriptor = self._tools.get(name)
        if descriptor is None:
            raise UnknownToolError(name)
        return descriptor

    def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ToolReply:
        """Run one tool call. Never raises."""
        try:
            descriptor = self.lookup(name)
            args = descriptor.resolve(arguments)
            result = descriptor.operation(self, args)
        except ConnectorError as e:
            print(f"[!] Tool {name} failed: {e}", file=sys.stderr)
            return ToolReply.failure(e.code, str(e))
        except (TypeError, ValueError) as e:
            print(f"[!] Tool {name} got invalid arguments: {e}", file=sys.stderr)
            return ToolReply.failure(types.INVALID_PARAMS, f"{name}: invalid arguments: {e}")
        except Exception as e:
            print(f"[!] Tool {name} crashed: {e!r}", file=sys.stderr)
            traceback.print_exc(file=sys.stderr)
            return ToolReply.failure(types.INTERNAL_ERROR, f"{name}: {e}")
        return ToolReply.success(result)

    def initialize(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        if requested not in SUPPORTED_PROTOCOL_VERSIONS:
            requested = types.LATEST_PROTOCOL_VERSION
        result = types.InitializeResult(
            protocolVersion=requested,
            capabilities=types.ServerCapabilities(tools=types.ToolsCapability(listChanged=False)),
            serverInfo=types.Implementation(name=SERVER_NAME, version=SERVER_VERSION),
        )
        return result.model_dump(by_alias=True, exclude_none=True, mode="json")

    def handle_message(self, message: Any) -> Optional[Dict[str, Any]]:
        """
        Handle one decoded JSON-RPC message.

        Returns:
            Response dict, or None for notifications
        """
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return jsonrpc_error(request_id, types.INVALID_REQUEST, "Invalid request")

        method = message["method"]
        request_id = message.get("id")
        is_notification = "id" not in message
        params = message.get("params") or {}

        try:
            if method == "initialize":
                result = self.initialize(params)
            elif method == "tools/list":
                result = {"tools": self.list_tools()}
            elif method == "tools/call":
                reply = self.call_tool(params.get("name", ""), params.get("arguments"))
                if not reply.ok:
                    return None if is_notification else jsonrpc_error(request_id, reply.code, reply.message)
                result = {"content": reply.content()}
            elif method == "ping":
                result = {}
            elif method.startswith("notifications/"):
                return None
            else:
                return None if is_notification else jsonrpc_error(
                    request_id, types.METHOD_NOT_FOUND, f"Method not found: {method}")
        except Exception as e:
            print(f"[!] {method} failed: {e!r}", file=sys.stderr)
            return None if is_notification else jsonrpc_error(request_id, types.INTERNAL_ERROR, str(e))

        if is_notification:
            return None
        return jsonrpc_result(request_id, result)
