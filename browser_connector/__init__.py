"""
Browser Connector - Chrome DevTools bridge for tool-calling clients

Attaches to a Chrome running with remote debugging, captures console and
network activity into bounded buffers, streams it to WebSocket observers,
and exposes page operations over HTTP and as MCP tools.

Quick Start:
    # Start Chrome with remote debugging
    google-chrome --remote-debugging-port=9222

    # HTTP + WebSocket + JSON-RPC on port 3001
    browser-connector

    # MCP over stdio
    browser-connector --stdio

    # As Python library
    from browser_connector import ConnectorContext

    ctx = ConnectorContext()
    ctx.connector.connect("localhost", 9222)
    ctx.gateway.navigate("https://example.com")
    print(ctx.gateway.get_console_logs(10))
"""

from .browser import Browser, CDP, CDPError, JavaScriptError
from .broadcast import Broadcaster, Subscriber
from .bridge import TOOLS, ToolBridge, ToolDescriptor, ToolReply
from .collector import ConsoleEntry, ErrorEntry, LogBuffer, LogEntry, RequestEntry, ResponseEntry
from .config import Settings
from .context import ConnectorContext
from .errors import (
    CaptureError,
    ConnectError,
    ConnectorError,
    DisconnectError,
    ElementNotFoundError,
    MissingArgumentError,
    NavigationError,
    NotConnectedError,
    ScriptError,
    UnknownToolError,
)
from .gateway import CommandGateway
from .server import create_app, run, serve_stdio
from .session import EventKind, Session, SessionConnector, SessionInfo, SessionState

__version__ = "1.0.0"
__all__ = [
    # Upstream
    "Browser",
    "CDP",
    "CDPError",
    "JavaScriptError",
    # Core
    "Session",
    "SessionState",
    "SessionInfo",
    "SessionConnector",
    "EventKind",
    "CommandGateway",
    "ToolBridge",
    "ToolDescriptor",
    "ToolReply",
    "TOOLS",
    # Logs
    "LogBuffer",
    "LogEntry",
    "ConsoleEntry",
    "ErrorEntry",
    "RequestEntry",
    "ResponseEntry",
    # Broadcast
    "Broadcaster",
    "Subscriber",
    # Server
    "ConnectorContext",
    "Settings",
    "create_app",
    "run",
    "serve_stdio",
    # Errors
    "ConnectorError",
    "NotConnectedError",
    "ConnectError",
    "DisconnectError",
    "NavigationError",
    "ElementNotFoundError",
    "ScriptError",
    "CaptureError",
    "UnknownToolError",
    "MissingArgumentError",
]
