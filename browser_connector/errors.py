"""
Connector Errors

Typed, caller-recoverable failures. Each carries the JSON-RPC error code
used by the tool bridge and the HTTP status used by the control surface.
"""

from typing import Any, Optional, Tuple

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND


def _cause_text(cause: Any) -> str:
    if isinstance(cause, BaseException):
        return str(cause) or type(cause).__name__
    return str(cause)


class ConnectorError(Exception):
    """Base class for every failure surfaced by the connector."""
    code: int = INTERNAL_ERROR
    http_status: int = 500
    operation: str = ""


class NotConnectedError(ConnectorError):
    """An operation needs a connected browser session."""
    http_status = 409

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation}: browser is not connected (call browser_connect first)")


class ConnectError(ConnectorError):
    """Attaching to a debugging endpoint failed."""
    http_status = 502
    operation = "connect"

    def __init__(self, endpoint: Optional[Tuple[str, int]], cause: Any):
        self.endpoint = endpoint
        self.cause = _cause_text(cause)
        where = f"{endpoint[0]}:{endpoint[1]}" if endpoint else "auto-discovery"
        super().__init__(f"connect: {where}: {self.cause}")


class DisconnectError(ConnectorError):
    operation = "disconnect"

    def __init__(self, cause: Any):
        self.cause = _cause_text(cause)
        super().__init__(f"disconnect: {self.cause}")


class NavigationError(ConnectorError):
    operation = "navigate"

    def __init__(self, url: str, cause: Any):
        self.url = url
        self.cause = _cause_text(cause)
        super().__init__(f"navigate: {url}: {self.cause}")


class ElementNotFoundError(ConnectorError):
    http_status = 404

    def __init__(self, selector: str, operation: str = "click", cause: Any = None):
        self.selector = selector
        self.operation = operation
        self.cause = _cause_text(cause) if cause is not None else None
        message = f"{operation}: no element matches selector {selector!r}"
        if self.cause:
            message += f" ({self.cause})"
        super().__init__(message)


class ScriptError(ConnectorError):
    operation = "execute"

    def __init__(self, cause: Any, operation: str = "execute"):
        self.cause = _cause_text(cause)
        self.operation = operation
        super().__init__(f"{operation}: {self.cause}")


class CaptureError(ConnectorError):
    operation = "screenshot"

    def __init__(self, cause: Any):
        self.cause = _cause_text(cause)
        super().__init__(f"screenshot: {self.cause}")


class UnknownToolError(ConnectorError):
    code = METHOD_NOT_FOUND
    http_status = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class MissingArgumentError(ConnectorError):
    code = INVALID_PARAMS
    http_status = 400

    def __init__(self, tool: str, argument: str):
        self.tool = tool
        self.argument = argument
        self.operation = tool
        super().__init__(f"{tool}: missing required argument {argument!r}")
