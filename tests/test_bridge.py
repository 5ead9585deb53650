from __future__ import annotations

import json

import mcp.types as types

from browser_connector.bridge import TOOLS
from browser_connector.errors import MissingArgumentError
from browser_connector.session import EventKind


def _rpc(bridge, method, params=None, request_id=1):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return bridge.handle_message(message)


def _call(bridge, name, arguments=None):
    return _rpc(bridge, "tools/call", {"name": name, "arguments": arguments or {}})


def _payload(reply):
    return json.loads(reply["result"]["content"][0]["text"])


def test_tool_table() -> None:
    names = [t.name for t in TOOLS]
    assert names == [
        "browser_connect",
        "browser_navigate",
        "browser_get_page_info",
        "browser_get_console_logs",
        "browser_get_network_logs",
        "browser_clear_logs",
        "browser_click",
        "browser_type",
        "browser_execute",
        "browser_screenshot",
        "browser_status",
    ]


def test_tools_list(ctx) -> None:
    tools = {t["name"]: t for t in _rpc(ctx.bridge, "tools/list")["result"]["tools"]}
    assert len(tools) == 11
    navigate = tools["browser_navigate"]["inputSchema"]
    assert navigate["required"] == ["url"]
    assert navigate["properties"]["url"]["type"] == "string"
    logs = tools["browser_get_console_logs"]["inputSchema"]
    assert logs["properties"]["limit"]["default"] == 50
    assert "required" not in logs


def test_initialize(ctx) -> None:
    result = _rpc(ctx.bridge, "initialize", {"protocolVersion": "2024-11-05"})["result"]
    assert result["protocolVersion"] == "2024-11-05"
    assert result["serverInfo"]["name"] == "browser-connector"
    assert "tools" in result["capabilities"]

    result = _rpc(ctx.bridge, "initialize", {"protocolVersion": "1999-01-01"})["result"]
    assert result["protocolVersion"] == types.LATEST_PROTOCOL_VERSION


def test_notifications_get_no_reply(ctx) -> None:
    assert ctx.bridge.handle_message({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None
    assert ctx.bridge.handle_message({"jsonrpc": "2.0", "method": "tools/list"}) is None


def test_unknown_method_and_invalid_request(ctx) -> None:
    reply = _rpc(ctx.bridge, "resources/list")
    assert reply["error"]["code"] == types.METHOD_NOT_FOUND
    reply = ctx.bridge.handle_message({"jsonrpc": "2.0", "id": 3})
    assert reply["error"]["code"] == types.INVALID_REQUEST
    assert reply["id"] == 3
    assert _rpc(ctx.bridge, "ping") == {"jsonrpc": "2.0", "id": 1, "result": {}}


def test_unknown_tool_invokes_nothing(connected, pool) -> None:
    reply = _call(connected.bridge, "browser_fly", {"url": "https://a.test/"})
    assert reply["error"]["code"] == types.METHOD_NOT_FOUND
    assert reply["error"]["message"] == "Unknown tool: browser_fly"
    assert pool.last.calls == []


def test_missing_required_argument(connected, pool) -> None:
    reply = _call(connected.bridge, "browser_navigate", {})
    assert reply["error"]["code"] == types.INVALID_PARAMS
    assert "url" in reply["error"]["message"]
    assert pool.last.calls == []

    reply = _call(connected.bridge, "browser_type", {"selector": "#ok", "text": None})
    assert reply["error"]["code"] == types.INVALID_PARAMS


def test_resolve_applies_defaults() -> None:
    connect = next(t for t in TOOLS if t.name == "browser_connect")
    assert connect.resolve({}) == {"host": "localhost", "port": 9222}
    assert connect.resolve({"port": 9333}) == {"host": "localhost", "port": 9333}
    navigate = next(t for t in TOOLS if t.name == "browser_navigate")
    try:
        navigate.resolve({"url": None})
    except MissingArgumentError as e:
        assert e.argument == "url"
    else:
        raise AssertionError("expected MissingArgumentError")


def test_connect_tool_defaults(ctx, pool) -> None:
    payload = _payload(_call(ctx.bridge, "browser_connect"))
    assert payload["success"] is True
    assert pool.addresses == ["localhost:9222"]
    assert payload["url"] == "https://start.test/"


def test_connect_tool_failure(ctx, pool) -> None:
    pool.refuse.add("localhost:9500")
    reply = _call(ctx.bridge, "browser_connect", {"port": 9500})
    assert reply["error"]["code"] == types.INTERNAL_ERROR
    assert "localhost:9500" in reply["error"]["message"]


def test_not_connected_is_an_error_reply(ctx) -> None:
    reply = _call(ctx.bridge, "browser_navigate", {"url": "https://a.test/"})
    assert reply["error"]["code"] == types.INTERNAL_ERROR
    assert "not connected" in reply["error"]["message"]


def test_bad_argument_type(connected) -> None:
    reply = _call(connected.bridge, "browser_get_console_logs", {"limit": "lots"})
    assert reply["error"]["code"] == types.INVALID_PARAMS


def test_navigate_and_status(connected) -> None:
    payload = _payload(_call(connected.bridge, "browser_navigate", {"url": "https://b.test/"}))
    assert payload == {"success": True, "url": "https://b.test/"}
    status = _payload(_call(connected.bridge, "browser_status"))
    assert status["url"] == "https://b.test/"
    assert status["connected"] is True


def test_console_log_tool_includes_summary(connected) -> None:
    connected.connector.dispatch_event(EventKind.CONSOLE, {"type": "warn", "args": [{"value": "careful"}]})
    payload = _payload(_call(connected.bridge, "browser_get_console_logs"))
    assert payload["total"] == 1
    assert payload["logs"][0]["text"] == "careful"
    assert "WARN: careful" in payload["formatted"]


def test_network_log_tool_pairs_requests(connected) -> None:
    router = connected.connector
    router.dispatch_event(EventKind.REQUEST, {"request": {"method": "GET", "url": "https://a.test/"}})
    router.dispatch_event(EventKind.RESPONSE, {"response": {"status": 200, "statusText": "OK", "url": "https://a.test/"}})
    router.dispatch_event(EventKind.REQUEST, {"request": {"method": "POST", "url": "https://a.test/api"}})
    payload = _payload(_call(connected.bridge, "browser_get_network_logs", {"limit": 10}))
    assert payload["formatted"].splitlines() == [
        "GET https://a.test/ -> 200 OK",
        "POST https://a.test/api -> PENDING",
    ]


def test_screenshot_tool(connected) -> None:
    payload = _payload(_call(connected.bridge, "browser_screenshot"))
    assert payload["message"] == "Screenshot captured"
    assert payload["screenshot"].startswith("data:image/png;base64,")


def test_call_tool_never_raises(connected, pool) -> None:
    def explode(script, timeout=30):
        raise KeyError("unexpected")
    pool.last.eval = explode
    reply = connected.bridge.call_tool("browser_execute", {"script": "1"})
    assert not reply.ok
    assert reply.code == types.INTERNAL_ERROR
