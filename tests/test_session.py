from __future__ import annotations

import json
import socket

import pytest

from browser_connector.broadcast import Broadcaster
from browser_connector.collector import LogBuffer
from browser_connector.errors import ConnectError, DisconnectError, NotConnectedError
from browser_connector.session import (
    ERROR_TRACKER,
    EventKind,
    Session,
    SessionConnector,
    SessionState,
)

from conftest import Recorder


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def _messages(recorder: Recorder):
    return [json.loads(m) for m in recorder.messages]


CONSOLE = {"type": "log", "args": [{"type": "string", "value": "hello"}]}
EXCEPTION = {"exceptionDetails": {"text": "Uncaught", "exception": {"description": "Error: boom"}}}
REQUEST = {"request": {"method": "GET", "url": "https://a.test/", "headers": {}}}
RESPONSE = {"response": {"status": 200, "statusText": "OK", "url": "https://a.test/", "headers": {}}}


# ─── Lifecycle ──────────────────────────────────────────────────────

def test_connect_sets_session_and_attaches(ctx, pool) -> None:
    watcher = Recorder()
    ctx.broadcaster.subscribe(watcher)

    info = ctx.connector.connect("localhost", 9222)

    assert info.to_dict() == {"host": "localhost", "port": 9222, "url": "https://start.test/"}
    assert ctx.session.state is SessionState.CONNECTED
    assert ctx.session.target_url == "https://start.test/"
    assert ctx.session.endpoint == ("localhost", 9222)
    browser = pool.last
    assert browser.address == "localhost:9222"
    assert browser.network_enabled
    assert browser.init_scripts == [ERROR_TRACKER]
    assert "Runtime.consoleAPICalled" in browser.cdp.callbacks
    assert _messages(watcher) == [{"type": "connected", "url": "https://start.test/"}]


def test_connect_failure_leaves_session_disconnected(ctx, pool) -> None:
    pool.refuse.add("localhost:9999")

    with pytest.raises(ConnectError) as exc:
        ctx.connector.connect("localhost", 9999)

    assert exc.value.endpoint == ("localhost", 9999)
    assert "localhost:9999" in str(exc.value)
    assert ctx.session.state is SessionState.DISCONNECTED
    assert ctx.session.endpoint is None
    assert ctx.connector.browser is None


def test_reconnect_closes_previous_browser(connected, pool) -> None:
    first = pool.last
    connected.connector.connect("localhost", 9223)
    assert first.closed
    assert connected.connector.browser is pool.last
    assert connected.session.endpoint == ("localhost", 9223)

    # Late events from the old connection are dropped
    first.cdp.emit("Runtime.consoleAPICalled", CONSOLE)
    assert len(connected.console_logs) == 0


def test_disconnect_is_idempotent(connected, pool) -> None:
    watcher = Recorder()
    connected.broadcaster.subscribe(watcher)

    connected.connector.disconnect()
    connected.connector.disconnect()

    assert pool.last.closed
    assert connected.session.state is SessionState.DISCONNECTED
    assert connected.session.target_url is None
    assert _messages(watcher) == [{"type": "disconnected"}]


def test_disconnect_close_failure_still_resets(connected, pool) -> None:
    pool.last.close_error = OSError("socket already gone")
    with pytest.raises(DisconnectError):
        connected.connector.disconnect()
    assert connected.session.state is SessionState.DISCONNECTED
    assert connected.connector.browser is None


def test_upstream_close_marks_disconnected(connected, pool) -> None:
    watcher = Recorder()
    connected.broadcaster.subscribe(watcher)

    pool.last.cdp.drop()

    assert not connected.session.connected
    with pytest.raises(NotConnectedError):
        connected.connector.require_browser("navigate")
    assert _messages(watcher) == [{"type": "disconnected", "reason": "connection lost"}]


# ─── Auto-discovery ─────────────────────────────────────────────────

def test_auto_discover_uses_first_reachable_port(ctx, pool) -> None:
    pool.refuse.add("localhost:9222")
    info = ctx.connector.auto_discover([9222, 9223, 9224])
    assert info.port == 9223
    assert pool.addresses == ["localhost:9222", "localhost:9223"]


def test_auto_discover_all_refused(ctx, pool) -> None:
    pool.refuse.update({"localhost:9222", "localhost:9223"})
    with pytest.raises(ConnectError) as exc:
        ctx.connector.auto_discover([9222, 9223])
    assert exc.value.endpoint is None
    assert ctx.session.state is SessionState.DISCONNECTED


def test_auto_discover_against_closed_ports() -> None:
    connector = SessionConnector(
        Session(), LogBuffer(), LogBuffer(), Broadcaster(), connect_timeout=1, command_timeout=1,
    )
    with pytest.raises(ConnectError) as exc:
        connector.auto_discover([_free_port(), _free_port()], host="127.0.0.1")
    assert exc.value.endpoint is None
    assert not connector.session.connected


def test_auto_discover_spent_budget_tries_nothing(ctx, pool) -> None:
    with pytest.raises(ConnectError):
        ctx.connector.auto_discover([9222, 9223], budget=0)
    assert pool.addresses == []


# ─── Event routing ──────────────────────────────────────────────────

class BufferCheckingRecorder(Recorder):
    """Asserts the routed entry is already buffered when its broadcast arrives."""

    def __init__(self, ctx) -> None:
        super().__init__()
        self.ctx = ctx
        self.seen_lengths = []

    def send(self, data: str) -> None:
        super().send(data)
        self.seen_lengths.append((len(self.ctx.console_logs), len(self.ctx.network_logs)))


def test_events_are_buffered_before_broadcast(connected, pool) -> None:
    watcher = BufferCheckingRecorder(connected)
    connected.broadcaster.subscribe(watcher)
    cdp = pool.last.cdp

    cdp.emit("Runtime.consoleAPICalled", CONSOLE)
    cdp.emit("Network.requestWillBeSent", REQUEST)
    cdp.emit("Runtime.exceptionThrown", EXCEPTION)
    cdp.emit("Network.responseReceived", RESPONSE)

    assert watcher.seen_lengths == [(1, 0), (1, 1), (2, 1), (2, 2)]
    kinds = [(m["type"], (m.get("log") or m.get("error"))["type"]) for m in _messages(watcher)]
    assert kinds == [("console", "log"), ("request", "request"), ("error", "pageerror"), ("response", "response")]


def test_each_event_yields_exactly_one_entry(connected) -> None:
    router = connected.connector
    router.dispatch_event(EventKind.CONSOLE, CONSOLE)
    router.dispatch_event(EventKind.PAGE_ERROR, EXCEPTION)
    router.dispatch_event(EventKind.REQUEST, REQUEST)
    router.dispatch_event(EventKind.RESPONSE, RESPONSE)
    assert len(connected.console_logs) == 2
    assert len(connected.network_logs) == 2
    assert [e.to_dict()["type"] for e in connected.console_logs.tail(10)] == ["log", "pageerror"]


def test_navigation_updates_url_without_entry(connected, pool) -> None:
    watcher = Recorder()
    connected.broadcaster.subscribe(watcher)
    cdp = pool.last.cdp

    cdp.emit("Page.frameNavigated", {"frame": {"id": "child", "parentId": "main", "url": "https://ads.test/"}})
    cdp.emit("Page.frameNavigated", {"frame": {"id": "main", "url": "https://b.test/"}})

    assert connected.session.target_url == "https://b.test/"
    assert _messages(watcher) == [{"type": "navigation", "url": "https://b.test/"}]
    assert len(connected.console_logs) == 0
    assert len(connected.network_logs) == 0


def test_status_snapshot(connected) -> None:
    connected.connector.dispatch_event(EventKind.CONSOLE, CONSOLE)
    status = connected.connector.status()
    assert status["connected"] is True
    assert status["state"] == "connected"
    assert status["url"] == "https://start.test/"
    assert status["endpoint"] == "localhost:9222"
    assert status["consoleLogs"] == 1
    assert status["networkLogs"] == 0
