"""
Browser Session Connector

Owns the single automation session: connect, disconnect, auto-discovery,
and the router that turns CDP events into log entries and broadcasts.

Design: the Session value is created by the caller and passed in.
"""

import contextlib
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .broadcast import Broadcaster
from .browser import Browser
from .collector import ConsoleEntry, ErrorEntry, LogBuffer, LogEntry, RequestEntry, ResponseEntry
from .errors import ConnectError, DisconnectError, NotConnectedError


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class Session:
    """State of the one permitted automation session."""
    state: SessionState = SessionState.DISCONNECTED
    target_url: Optional[str] = None
    endpoint: Optional[Tuple[str, int]] = None

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def reset(self):
        self.state = SessionState.DISCONNECTED
        self.target_url = None
        self.endpoint = None


@dataclass(frozen=True)
class SessionInfo:
    host: str
    port: int
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port, "url": self.url}


class EventKind(Enum):
    CONSOLE = "console"
    PAGE_ERROR = "error"
    REQUEST = "request"
    RESPONSE = "response"
    NAVIGATION = "navigation"


# CDP event name -> routed kind
CDP_EVENTS: Dict[str, EventKind] = {
    "Runtime.consoleAPICalled": EventKind.CONSOLE,
    "Runtime.exceptionThrown": EventKind.PAGE_ERROR,
    "Network.requestWillBeSent": EventKind.REQUEST,
    "Network.responseReceived": EventKind.RESPONSE,
    "Page.frameNavigated": EventKind.NAVIGATION,
}

ERRORS_GLOBAL = "__connectorErrors__"

# Collects uncaught errors and rejections for page-info
ERROR_TRACKER = """
(() => {
    if (window.%(name)s) return;
    window.%(name)s = [];
    window.addEventListener('error', (event) => {
        window.%(name)s.push({
            timestamp: Date.now(),
            message: event.message,
            filename: event.filename,
            lineno: event.lineno,
            colno: event.colno,
            stack: event.error && event.error.stack
        });
    });
    window.addEventListener('unhandledrejection', (event) => {
        window.%(name)s.push({
            timestamp: Date.now(),
            type: 'unhandledrejection',
            reason: event.reason && event.reason.toString(),
            stack: event.reason && event.reason.stack
        });
    });
})()
""" % {"name": ERRORS_GLOBAL}


BrowserFactory = Callable[[str], Browser]


class SessionConnector:
    """
    Lifecycle of the upstream browser session.

    Events are routed on the CDP reader thread, one at a time in arrival
    order; each entry is buffered before it is broadcast.
    """

    def __init__(
        self,
        session: Session,
        console_logs: LogBuffer,
        network_logs: LogBuffer,
        broadcaster: Broadcaster,
        browser_factory: Optional[BrowserFactory] = None,
        connect_timeout: float = 10,
        command_timeout: float = 60,
    ):
        self.session = session
        self.console_logs = console_logs
        self.network_logs = network_logs
        self.broadcaster = broadcaster
        self._factory = browser_factory or (
            lambda address: Browser(address, timeout=command_timeout, connect_timeout=connect_timeout)
        )
        self._browser: Optional[Browser] = None
        self._lock = threading.RLock()

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    def require_browser(self, operation: str) -> Browser:
        """Current browser, or NotConnectedError."""
        browser = self._browser
        if browser is None or not self.session.connected:
            raise NotConnectedError(operation)
        return browser

    # ─── Lifecycle ──────────────────────────────────────────────────

    def connect(self, host: str = "localhost", port: int = 9222) -> SessionInfo:
        """Attach to the debugging endpoint at host:port."""
        with self._lock:
            if self.session.state is not SessionState.DISCONNECTED:
                try:
                    self.disconnect()
                except DisconnectError as e:
                    print(f"[!] {e}", file=sys.stderr)

            self.session.state = SessionState.CONNECTING
            self.session.endpoint = (host, port)
            print(f"[*] Connecting to browser at {host}:{port}...", file=sys.stderr)

            browser = None
            try:
                browser = self._factory(f"{host}:{port}")
                self._browser = browser
                self._attach(browser)
                url = browser.url
            except Exception as e:
                self._browser = None
                self.session.reset()
                if browser is not None:
                    with contextlib.suppress(Exception):
                        browser.close()
                raise ConnectError((host, port), e) from e

            self.session.state = SessionState.CONNECTED
            self.session.target_url = url

        print(f"[*] Browser connected, active page: {url}", file=sys.stderr)
        self.broadcaster.publish({"type": "connected", "url": url})
        return SessionInfo(host, port, url)

    def _attach(self, browser: Browser):
        for method, kind in CDP_EVENTS.items():
            browser.cdp.on(method, self._make_handler(browser, kind))
        browser.cdp.on_close(lambda: self._on_upstream_closed(browser))
        browser.network_enable()
        browser.add_init_script(ERROR_TRACKER)

    def _make_handler(self, browser: Browser, kind: EventKind) -> Callable[[Dict], None]:
        def handler(params: Dict):
            # Late events from a replaced connection are dropped
            if browser is self._browser:
                self.dispatch_event(kind, params)
        return handler

    def disconnect(self):
        """Detach from the browser. No-op when already disconnected."""
        with self._lock:
            browser = self._browser
            was_active = self.session.state is not SessionState.DISCONNECTED
            self._browser = None
            self.session.reset()
            if browser is None:
                return
            try:
                browser.close()
            except Exception as e:
                raise DisconnectError(e) from e
            finally:
                if was_active:
                    print("[*] Browser disconnected", file=sys.stderr)
                    self.broadcaster.publish({"type": "disconnected"})

    def _on_upstream_closed(self, browser: Browser):
        with self._lock:
            if browser is not self._browser:
                return
            self._browser = None
            self.session.reset()
        print("[!] Browser connection lost", file=sys.stderr)
        self.broadcaster.publish({"type": "disconnected", "reason": "connection lost"})

    def auto_discover(
        self,
        ports: Iterable[int],
        host: str = "localhost",
        budget: Optional[float] = None,
    ) -> SessionInfo:
        """
        Connect to the first reachable port, trying them in order.

        Args:
            ports: Candidate debugging ports, most likely first
            host: Browser host
            budget: Optional total seconds for the whole discovery

        Raises:
            ConnectError: with endpoint=None when no port answered
        """
        print("[*] Looking for a browser with remote debugging...", file=sys.stderr)
        started = time.monotonic()
        for port in ports:
            if budget is not None and time.monotonic() - started >= budget:
                print(f"[!] Discovery budget of {budget}s spent, skipping remaining ports", file=sys.stderr)
                break
            try:
                info = self.connect(host, port)
            except ConnectError as e:
                print(f"[!] Port {port}: {e.cause}", file=sys.stderr)
                continue
            print(f"[*] Browser found on port {port}", file=sys.stderr)
            return info
        raise ConnectError(None, "no reachable endpoint")

    # ─── Event routing ──────────────────────────────────────────────

    def dispatch_event(self, kind: EventKind, params: Dict) -> Optional[LogEntry]:
        """
        Route one upstream event.

        Console, error, request and response events become exactly one
        buffered entry, then a broadcast. Main-frame navigation updates
        the session URL and is broadcast without an entry.
        """
        if kind is EventKind.CONSOLE:
            entry = self.console_logs.append(ConsoleEntry.from_cdp(params))
            message = {"type": "console", "log": entry.to_dict()}
        elif kind is EventKind.PAGE_ERROR:
            entry = self.console_logs.append(ErrorEntry.from_cdp(params))
            message = {"type": "error", "error": entry.to_dict()}
            print(f"[!] Page error: {entry.message}", file=sys.stderr)
        elif kind is EventKind.REQUEST:
            entry = self.network_logs.append(RequestEntry.from_cdp(params))
            message = {"type": "request", "log": entry.to_dict()}
        elif kind is EventKind.RESPONSE:
            entry = self.network_logs.append(ResponseEntry.from_cdp(params))
            message = {"type": "response", "log": entry.to_dict()}
        elif kind is EventKind.NAVIGATION:
            frame = params.get("frame", {})
            if frame.get("parentId"):
                return None
            url = frame.get("url", "")
            self.session.target_url = url
            print(f"[*] Navigated: {url}", file=sys.stderr)
            self.broadcaster.publish({"type": "navigation", "url": url})
            return None
        else:
            raise ValueError(f"Unhandled event kind: {kind}")

        self.broadcaster.publish(message)
        return entry

    # ─── Status ─────────────────────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        """Read-only snapshot of session and buffers."""
        session = self.session
        endpoint = session.endpoint
        return {
            "connected": session.connected,
            "state": session.state.value,
            "browser": self._browser is not None,
            "page": self._browser is not None and session.connected,
            "url": session.target_url,
            "endpoint": f"{endpoint[0]}:{endpoint[1]}" if endpoint else None,
            "consoleLogs": len(self.console_logs),
            "networkLogs": len(self.network_logs),
            "subscribers": len(self.broadcaster),
        }
