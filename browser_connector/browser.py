"""
Browser automation via Chrome DevTools Protocol.

Attaches to a Chrome started with --remote-debugging-port. Events are
read on a background thread and delivered to callbacks in arrival order.

Usage:
    from browser_connector import Browser

    b = Browser("localhost:9222")
    b.cdp.on("Runtime.consoleAPICalled", print)
    b.goto("https://example.com")
    print(b.url)
    b.close()
"""

import json
import queue
import sys
import base64
import threading
from typing import Any, Callable, Dict, List, Optional

import websocket
import requests


class CDPError(RuntimeError):
    """Command rejected by the browser."""

    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        message = error.get("message", error) if isinstance(error, dict) else error
        super().__init__(f"CDP {method}: {message}")


class JavaScriptError(RuntimeError):
    """Script threw inside the page."""


# Failures the page driver can raise for a single command.
UPSTREAM_ERRORS = (RuntimeError, OSError, websocket.WebSocketException)

_CLOSED = object()


# ═══════════════════════════════════════════════════════════════════
# CDP Transport
# ═══════════════════════════════════════════════════════════════════

def select_page(pages: List[Dict]) -> Optional[Dict]:
    """Pick the first regular page target, skipping extensions and devtools."""
    for p in pages:
        url = p.get("url", "")
        if p.get("type") != "page":
            continue
        if url.startswith("chrome-extension://") or url.startswith("devtools://"):
            continue
        return p
    return None


class CDP:
    """Chrome DevTools Protocol connection to one page."""

    def __init__(self, address: str = "localhost:9222", timeout: float = 60, connect_timeout: float = 10):
        self.address = address
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.target: Optional[Dict] = None
        self._ws: Optional[websocket.WebSocket] = None
        self._id = 0
        self._lock = threading.Lock()
        self._callbacks: Dict[str, List[Callable[[Dict], None]]] = {}
        self._close_callbacks: List[Callable[[], None]] = []
        self._pending: Dict[int, "queue.Queue"] = {}
        self._reader: Optional[threading.Thread] = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def connect(self) -> "CDP":
        """Attach to an open page, creating one if the browser has none."""
        if self._ws:
            return self

        pages = requests.get(f"http://{self.address}/json/list", timeout=self.connect_timeout).json()
        page = select_page(pages)
        if not page:
            page = self.new_page()

        ws_url = page.get("webSocketDebuggerUrl")
        if not ws_url:
            raise ConnectionError(f"Page {page.get('id', '?')} has no webSocketDebuggerUrl (DevTools already attached?)")

        self.target = page
        self._closing = False
        self._ws = websocket.create_connection(ws_url, timeout=self.connect_timeout, suppress_origin=True)
        self._ws.settimeout(None)
        self._reader = threading.Thread(target=self._read_loop, name=f"cdp-reader-{self.address}", daemon=True)
        self._reader.start()
        return self

    def new_page(self, url: str = "about:blank") -> Dict:
        """Create a new page target."""
        return requests.put(f"http://{self.address}/json/new?{url}", timeout=self.connect_timeout).json()

    def send(self, method: str, params: Optional[Dict] = None, timeout: Optional[float] = None) -> Dict:
        """Send CDP command and wait for its result."""
        ws = self._ws
        if ws is None:
            raise ConnectionError("CDP connection is not open")

        waiter: "queue.Queue" = queue.Queue(maxsize=1)
        with self._lock:
            self._id += 1
            msg_id = self._id
            self._pending[msg_id] = waiter

        msg = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        try:
            ws.send(json.dumps(msg))
        except (websocket.WebSocketException, OSError) as e:
            self._pending.pop(msg_id, None)
            raise ConnectionError(f"CDP {method}: send failed: {e}") from e

        wait = self.timeout if timeout is None else timeout
        try:
            result = waiter.get(timeout=wait)
        except queue.Empty:
            self._pending.pop(msg_id, None)
            raise TimeoutError(f"CDP {method}: no response within {wait}s") from None

        if result is _CLOSED:
            raise ConnectionError(f"CDP {method}: connection closed")
        if "error" in result:
            raise CDPError(method, result["error"])
        return result.get("result", {})

    def on(self, event: str, callback: Callable[[Dict], None]):
        """Subscribe to CDP event."""
        with self._lock:
            self._callbacks.setdefault(event, []).append(callback)

    def off(self, event: Optional[str] = None, callback: Optional[Callable[[Dict], None]] = None):
        """Remove one callback, every callback of an event, or all of them."""
        with self._lock:
            if event is None:
                self._callbacks.clear()
            elif callback is None:
                self._callbacks.pop(event, None)
            elif callback in self._callbacks.get(event, []):
                self._callbacks[event].remove(callback)

    def on_close(self, callback: Callable[[], None]):
        """Called once if the connection drops without close()."""
        self._close_callbacks.append(callback)

    def _read_loop(self):
        ws = self._ws
        while True:
            try:
                raw = ws.recv()
            except (websocket.WebSocketException, OSError):
                break
            if not raw:
                break
            try:
                msg = json.loads(raw)
            except ValueError:
                continue

            if "method" in msg:
                self._dispatch(msg["method"], msg.get("params", {}))
            elif "id" in msg:
                waiter = self._pending.pop(msg["id"], None)
                if waiter is not None:
                    waiter.put(msg)

        self._ws = None
        for waiter in list(self._pending.values()):
            waiter.put(_CLOSED)
        self._pending.clear()

        if not self._closing:
            for cb in list(self._close_callbacks):
                try:
                    cb()
                except Exception as e:
                    print(f"[!] CDP close callback failed: {e!r}", file=sys.stderr)

    def _dispatch(self, event: str, params: Dict):
        with self._lock:
            callbacks = list(self._callbacks.get(event, ()))
        for cb in callbacks:
            try:
                cb(params)
            except Exception as e:
                print(f"[!] CDP {event} callback failed: {e!r}", file=sys.stderr)

    def close(self):
        """Close connection."""
        self._closing = True
        ws, self._ws = self._ws, None
        if ws:
            try:
                ws.close()
            finally:
                reader = self._reader
                if reader is not None and reader is not threading.current_thread():
                    reader.join(timeout=2)
        self._reader = None
        self.off()


# ═══════════════════════════════════════════════════════════════════
# Browser
# ═══════════════════════════════════════════════════════════════════

class Browser:
    """
    Page-level automation over one CDP connection.

    Provides navigation, script evaluation, DOM input, screenshots and
    init scripts. Every method raises on failure (CDPError,
    JavaScriptError, TimeoutError, ConnectionError).
    """

    def __init__(self, address: str = "localhost:9222", timeout: float = 60, connect_timeout: float = 10):
        self.cdp = CDP(address, timeout=timeout, connect_timeout=connect_timeout)
        self.cdp.connect()
        try:
            self.cdp.send("Runtime.enable")
            self.cdp.send("Page.enable")
        except Exception:
            self.cdp.close()
            raise

    def close(self):
        self.cdp.close()

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.close()

    # ─── JavaScript ─────────────────────────────────────────────────

    def eval(self, script: str, timeout: float = 30) -> Any:
        """Execute JavaScript and return its JSON-serializable result."""
        result = self.cdp.send("Runtime.evaluate", {
            "expression": script,
            "awaitPromise": True,
            "timeout": int(timeout * 1000),
            "returnByValue": True
        }, timeout=timeout + 5)

        details = result.get("exceptionDetails")
        if details:
            exception = details.get("exception", {})
            raise JavaScriptError(exception.get("description") or details.get("text") or "Script error")
        return result.get("result", {}).get("value")

    def add_init_script(self, script: str, run_now: bool = True) -> str:
        """Evaluate script in every new document (and the current one)."""
        result = self.cdp.send("Page.addScriptToEvaluateOnNewDocument", {"source": script})
        if run_now:
            self.eval(script)
        return result.get("identifier", "")

    # ─── Navigation ─────────────────────────────────────────────────

    def goto(self, url: str, timeout: float = 30) -> str:
        """Navigate to URL and wait for the load event. Returns final URL."""
        loaded = threading.Event()

        def on_load(_params):
            loaded.set()

        self.cdp.on("Page.loadEventFired", on_load)
        try:
            result = self.cdp.send("Page.navigate", {"url": url}, timeout=timeout)
            if result.get("errorText"):
                raise CDPError("Page.navigate", result["errorText"])
            # Same-document navigations have no loader and fire no load event
            if result.get("loaderId") and not loaded.wait(timeout):
                raise TimeoutError(f"Page did not finish loading within {timeout}s")
        finally:
            self.cdp.off("Page.loadEventFired", on_load)
        return self.url

    @property
    def url(self) -> str:
        return self.eval("location.href") or ""

    # ─── Input ──────────────────────────────────────────────────────

    def click(self, selector: str) -> bool:
        """Click element. False if nothing matches."""
        return bool(self.eval(f"""
            (() => {{
                const el = document.querySelector({json.dumps(selector)});
                if (!el) return false;
                el.scrollIntoView({{block: 'center', inline: 'center'}});
                el.click();
                return true;
            }})()
        """))

    def type(self, selector: str, text: str, clear: bool = False) -> bool:
        """Type into input element. False if nothing matches."""
        return bool(self.eval(f"""
            (() => {{
                const el = document.querySelector({json.dumps(selector)});
                if (!el) return false;
                el.focus();
                if ({json.dumps(clear)}) el.value = '';
                el.value += {json.dumps(text)};
                el.dispatchEvent(new InputEvent('input', {{bubbles: true, data: {json.dumps(text)}}}));
                el.dispatchEvent(new Event('change', {{bubbles: true}}));
                return true;
            }})()
        """))

    # ─── Screenshots ────────────────────────────────────────────────

    def screenshot(self, full_page: bool = False, format: str = "png", quality: int = 80) -> bytes:
        """Take screenshot of the viewport or the full page."""
        params: Dict[str, Any] = {"format": format}
        if format == "jpeg":
            params["quality"] = quality

        if full_page:
            metrics = self.cdp.send("Page.getLayoutMetrics")
            size = metrics.get("cssContentSize") or metrics.get("contentSize")
            if not size:
                raise CDPError("Page.getLayoutMetrics", "no content size reported")
            params["clip"] = {
                "x": 0, "y": 0,
                "width": size["width"],
                "height": size["height"],
                "scale": 1
            }
            params["captureBeyondViewport"] = True

        result = self.cdp.send("Page.captureScreenshot", params)
        data = result.get("data")
        if not data:
            raise CDPError("Page.captureScreenshot", "empty image data")
        return base64.b64decode(data)

    # ─── Network ────────────────────────────────────────────────────

    def network_enable(self) -> "Browser":
        """Enable network event reporting."""
        self.cdp.send("Network.enable")
        return self
