from __future__ import annotations

from typing import Any, Callable, Dict, List

import pytest

from browser_connector.config import Settings
from browser_connector.context import ConnectorContext


class FakeCDP:
    """Records handlers so tests can emit CDP events by hand."""

    def __init__(self) -> None:
        self.callbacks: Dict[str, List[Callable[[Dict], None]]] = {}
        self.close_callbacks: List[Callable[[], None]] = []
        self.connected = True

    def on(self, event: str, callback: Callable[[Dict], None]) -> None:
        self.callbacks.setdefault(event, []).append(callback)

    def off(self, event=None, callback=None) -> None:
        if event is None:
            self.callbacks.clear()
        elif callback is None:
            self.callbacks.pop(event, None)
        elif callback in self.callbacks.get(event, []):
            self.callbacks[event].remove(callback)

    def on_close(self, callback: Callable[[], None]) -> None:
        self.close_callbacks.append(callback)

    def emit(self, event: str, params: Dict) -> None:
        for cb in list(self.callbacks.get(event, ())):
            cb(params)

    def drop(self) -> None:
        self.connected = False
        for cb in list(self.close_callbacks):
            cb()


class FakeBrowser:
    """Stand-in for Browser with scripted page behaviour."""

    def __init__(self, address: str = "localhost:9222", url: str = "about:blank") -> None:
        self.address = address
        self.cdp = FakeCDP()
        self.current_url = url
        self.closed = False
        self.network_enabled = False
        self.init_scripts: List[str] = []
        self.calls: List[tuple] = []
        self.selectors = {"#ok", "input[name=q]"}
        self.eval_result: Any = None
        self.eval_error: Exception | None = None
        self.goto_error: Exception | None = None
        self.close_error: Exception | None = None
        self.image = b"\x89PNG fake"

    @property
    def url(self) -> str:
        return self.current_url

    def network_enable(self) -> "FakeBrowser":
        self.network_enabled = True
        return self

    def add_init_script(self, script: str, run_now: bool = True) -> str:
        self.init_scripts.append(script)
        return "1"

    def goto(self, url: str, timeout: float = 30) -> str:
        self.calls.append(("goto", url))
        if self.goto_error is not None:
            raise self.goto_error
        self.current_url = url
        self.cdp.emit("Page.frameNavigated", {"frame": {"id": "main", "url": url}})
        return url

    def click(self, selector: str) -> bool:
        self.calls.append(("click", selector))
        return selector in self.selectors

    def type(self, selector: str, text: str, clear: bool = False) -> bool:
        self.calls.append(("type", selector, text))
        return selector in self.selectors

    def eval(self, script: str, timeout: float = 30) -> Any:
        self.calls.append(("eval", script))
        if self.eval_error is not None:
            raise self.eval_error
        return self.eval_result

    def screenshot(self, full_page: bool = False, format: str = "png", quality: int = 80) -> bytes:
        self.calls.append(("screenshot", full_page))
        return self.image

    def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class Recorder:
    """Subscriber that keeps every message it receives."""

    def __init__(self, is_open: bool = True, fail: bool = False) -> None:
        self._open = is_open
        self.fail = fail
        self.messages: List[str] = []

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("peer went away")
        self.messages.append(data)


class BrowserPool:
    """Browser factory that records what it built and which addresses refuse."""

    def __init__(self) -> None:
        self.built: List[FakeBrowser] = []
        self.addresses: List[str] = []
        self.refuse: set = set()

    def __call__(self, address: str) -> FakeBrowser:
        self.addresses.append(address)
        if address in self.refuse:
            raise ConnectionRefusedError(f"connection refused: {address}")
        browser = FakeBrowser(address, url="https://start.test/")
        self.built.append(browser)
        return browser

    @property
    def last(self) -> FakeBrowser:
        return self.built[-1]


@pytest.fixture
def pool() -> BrowserPool:
    return BrowserPool()


@pytest.fixture
def ctx(pool: BrowserPool) -> ConnectorContext:
    return ConnectorContext(Settings(log_capacity=10, log_retain=8), browser_factory=pool)


@pytest.fixture
def connected(ctx: ConnectorContext, pool: BrowserPool) -> ConnectorContext:
    ctx.connector.connect("localhost", 9222)
    return ctx
