"""
Command Gateway

Imperative page operations against the connected session. Each checks
the connection first, runs one at a time per session, and turns
upstream failures into the operation's own error type.
"""

import base64
from contextlib import contextmanager
from typing import Any, Dict, Iterator
import threading

from .browser import Browser, UPSTREAM_ERRORS
from .errors import CaptureError, ElementNotFoundError, NavigationError, NotConnectedError, ScriptError
from .session import ERRORS_GLOBAL, SessionConnector


PAGE_INFO_SCRIPT = """
(() => ({
    title: document.title,
    url: window.location.href,
    userAgent: navigator.userAgent,
    cookies: document.cookie,
    localStorage: (() => {
        try {
            return Object.keys(localStorage).reduce((acc, key) => {
                acc[key] = localStorage.getItem(key);
                return acc;
            }, {});
        } catch (e) {
            return {};
        }
    })(),
    errors: window.%s || []
}))()
""" % ERRORS_GLOBAL


class CommandGateway:
    """Operations the control surfaces and tool bridge call into."""

    def __init__(self, connector: SessionConnector, navigation_timeout: float = 30, script_timeout: float = 30):
        self.connector = connector
        self.navigation_timeout = navigation_timeout
        self.script_timeout = script_timeout
        self._lock = threading.Lock()

    @contextmanager
    def _operation(self, name: str) -> Iterator[Browser]:
        self.connector.require_browser(name)
        with self._lock:
            # The session may have dropped while waiting for the lock
            yield self.connector.require_browser(name)

    def _check_dropped(self, browser: Browser, name: str, error: BaseException):
        """Raise NotConnectedError if the failure was the session going away."""
        if not self.connector.session.connected or not browser.cdp.connected:
            raise NotConnectedError(name) from error

    def navigate(self, url: str) -> Dict[str, Any]:
        with self._operation("navigate") as browser:
            try:
                final_url = browser.goto(url, timeout=self.navigation_timeout)
            except UPSTREAM_ERRORS as e:
                raise NavigationError(url, e) from e
        return {"url": final_url}

    def click(self, selector: str) -> Dict[str, Any]:
        with self._operation("click") as browser:
            try:
                found = browser.click(selector)
            except UPSTREAM_ERRORS as e:
                self._check_dropped(browser, "click", e)
                raise ElementNotFoundError(selector, "click", e) from e
        if not found:
            raise ElementNotFoundError(selector, "click")
        return {"message": f"Clicked: {selector}"}

    def type(self, selector: str, text: str) -> Dict[str, Any]:
        with self._operation("type") as browser:
            try:
                found = browser.type(selector, text)
            except UPSTREAM_ERRORS as e:
                self._check_dropped(browser, "type", e)
                raise ElementNotFoundError(selector, "type", e) from e
        if not found:
            raise ElementNotFoundError(selector, "type")
        return {"message": f"Typed in: {selector}"}

    def execute_script(self, script: str) -> Dict[str, Any]:
        with self._operation("execute") as browser:
            try:
                result = browser.eval(script, timeout=self.script_timeout)
            except UPSTREAM_ERRORS as e:
                raise ScriptError(e) from e
        return {"result": result}

    def screenshot(self, full_page: bool = False) -> Dict[str, Any]:
        with self._operation("screenshot") as browser:
            try:
                data = browser.screenshot(full_page=full_page)
            except UPSTREAM_ERRORS as e:
                raise CaptureError(e) from e
        encoded = base64.b64encode(data).decode()
        return {"screenshot": f"data:image/png;base64,{encoded}"}

    def page_info(self) -> Dict[str, Any]:
        with self._operation("page_info") as browser:
            try:
                info = browser.eval(PAGE_INFO_SCRIPT, timeout=self.script_timeout)
            except UPSTREAM_ERRORS as e:
                raise ScriptError(e, operation="page_info") from e
        return dict(info or {})

    # Log reads skip the operation lock so they never wait on a slow page command

    def get_console_logs(self, limit: int = 100) -> Dict[str, Any]:
        self.connector.require_browser("get_console_logs")
        return self._tail(self.connector.console_logs, limit)

    def get_network_logs(self, limit: int = 100) -> Dict[str, Any]:
        self.connector.require_browser("get_network_logs")
        return self._tail(self.connector.network_logs, limit)

    @staticmethod
    def _tail(buffer, limit: int) -> Dict[str, Any]:
        entries = buffer.tail(max(0, int(limit)))
        return {"logs": [e.to_dict() for e in entries], "total": len(buffer)}

    def clear_logs(self) -> Dict[str, Any]:
        self.connector.console_logs.clear()
        self.connector.network_logs.clear()
        return {"message": "Logs cleared"}

    def status(self) -> Dict[str, Any]:
        return self.connector.status()
