"""
Connector Context

Builds and owns every connector component for one process: the session,
both log buffers, the broadcaster, the connector, the gateway and the
tool bridge. Transports receive the context instead of reaching for
globals.
"""

import sys
from dataclasses import dataclass, field
from typing import Optional

from .bridge import ToolBridge
from .broadcast import Broadcaster
from .collector import LogBuffer
from .config import Settings
from .errors import ConnectError, DisconnectError
from .gateway import CommandGateway
from .session import BrowserFactory, Session, SessionConnector, SessionInfo


@dataclass
class ConnectorContext:
    """Wiring for one connector process."""
    settings: Settings = field(default_factory=Settings)
    browser_factory: Optional[BrowserFactory] = field(default=None, repr=False)

    def __post_init__(self):
        s = self.settings
        self.session = Session()
        self.console_logs = LogBuffer(s.log_capacity, s.log_retain)
        self.network_logs = LogBuffer(s.log_capacity, s.log_retain)
        self.broadcaster = Broadcaster()
        self.connector = SessionConnector(
            self.session,
            self.console_logs,
            self.network_logs,
            self.broadcaster,
            browser_factory=self.browser_factory,
            connect_timeout=s.connect_timeout,
            command_timeout=s.command_timeout,
        )
        self.gateway = CommandGateway(self.connector, navigation_timeout=s.navigation_timeout)
        self.bridge = ToolBridge(self.connector, self.gateway)

    def discover(self) -> Optional[SessionInfo]:
        """Best-effort startup connection. Prints a hint when nothing answers."""
        s = self.settings
        try:
            return self.connector.auto_discover(s.debugging_ports, s.browser_host, s.discovery_budget)
        except ConnectError:
            port = s.debugging_ports[0] if s.debugging_ports else 9222
            print("[!] No browser with remote debugging found. Start one with:", file=sys.stderr)
            print(f"    google-chrome --remote-debugging-port={port}", file=sys.stderr)
            print(f"    /Applications/Google\\ Chrome.app/Contents/MacOS/Google\\ Chrome --remote-debugging-port={port}", file=sys.stderr)
            print(f'    chrome.exe --remote-debugging-port={port}', file=sys.stderr)
            print("[*] Then call browser_connect or POST /api/connect", file=sys.stderr)
            return None

    def shutdown(self):
        """Release the browser connection."""
        try:
            self.connector.disconnect()
        except DisconnectError as e:
            print(f"[!] {e}", file=sys.stderr)
