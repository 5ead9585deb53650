"""
CLI entry point for browser-connector.

Usage:
    browser-connector                         # HTTP + WebSocket + JSON-RPC on port 3001
    browser-connector --stdio                 # JSON-RPC over stdio (MCP clients)
    browser-connector --browser-ports 9333    # Look for Chrome on another port
"""

import argparse
import sys

from .config import Settings, parse_ports
from .server import run


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="browser-connector",
        description="Bridge a Chrome remote debugging session to HTTP, WebSocket and MCP tool clients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Start Chrome with remote debugging first:
  google-chrome --remote-debugging-port=9222

Examples:
  browser-connector                       # Serve on http://127.0.0.1:3001
  browser-connector --port 4000           # Custom port
  browser-connector --stdio               # For MCP clients (Claude Code)
  browser-connector --no-discover         # Wait for browser_connect

For Claude Code (~/.claude/settings.json):
  {"mcpServers": {"browser": {"command": "browser-connector", "args": ["--stdio"]}}}

Environment:
  PORT, CONNECTOR_HOST, BROWSER_HOST, BROWSER_DEBUGGING_PORTS,
  LOG_CAPACITY, LOG_RETAIN, CONNECT_TIMEOUT, COMMAND_TIMEOUT,
  NAVIGATION_TIMEOUT, DISCOVERY_BUDGET
        """
    )

    # Transport
    parser.add_argument(
        "--stdio",
        action="store_true",
        help="Serve JSON-RPC over stdio instead of HTTP"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="HTTP server port (default: 3001)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="HTTP server bind address (default: 127.0.0.1)"
    )

    # Browser discovery
    parser.add_argument(
        "--browser-host",
        type=str,
        default=None,
        help="Host running Chrome (default: localhost)"
    )
    parser.add_argument(
        "--browser-ports",
        type=str,
        default=None,
        help="Comma-separated debugging ports to try in order (default: 9222,9223,9224)"
    )
    parser.add_argument(
        "--no-discover",
        action="store_true",
        help="Do not connect to a browser at startup"
    )

    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        if args.port is not None:
            settings.port = args.port
        if args.host:
            settings.host = args.host
        if args.browser_host:
            settings.browser_host = args.browser_host
        if args.browser_ports:
            settings.debugging_ports = parse_ports(args.browser_ports)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        run(settings, stdio=args.stdio, discover=not args.no_discover)
    except KeyboardInterrupt:
        print("[*] Interrupted", file=sys.stderr)


if __name__ == "__main__":
    main()
