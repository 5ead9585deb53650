"""
Connector transports.

- HTTP control surface under /api (request/response)
- WebSocket push surface at /ws (status snapshot, then every event)
- JSON-RPC tool surface at POST /mcp, or over stdio with --stdio
"""

import asyncio
import json
import sys
import traceback
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional, TextIO

import mcp.types as types
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from .bridge import ToolBridge, jsonrpc_error
from .config import Settings
from .context import ConnectorContext
from .errors import ConnectorError, MissingArgumentError


# ══════════════════════════════════════════════════════════════════════════════
# WebSocket subscriber
# ══════════════════════════════════════════════════════════════════════════════
class WebSocketSubscriber:
    """
    Broadcaster handle for one WebSocket client.

    send() may be called from any thread; messages are queued onto the
    event loop and written by pump() in the order they were sent.
    """

    def __init__(self, websocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self._loop = loop
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open and not self._loop.is_closed()

    def send(self, data: str) -> None:
        if not self.is_open:
            raise ConnectionError("WebSocket client is closed")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, data)

    async def pump(self):
        while True:
            data = await self._queue.get()
            await self.websocket.send_text(data)

    def start(self) -> "asyncio.Task":
        """Run pump() as a task; the subscriber closes when the pump stops."""
        task = self._loop.create_task(self.pump())
        task.add_done_callback(self._pump_done)
        return task

    def _pump_done(self, task: "asyncio.Task"):
        self.close()
        if not task.cancelled() and task.exception() is not None:
            print(f"[!] WebSocket send failed: {task.exception()!r}", file=sys.stderr)

    def close(self):
        self._open = False


# ══════════════════════════════════════════════════════════════════════════════
# HTTP helpers
# ══════════════════════════════════════════════════════════════════════════════
async def _json_body(request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _require(body: Dict[str, Any], operation: str, key: str) -> Any:
    value = body.get(key)
    if value is None:
        raise MissingArgumentError(operation, key)
    return value


def _limit(request, default: int = 100) -> int:
    try:
        return max(0, int(request.query_params.get("limit", default)))
    except ValueError:
        return default


async def _reply(operation: Callable[[], Dict[str, Any]]):
    """Run a blocking operation off the loop and wrap it in the reply envelope."""
    try:
        payload = await run_in_threadpool(operation)
    except ConnectorError as e:
        return JSONResponse({"success": False, "error": str(e)}, status_code=e.http_status)
    except ValueError as e:
        return JSONResponse({"success": False, "error": str(e)}, status_code=400)
    except Exception as e:
        print(f"[!] Request failed: {e!r}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)
    return JSONResponse({"success": True, **payload})


# ══════════════════════════════════════════════════════════════════════════════
# App creation
# ══════════════════════════════════════════════════════════════════════════════
def create_app(context: ConnectorContext, discover: bool = True):
    """Create the Starlette app for HTTP, WebSocket and JSON-RPC access."""
    gateway = context.gateway
    connector = context.connector
    broadcaster = context.broadcaster

    # ─── Control surface ────────────────────────────────────────────

    async def status(request: Request):
        # Raw snapshot, no envelope
        return JSONResponse(await run_in_threadpool(gateway.status))

    async def connect(request: Request):
        body = await _json_body(request)
        host = body.get("host") or "localhost"
        port = body.get("port") or 9222

        def op():
            info = connector.connect(str(host), int(port))
            return {"message": "Connected to browser", **info.to_dict()}
        return await _reply(op)

    async def navigate(request: Request):
        body = await _json_body(request)
        return await _reply(lambda: gateway.navigate(_require(body, "navigate", "url")))

    async def page_info(request: Request):
        return await _reply(gateway.page_info)

    async def console_logs(request: Request):
        limit = _limit(request)
        return await _reply(lambda: gateway.get_console_logs(limit))

    async def network_logs(request: Request):
        limit = _limit(request)
        return await _reply(lambda: gateway.get_network_logs(limit))

    async def clear_logs(request: Request):
        return await _reply(gateway.clear_logs)

    async def execute(request: Request):
        body = await _json_body(request)
        return await _reply(lambda: gateway.execute_script(_require(body, "execute", "script")))

    async def click(request: Request):
        body = await _json_body(request)
        return await _reply(lambda: gateway.click(_require(body, "click", "selector")))

    async def type_text(request: Request):
        body = await _json_body(request)
        return await _reply(lambda: gateway.type(
            _require(body, "type", "selector"), str(_require(body, "type", "text"))))

    async def screenshot(request: Request):
        full_page = request.query_params.get("fullPage", "false").lower() == "true"
        return await _reply(lambda: gateway.screenshot(full_page))

    # ─── Tool surface ───────────────────────────────────────────────

    async def mcp_endpoint(request: Request):
        try:
            message = json.loads(await request.body())
        except ValueError as e:
            return JSONResponse(jsonrpc_error(None, types.PARSE_ERROR, f"Parse error: {e}"))

        if isinstance(message, list):
            replies = []
            for item in message:
                reply = await run_in_threadpool(context.bridge.handle_message, item)
                if reply is not None:
                    replies.append(reply)
            return JSONResponse(replies) if replies else Response(status_code=202)

        reply = await run_in_threadpool(context.bridge.handle_message, message)
        if reply is None:
            return Response(status_code=202)
        return JSONResponse(reply)

    # ─── Push surface ───────────────────────────────────────────────

    async def handle_ws_message(subscriber: WebSocketSubscriber, text: str):
        try:
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("Message must be a JSON object")
            kind = data.get("type")
            if kind == "navigate":
                # The resulting navigation event reaches every subscriber via the router
                await run_in_threadpool(gateway.navigate, _require(data, "navigate", "url"))
            elif kind == "execute":
                result = await run_in_threadpool(gateway.execute_script, _require(data, "execute", "script"))
                broadcaster.send_to(subscriber, {"type": "execution_result", "result": result["result"]})
            else:
                raise ValueError(f"Unknown message type: {kind}")
        except (ConnectorError, ValueError) as e:
            broadcaster.send_to(subscriber, {"type": "error", "message": str(e)})

    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        subscriber = WebSocketSubscriber(websocket, asyncio.get_running_loop())
        snapshot = gateway.status()
        broadcaster.send_to(subscriber, {
            "type": "status",
            "connected": snapshot["connected"],
            "url": snapshot["url"],
        })
        broadcaster.subscribe(subscriber)
        print("[*] WebSocket client connected", file=sys.stderr)

        pump = subscriber.start()
        try:
            while True:
                text = await websocket.receive_text()
                await handle_ws_message(subscriber, text)
        except WebSocketDisconnect:
            pass
        finally:
            subscriber.close()
            broadcaster.unsubscribe(subscriber)
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
            print("[*] WebSocket client disconnected", file=sys.stderr)

    # ─── Lifecycle ──────────────────────────────────────────────────

    @asynccontextmanager
    async def lifespan(app):
        print("[*] Connector server starting...", file=sys.stderr)
        if discover:
            # Serve immediately; discovery finishes in the background
            asyncio.get_running_loop().run_in_executor(None, context.discover)
        yield
        print("[*] Connector server shutting down...", file=sys.stderr)
        await run_in_threadpool(context.shutdown)

    routes = [
        Route("/api/status", endpoint=status, methods=["GET"]),
        Route("/api/connect", endpoint=connect, methods=["POST"]),
        Route("/api/navigate", endpoint=navigate, methods=["POST"]),
        Route("/api/page-info", endpoint=page_info, methods=["GET"]),
        Route("/api/console-logs", endpoint=console_logs, methods=["GET"]),
        Route("/api/network-logs", endpoint=network_logs, methods=["GET"]),
        Route("/api/clear-logs", endpoint=clear_logs, methods=["POST"]),
        Route("/api/execute", endpoint=execute, methods=["POST"]),
        Route("/api/click", endpoint=click, methods=["POST"]),
        Route("/api/type", endpoint=type_text, methods=["POST"]),
        Route("/api/screenshot", endpoint=screenshot, methods=["GET"]),
        Route("/mcp", endpoint=mcp_endpoint, methods=["POST"]),
        WebSocketRoute("/ws", endpoint=websocket_endpoint),
    ]

    middleware = [
        Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]),
    ]

    return Starlette(routes=routes, middleware=middleware, lifespan=lifespan)


# ══════════════════════════════════════════════════════════════════════════════
# stdio JSON-RPC
# ══════════════════════════════════════════════════════════════════════════════
def serve_stdio(bridge: ToolBridge, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
    """Newline-delimited JSON-RPC over stdin/stdout until EOF."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except ValueError as e:
            print(f"[!] Unparseable message: {e}", file=sys.stderr)
            reply = jsonrpc_error(None, types.PARSE_ERROR, f"Parse error: {e}")
        else:
            reply = bridge.handle_message(message)
        if reply is not None:
            stdout.write(json.dumps(reply, ensure_ascii=False) + "\n")
            stdout.flush()


# ══════════════════════════════════════════════════════════════════════════════
# Server run
# ══════════════════════════════════════════════════════════════════════════════
def run(settings: Optional[Settings] = None, stdio: bool = False, discover: bool = True):
    """Run the connector until interrupted (HTTP) or until stdin closes (stdio)."""
    settings = settings or Settings.from_env()
    context = ConnectorContext(settings)

    if stdio:
        print("[*] Browser Connector (stdio)", file=sys.stderr)
        if discover:
            context.discover()
        try:
            serve_stdio(context.bridge)
        finally:
            context.shutdown()
        return

    import uvicorn

    base = f"http://{settings.host}:{settings.port}"
    print("", file=sys.stderr)
    print("[*] Browser Connector", file=sys.stderr)
    print(f"[*] Status:    {base}/api/status", file=sys.stderr)
    print(f"[*] WebSocket: ws://{settings.host}:{settings.port}/ws", file=sys.stderr)
    print(f"[*] JSON-RPC:  {base}/mcp", file=sys.stderr)
    print(f"[*] Debugging ports: {', '.join(map(str, settings.debugging_ports))}", file=sys.stderr)
    print("", file=sys.stderr)

    app = create_app(context, discover=discover)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning")
