"""
Console & Network Log Buffers

Captured page activity as immutable entries, stored in bounded
buffers that evict in batches.

Design: one frozen dataclass per entry kind, each built straight from
the CDP event that produced it.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Generic, List, TypeVar
import time
import threading


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LogEntry:
    """Base for captured entries. seq is assigned by the owning buffer."""
    seq: int
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class ConsoleEntry(LogEntry):
    """console.* call in the page."""
    level: str = "log"
    text: str = ""
    url: str = ""
    line: int = 0
    column: int = 0

    @classmethod
    def from_cdp(cls, params: Dict) -> "ConsoleEntry":
        """Build from Runtime.consoleAPICalled."""
        text_parts = []
        for arg in params.get("args", []):
            if "value" in arg:
                text_parts.append(str(arg["value"]))
            elif "description" in arg:
                text_parts.append(arg["description"])
            elif arg.get("type") == "undefined":
                text_parts.append("undefined")

        call_frames = params.get("stackTrace", {}).get("callFrames", [])
        frame = call_frames[0] if call_frames else {}

        return cls(
            seq=0,
            timestamp=now_ms(),
            level=params.get("type", "log"),
            text=" ".join(text_parts),
            url=frame.get("url", ""),
            line=frame.get("lineNumber", 0),
            column=frame.get("columnNumber", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "type": self.level,
            "text": self.text,
            "location": {"url": self.url, "lineNumber": self.line, "columnNumber": self.column},
        }


@dataclass(frozen=True)
class ErrorEntry(LogEntry):
    """Uncaught exception in the page."""
    message: str = ""
    stack: str = ""

    @classmethod
    def from_cdp(cls, params: Dict) -> "ErrorEntry":
        """Build from Runtime.exceptionThrown."""
        details = params.get("exceptionDetails", {})
        description = details.get("exception", {}).get("description", "")

        if description:
            message = description.splitlines()[0]
            stack = description
        else:
            message = details.get("text", "Error")
            frames = details.get("stackTrace", {}).get("callFrames", [])
            stack = "\n".join(
                f"    at {f.get('functionName') or '<anonymous>'} ({f.get('url', '')}:{f.get('lineNumber', 0)}:{f.get('columnNumber', 0)})"
                for f in frames
            )

        return cls(seq=0, timestamp=now_ms(), message=message, stack=stack)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "type": "pageerror",
            "message": self.message,
            "stack": self.stack,
        }


@dataclass(frozen=True)
class RequestEntry(LogEntry):
    """Outgoing network request."""
    method: str = "GET"
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    post_data: Any = None

    @classmethod
    def from_cdp(cls, params: Dict) -> "RequestEntry":
        """Build from Network.requestWillBeSent."""
        req = params.get("request", {})
        return cls(
            seq=0,
            timestamp=now_ms(),
            method=req.get("method", "GET"),
            url=req.get("url", ""),
            headers=dict(req.get("headers", {})),
            post_data=req.get("postData"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "type": "request",
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "postData": self.post_data,
        }


@dataclass(frozen=True)
class ResponseEntry(LogEntry):
    """Incoming network response."""
    status: int = 0
    status_text: str = ""
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_cdp(cls, params: Dict) -> "ResponseEntry":
        """Build from Network.responseReceived."""
        resp = params.get("response", {})
        return cls(
            seq=0,
            timestamp=now_ms(),
            status=resp.get("status", 0),
            status_text=resp.get("statusText", ""),
            url=resp.get("url", ""),
            headers=dict(resp.get("headers", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "type": "response",
            "status": self.status,
            "statusText": self.status_text,
            "url": self.url,
            "headers": dict(self.headers),
        }


T = TypeVar("T", bound=LogEntry)


class LogBuffer(Generic[T]):
    """
    Bounded, ordered entry store.

    Holds at most `capacity` entries. An append that finds the buffer
    full first drops the oldest entries so that `retain` remain, then
    adds the new one. Sequence numbers keep counting across clear().
    """

    def __init__(self, capacity: int = 1000, retain: int = 800):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if not 0 <= retain < capacity:
            raise ValueError("retain must be in [0, capacity)")
        self.capacity = capacity
        self.retain = retain
        self._items: List[T] = []
        self._seq = 0
        self._lock = threading.Lock()

    def append(self, entry: T) -> T:
        """Store entry with the next sequence number and return the stored copy."""
        with self._lock:
            self._seq += 1
            stored = replace(entry, seq=self._seq)
            if len(self._items) >= self.capacity:
                del self._items[:len(self._items) - self.retain]
            self._items.append(stored)
            return stored

    def tail(self, n: int) -> List[T]:
        """Last n entries, oldest first."""
        if n <= 0:
            return []
        with self._lock:
            return self._items[-n:]

    def clear(self):
        with self._lock:
            self._items = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
