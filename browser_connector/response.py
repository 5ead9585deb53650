"""
Log Summary Formatter

Human-readable, line-per-entry summaries of console and network logs,
returned next to the raw entries by the log tools.

Output depends only on the entries passed in: times are rendered in UTC.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List


NO_CONSOLE_LOGS = "No console logs"
NO_NETWORK_LOGS = "No network logs"


def format_time(timestamp_ms: Any) -> str:
    """Epoch milliseconds -> HH:MM:SS (UTC)."""
    try:
        moment = datetime.fromtimestamp(float(timestamp_ms) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return "--:--:--"
    return moment.strftime("%H:%M:%S")


def format_console_logs(logs: List[Dict]) -> str:
    """
    One line per console entry.

    Example:
        [12:00:01] LOG: hello
        [12:00:02] PAGEERROR: ReferenceError: x is not defined
    """
    if not logs:
        return NO_CONSOLE_LOGS

    lines = []
    for log in logs:
        level = str(log.get("type", "log")).upper()
        text = log.get("text")
        if text is None:
            text = log.get("message", "")
        lines.append(f"[{format_time(log.get('timestamp'))}] {level}: {text}")
    return "\n".join(lines)


def format_network_logs(logs: List[Dict]) -> str:
    """
    One line per URL, pairing the latest request and response seen for it.

    Example:
        GET https://example.com/ -> 200 OK
        POST https://example.com/api -> PENDING
        RESPONSE https://cdn.example.com/app.js -> 304
    """
    if not logs:
        return NO_NETWORK_LOGS

    by_url: Dict[str, Dict[str, Dict]] = {}
    for log in logs:
        by_url.setdefault(log.get("url", ""), {})[log.get("type", "")] = log

    lines = []
    for url, pair in by_url.items():
        req = pair.get("request")
        res = pair.get("response")
        if req and res:
            lines.append(f"{req.get('method', 'GET')} {url} -> {res.get('status')} {res.get('statusText', '')}".rstrip())
        elif req:
            lines.append(f"{req.get('method', 'GET')} {url} -> PENDING")
        else:
            status = res.get("status") if res else None
            lines.append(f"RESPONSE {url} -> {status or 'UNKNOWN'}")
    return "\n".join(lines)


def to_text(result: Any) -> str:
    """Tool result as the text payload of a reply."""
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)
