from __future__ import annotations

from urllib.parse import unquote

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def _decode_url(value: str) -> str:
    try:
        return unquote(value, encoding="utf-8", errors="replace")
    except Exception:
        return value


def debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[scrapshard debug] {message}")


def debug_request(method: str, url: str) -> None:
    """Log an outgoing request with its URL decoded to readable UTF-8."""
    if _DEBUG_LOG:
        debug_log(f"{method} {_decode_url(url)}")
