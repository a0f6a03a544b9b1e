# fcm_registration/util.py
"""Logging helpers shared by the handshake stages."""

from __future__ import annotations

from typing import Any

_SNIPPET_MAX = 200


def redact(value: Any, keep_tail: int = 6) -> str:
    """Return a redacted version of tokens/ids for safe logging."""
    s = str(value or "")
    if not s:
        return ""
    if len(s) <= keep_tail:
        return "•••"
    return f"•••{s[-keep_tail:]}"


def looks_like_html(text: str) -> bool:
    """Heuristically detect whether a response body contains HTML."""
    if not text:
        return False
    head = text.lstrip()[:64].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def body_snippet(body: bytes | str, limit: int = _SNIPPET_MAX) -> str:
    """Return a short printable prefix of a response body."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    snippet = body[:limit]
    if looks_like_html(body):
        snippet += " [html]"
    return snippet
