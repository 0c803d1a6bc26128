"""Shared utilities for session management."""

import re

DEFAULT_SESSION_ID = "default"
MAX_SESSION_ID_LENGTH = 200

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_DOT_RUNS = re.compile(r"\.\.+")
_LEADING_DOTS = re.compile(r"^\.+")


def sanitize_session_id(raw: str | None) -> str:
    """Turn arbitrary input into a safe session directory name.

    Unsafe characters become ``_``, ``..`` runs and leading dots are removed
    so the id can never escape the sessions directory. Empty input (or input
    that sanitizes to nothing) maps to ``default``.
    """
    trimmed = (raw or "").strip() or DEFAULT_SESSION_ID
    sanitized = _UNSAFE_CHARS.sub("_", trimmed)
    sanitized = _LEADING_DOTS.sub("", _DOT_RUNS.sub("_", sanitized))
    bounded = sanitized[:MAX_SESSION_ID_LENGTH]
    return bounded or DEFAULT_SESSION_ID
