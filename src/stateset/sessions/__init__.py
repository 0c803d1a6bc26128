"""Session persistence: per-session directories with JSONL message logs."""

from stateset.sessions.store import SessionStore
from stateset.sessions.utils import (
    DEFAULT_SESSION_ID,
    MAX_SESSION_ID_LENGTH,
    sanitize_session_id,
)

__all__ = [
    "DEFAULT_SESSION_ID",
    "MAX_SESSION_ID_LENGTH",
    "SessionStore",
    "sanitize_session_id",
]
