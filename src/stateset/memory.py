"""Persisted memory files injected into the system prompt.

Two plain-text files may exist:
- ``<home>/MEMORY.md``: global memory shared by every session
- ``<home>/sessions/<id>/MEMORY.md``: memory for a single session
"""

import logging
from pathlib import Path

from stateset.config.paths import get_global_memory_path, get_session_dir
from stateset.sessions.utils import sanitize_session_id

logger = logging.getLogger(__name__)

MAX_MEMORY_FILE_BYTES = 1_048_576


def _read_memory_file(path: Path) -> str | None:
    try:
        if path.stat().st_size > MAX_MEMORY_FILE_BYTES:
            logger.warning("memory_file_too_large", extra={"file.path": str(path)})
            return None
        content = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(
            "memory_file_unreadable",
            extra={"file.path": str(path), "error.message": str(e)},
        )
        return None
    return content or None


def load_memory(session_id: str) -> str:
    """Load global and session memory for ``session_id``.

    Returns an empty string when neither file has content.
    """
    session_path = get_session_dir(sanitize_session_id(session_id)) / "MEMORY.md"

    parts: list[str] = []
    if global_memory := _read_memory_file(get_global_memory_path()):
        parts.append(f"### Global Memory\n{global_memory}")
    if session_memory := _read_memory_file(session_path):
        parts.append(f"### Session Memory\n{session_memory}")

    return "\n\n".join(parts)
