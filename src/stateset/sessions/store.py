"""JSONL session store for agent conversation history."""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import UTC, datetime
from pathlib import Path

import aiofiles

from stateset.config.paths import get_sessions_path
from stateset.llm.types import Message
from stateset.sessions.utils import sanitize_session_id

logger = logging.getLogger(__name__)


class SessionStore:
    """Append-only message log for one session.

    Layout::

        <sessions>/<session_id>/
            context.jsonl   # one message per line
            MEMORY.md       # optional session memory (read by stateset.memory)
    """

    def __init__(self, session_id: str, sessions_dir: Path | None = None) -> None:
        self._session_id = sanitize_session_id(session_id)
        base = sessions_dir or get_sessions_path()
        self.session_dir = base / self._session_id
        self.context_file = self.session_dir / "context.jsonl"
        self._initialized = False

    @property
    def session_id(self) -> str:
        return self._session_id

    def exists(self) -> bool:
        return self.context_file.exists()

    def ensure_directory(self) -> None:
        if not self._initialized:
            self.session_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
            self._initialized = True

    async def append_message(self, message: Message) -> None:
        """Append a message to context.jsonl."""
        self.ensure_directory()
        data = message.to_dict()
        data["ts"] = datetime.now(UTC).isoformat()
        line = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        async with aiofiles.open(self.context_file, "a", encoding="utf-8") as f:
            await f.write(line + "\n")

    async def load_messages(self, limit: int | None = None) -> list[Message]:
        """Load the most recent ``limit`` messages (all when None).

        Corrupt lines are skipped with a warning rather than failing the load.
        """
        if not self.context_file.exists():
            return []

        messages: deque[Message] = deque(maxlen=limit)
        line_num = 0
        async with aiofiles.open(self.context_file, encoding="utf-8") as f:
            async for line in f:
                line_num += 1
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(Message.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning(
                        "session_line_corrupt",
                        extra={
                            "session.id": self._session_id,
                            "file.line": line_num,
                            "error.message": str(e),
                        },
                    )

        history = list(messages)
        # Replayed history must start on a user turn
        while history and history[0].role.value != "user":
            history.pop(0)
        return history
