"""Append-only audit log of fired events."""

import json
import logging
from collections import deque
from datetime import UTC, datetime
from pathlib import Path

from stateset.events.types import ResponseEvent, event_to_dict
from stateset.llm.types import Usage

logger = logging.getLogger(__name__)


class EventResultLogger:
    """Writes one JSON line per executed event.

    Writes are best-effort: any failure is logged at debug level and
    swallowed so the audit log can never fail an event run.
    """

    def __init__(self, log_path: Path):
        self._log_path = log_path

    @property
    def log_path(self) -> Path:
        return self._log_path

    def record(
        self,
        *,
        session_id: str,
        filename: str,
        event: ResponseEvent,
        response: str,
        silent: bool,
        usage: Usage | None = None,
    ) -> None:
        try:
            entry = {
                "ts": datetime.now(UTC).isoformat(),
                "session": session_id,
                "filename": filename,
                "event": event_to_dict(event),
                "response": response,
                "silent": silent,
                "usage": usage.summary() if usage is not None else None,
            }

            self._log_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except Exception as e:
            logger.debug(
                "event_result_log_failed",
                extra={"error.message": str(e), "file.path": str(self._log_path)},
            )

    def read_recent(self, limit: int = 20) -> list[dict]:
        """Return the last ``limit`` records, skipping lines that are not JSON."""
        if limit <= 0 or not self._log_path.exists():
            return []
        records: deque[dict] = deque(maxlen=limit)
        with self._log_path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return list(records)
