"""System prompt builder for session-scoped agent runs."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stateset.core.signals import SILENT

BASE_SYSTEM_PROMPT = """\
You are StateSet, an operations assistant for e-commerce teams. You help
operators investigate orders, customers, subscriptions and support tickets
across their connected commerce tools.

- Be brief. Answer the question, then stop.
- Never claim an action succeeded without evidence from a tool result.
- Report failures with the actual error message."""


def _build_events_section() -> str:
    return "\n".join(
        [
            "## Scheduled Events",
            "",
            "Some messages arrive from the events runner rather than a person. They start",
            "with a tag: [EVENT:<file>:<type>:<schedule>] where <type> is immediate,",
            "one-shot or periodic and <schedule> is the trigger time or cron expression.",
            "Carry out the task described after the tag.",
            "",
            f"If there is nothing worth reporting, start your reply with {SILENT}.",
            "Silent replies are logged but not shown to the operator.",
        ]
    )


def _build_session_section(session_id: str, timezone: str | None) -> str:
    tz_name = timezone or "UTC"
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz_name, tz = "UTC", ZoneInfo("UTC")
    local_time = datetime.now(UTC).astimezone(tz)

    return "\n".join(
        [
            "## Session",
            "",
            f"- Session: {session_id}",
            f"- Timezone: {tz_name}",
            f"- Time: {local_time.strftime('%Y-%m-%d %H:%M:%S')}",
        ]
    )


def _build_memory_section(memory: str) -> str:
    if not memory.strip():
        return ""
    return "\n".join(["## Memory", "", memory.strip()])


def build_system_prompt(
    session_id: str,
    memory: str = "",
    timezone: str | None = None,
) -> str:
    """Build the system prompt for one session.

    Args:
        session_id: Sanitized session id.
        memory: Persisted memory text (see ``stateset.memory.load_memory``).
        timezone: IANA timezone shown to the model; invalid names fall back to UTC.
    """
    sections = [
        BASE_SYSTEM_PROMPT,
        _build_events_section(),
        _build_session_section(session_id, timezone),
        _build_memory_section(memory),
    ]
    return "\n\n".join(section for section in sections if section)
