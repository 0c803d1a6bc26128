"""Centralized path management for StateSet.

All state (config, sessions, events, logs) is stored under a single base
directory. The base directory can be overridden with the STATESET_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.stateset
- Windows: %USERPROFILE%\\.stateset
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "STATESET_HOME"


def get_system_timezone() -> str:
    """Detect system timezone, falling back to UTC.

    Resolution order:
    1. TZ environment variable (if set)
    2. /etc/timezone file (Debian/Ubuntu)
    3. /etc/localtime symlink target (most Linux distros)
    4. Fallback to UTC

    Returns:
        IANA timezone name (e.g., "America/Los_Angeles", "UTC").
    """
    if tz := os.environ.get("TZ"):
        return tz

    try:
        tz = Path("/etc/timezone").read_text().strip()
        if tz:
            return tz
    except (FileNotFoundError, PermissionError):
        pass

    try:
        link = Path("/etc/localtime").resolve()
        parts = str(link).split("zoneinfo/")
        if len(parts) > 1:
            return parts[1]
    except (FileNotFoundError, PermissionError):
        pass

    return "UTC"


@lru_cache(maxsize=1)
def get_stateset_home() -> Path:
    """Get the base directory for all StateSet data.

    Resolution order:
    1. STATESET_HOME environment variable (if set)
    2. Platform default (~/.stateset)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".stateset"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_stateset_home() / "config.toml"


def get_events_path() -> Path:
    """Get the events directory watched by the events runner."""
    return get_stateset_home() / "events"


def get_events_log_path() -> Path:
    """Get the append-only audit log of fired events."""
    return get_events_path() / "log.jsonl"


def get_sessions_path() -> Path:
    """Get the sessions directory path (JSONL transcripts)."""
    return get_stateset_home() / "sessions"


def get_session_dir(session_id: str) -> Path:
    """Get the directory for a single (already sanitized) session."""
    return get_sessions_path() / session_id


def get_global_memory_path() -> Path:
    """Get the memory file shared by every session."""
    return get_stateset_home() / "MEMORY.md"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_stateset_home() / "logs"


def ensure_stateset_home() -> Path:
    """Ensure the StateSet home directory exists."""
    home = get_stateset_home()
    home.mkdir(parents=True, exist_ok=True, mode=0o700)
    return home


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for debugging/display."""
    return {
        "home": get_stateset_home(),
        "config": get_config_path(),
        "events": get_events_path(),
        "events_log": get_events_log_path(),
        "sessions": get_sessions_path(),
        "memory": get_global_memory_path(),
        "logs": get_logs_path(),
    }
