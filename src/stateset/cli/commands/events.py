"""Event trigger commands."""

import json
import os
import secrets
import time
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, assert_never

import typer
from rich.markup import escape

from stateset.cli.console import console, create_table, dim, error, success, warning


class EventKind(str, Enum):
    IMMEDIATE = "immediate"
    ONE_SHOT = "one-shot"
    PERIODIC = "periodic"


def _format_countdown(next_fire: datetime | None) -> str:
    """Format a countdown string for the next fire time."""
    if next_fire is None:
        return "[dim]?[/dim]"

    now = datetime.now(UTC)
    if next_fire <= now:
        return "[green]now[/green]"

    total_seconds = int((next_fire - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    if hours < 24:
        return f"in {hours}h {minutes}m" if minutes else f"in {hours}h"

    days, hours = divmod(hours, 24)
    return f"in {days}d {hours}h" if hours else f"in {days}d"


def _normalize_filename(name: str) -> str:
    """Turn a user-supplied name into a bare ``*.json`` filename.

    Raises:
        typer.BadParameter: If the name contains a path or starts with a dot.
    """
    name = name.strip()
    if not name or Path(name).name != name or name.startswith("."):
        raise typer.BadParameter(f"Invalid event name: {name!r}")
    return name if name.endswith(".json") else f"{name}.json"


def _write_event_file(events_dir: Path, filename: str, content: str) -> Path:
    """Write an event file atomically with 0600 permissions.

    The content is written to a hidden temp file first so the runner never
    sees a partially written ``*.json`` file.
    """
    events_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    target = events_dir / filename
    tmp = events_dir / f".{filename}.{os.getpid()}.{secrets.token_hex(4)}.tmp"
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return target


def _describe_file(path: Path) -> tuple[str, str, str, str, str]:
    """Return (type, session, schedule, next fire, text) table cells for one file."""
    from stateset.events.cron import InvalidCronError, next_fire_time
    from stateset.events.types import (
        EventParseError,
        ImmediateEvent,
        OneShotEvent,
        PeriodicEvent,
        parse_event,
        parse_trigger_time,
    )

    try:
        event = parse_event(path.read_bytes(), path.name)
    except (OSError, EventParseError):
        return "[red]invalid[/red]", "", "", "", ""

    text = escape(event.text[:40] + "..." if len(event.text) > 40 else event.text)
    session = escape(event.session) if event.session else "[dim]default[/dim]"

    match event:
        case ImmediateEvent():
            return event.type, session, "immediate", "[green]now[/green]", text
        case OneShotEvent(at=at):
            due = parse_trigger_time(at)
            next_fire = datetime.fromtimestamp(due, UTC) if due is not None else None
            return event.type, session, escape(at), _format_countdown(next_fire), text
        case PeriodicEvent(schedule=schedule, timezone=timezone):
            try:
                next_fire = next_fire_time(schedule, timezone)
            except InvalidCronError:
                next_fire = None
            display = escape(f"{schedule} ({timezone})")
            return event.type, session, display, _format_countdown(next_fire), text
        case _:
            assert_never(event)


async def _run_events(config, options) -> None:
    import asyncio
    import signal

    from stateset.core import create_agent_factory
    from stateset.events import EventsRunner

    runner = EventsRunner(
        options,
        agent_factory=create_agent_factory(config, options.model),
        config=config.events,
        timezone=config.timezone,
        console=console,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    await runner.start()
    dim(f"Watching {runner.events_dir} (Ctrl+C to stop)")
    try:
        await shutdown_event.wait()
    finally:
        await runner.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


events_app = typer.Typer(help="Manage file-based event triggers", no_args_is_help=True)


@events_app.command("run")
def run(
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Model alias to use"),
    ] = None,
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Default session for events without one"),
    ] = None,
    usage: Annotated[
        bool,
        typer.Option("--usage", help="Record and print token usage"),
    ] = False,
    stdout: Annotated[
        bool,
        typer.Option("--stdout", help="Print event responses to stdout"),
    ] = False,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
) -> None:
    """Watch the events directory and run the agent for each trigger."""
    import asyncio

    from stateset.config import ConfigError, get_default_config, load_config
    from stateset.events import EventsRunnerOptions, validate_events_prereqs
    from stateset.logging import configure_logging
    from stateset.observability import init_sentry

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        if config_path is not None:
            error(escape(str(e)))
            raise typer.Exit(1) from None
        config = get_default_config()
    except ValueError as e:
        error(f"Invalid configuration: {escape(str(e))}")
        raise typer.Exit(1) from None

    try:
        validate_events_prereqs(config)
        config.get_model(model or "default")
    except ConfigError as e:
        error(escape(str(e)))
        raise typer.Exit(1) from None

    configure_logging(log_to_file=True)
    init_sentry(config.sentry)

    options = EventsRunnerOptions(
        default_session=session or config.events.default_session,
        model=model or "default",
        show_usage=usage or config.events.show_usage,
        stdout=stdout or config.events.stdout,
    )
    asyncio.run(_run_events(config, options))


@events_app.command("add")
def add(
    event_kind: Annotated[
        EventKind,
        typer.Option("--type", "-t", help="Trigger type"),
    ],
    text: Annotated[
        str,
        typer.Option("--text", help="Instruction sent to the agent"),
    ],
    at: Annotated[
        str | None,
        typer.Option("--at", help="ISO 8601 time for one-shot events"),
    ] = None,
    schedule: Annotated[
        str | None,
        typer.Option("--schedule", help="Cron expression for periodic events"),
    ] = None,
    timezone: Annotated[
        str | None,
        typer.Option("--timezone", help="IANA timezone for periodic events"),
    ] = None,
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Session the event runs in"),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Event file name (default: generated)"),
    ] = None,
) -> None:
    """Create an event file.

    Examples:
        stateset events add -t immediate --text "Summarize today's refunds"
        stateset events add -t one-shot --at 2026-03-01T09:00:00Z --text "Check stock"
        stateset events add -t periodic --schedule "0 9 * * 1-5" --text "Daily digest"
    """
    from stateset.config.paths import get_events_path, get_system_timezone
    from stateset.events.cron import InvalidCronError, validate_cron
    from stateset.events.types import EventParseError, parse_event, parse_trigger_time

    event_type = event_kind.value
    data: dict[str, str] = {"type": event_type, "text": text}
    if event_type == "one-shot":
        if at is None:
            error("--at is required for one-shot events")
            raise typer.Exit(1)
        due = parse_trigger_time(at)
        if due is None or due <= time.time():
            error(f"--at must be a valid future time: {escape(at)}")
            raise typer.Exit(1)
        data["at"] = at
    elif event_type == "periodic":
        if schedule is None:
            error("--schedule is required for periodic events")
            raise typer.Exit(1)
        data["schedule"] = schedule
        data["timezone"] = timezone or get_system_timezone()
        try:
            validate_cron(data["schedule"], data["timezone"])
        except InvalidCronError as e:
            error(escape(str(e)))
            raise typer.Exit(1) from None
    if session:
        data["session"] = session

    filename = _normalize_filename(
        name or f"{event_type}-{int(time.time())}-{secrets.token_hex(3)}"
    )
    content = json.dumps(data, indent=2) + "\n"
    try:
        parse_event(content, filename)
    except EventParseError as e:
        error(escape(str(e)))
        raise typer.Exit(1) from None

    path = _write_event_file(get_events_path(), filename, content)
    success(f"Created {event_type} event: {escape(path.name)}")


@events_app.command("list")
def list_events() -> None:
    """List event files and when they fire next."""
    from stateset.config.paths import get_events_path

    events_dir = get_events_path()
    files = sorted(events_dir.glob("*.json")) if events_dir.is_dir() else []
    if not files:
        warning("No events found")
        return

    table = create_table(
        "Events",
        [
            ("Name", "dim"),
            ("Type", ""),
            ("Session", ""),
            ("Schedule", ""),
            ("Next Fire", ""),
            ("Text", ""),
        ],
    )
    for path in files:
        table.add_row(escape(path.name), *_describe_file(path))

    console.print(table)
    dim(f"Total: {len(files)} event(s)")


@events_app.command("cancel")
def cancel(
    name: Annotated[str, typer.Argument(help="Event file name")],
) -> None:
    """Delete an event file. A running watcher cancels its schedule."""
    from stateset.config.paths import get_events_path

    filename = _normalize_filename(name)
    path = get_events_path() / filename
    if not path.exists():
        error(f"No event named {escape(filename)}")
        raise typer.Exit(1)

    path.unlink()
    success(f"Cancelled: {escape(filename)}")


@events_app.command("log")
def log(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Number of records to show"),
    ] = 20,
) -> None:
    """Show recent event results."""
    from stateset.config.paths import get_events_log_path
    from stateset.events.results import EventResultLogger

    records = EventResultLogger(get_events_log_path()).read_recent(limit)
    if not records:
        dim("No event results logged")
        return

    for record in records:
        ts = str(record.get("ts", ""))[:19].replace("T", " ")
        header = f"{ts} {record.get('session', '?')} {record.get('filename', '?')}"
        if record.get("silent"):
            header += " (silent)"
        console.print(header, style="bold", markup=False, highlight=False)
        response = str(record.get("response", ""))
        preview = response[:200] + "..." if len(response) > 200 else response
        console.print(preview, markup=False, highlight=False)
        if record.get("usage"):
            console.print(f"  {record['usage']}", style="dim", markup=False)


def register(app: typer.Typer) -> None:
    """Register the events command group."""
    app.add_typer(events_app, name="events")
