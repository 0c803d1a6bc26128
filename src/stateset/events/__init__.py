"""File-driven event triggers for background agent runs."""

from stateset.events.cron import CronJob, InvalidCronError, schedule_cron, validate_cron
from stateset.events.pool import RunnerPool
from stateset.events.results import EventResultLogger
from stateset.events.runner import (
    EventsRunner,
    EventsRunnerOptions,
    validate_events_prereqs,
)
from stateset.events.session_runner import QueuedEvent, SessionAgentRunner
from stateset.events.types import (
    EventParseError,
    ImmediateEvent,
    OneShotEvent,
    PeriodicEvent,
    ResponseEvent,
    parse_event,
)
from stateset.events.watcher import DirectoryWatcher

__all__ = [
    "CronJob",
    "DirectoryWatcher",
    "EventParseError",
    "EventResultLogger",
    "EventsRunner",
    "EventsRunnerOptions",
    "ImmediateEvent",
    "InvalidCronError",
    "OneShotEvent",
    "PeriodicEvent",
    "QueuedEvent",
    "ResponseEvent",
    "RunnerPool",
    "SessionAgentRunner",
    "parse_event",
    "schedule_cron",
    "validate_cron",
    "validate_events_prereqs",
]
