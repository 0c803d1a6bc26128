"""Tests for event descriptor parsing."""

import json
import math
from datetime import UTC, datetime

import pytest

from stateset.events.types import (
    EventParseError,
    ImmediateEvent,
    OneShotEvent,
    PeriodicEvent,
    describe_schedule,
    event_to_dict,
    parse_event,
    parse_trigger_time,
)


class TestParseEvent:
    """Tests for parse_event."""

    def test_immediate(self):
        event = parse_event('{"type": "immediate", "text": "ping"}', "a.json")
        assert event == ImmediateEvent(text="ping")
        assert event.type == "immediate"

    def test_one_shot(self):
        content = json.dumps(
            {"type": "one-shot", "text": "ping", "at": "2999-01-01T00:00:00Z"}
        )
        event = parse_event(content, "b.json")
        assert event == OneShotEvent(text="ping", at="2999-01-01T00:00:00Z")

    def test_periodic(self):
        content = json.dumps(
            {
                "type": "periodic",
                "text": "digest",
                "schedule": "0 9 * * *",
                "timezone": "America/New_York",
                "session": "ops",
            }
        )
        event = parse_event(content, "c.json")
        assert isinstance(event, PeriodicEvent)
        assert event.schedule == "0 9 * * *"
        assert event.timezone == "America/New_York"
        assert event.session == "ops"

    def test_accepts_bytes(self):
        event = parse_event(b'{"type": "immediate", "text": "ping"}', "a.json")
        assert event.text == "ping"

    def test_session_passes_through_unvalidated(self):
        """Session names are sanitized later, not rejected here."""
        event = parse_event(
            '{"type": "immediate", "text": "x", "session": "../etc"}', "a.json"
        )
        assert event.session == "../etc"

    def test_non_string_session_ignored(self):
        event = parse_event('{"type": "immediate", "text": "x", "session": 5}', "a.json")
        assert event.session is None

    def test_invalid_json(self):
        with pytest.raises(EventParseError, match="Invalid JSON in event file bad.json"):
            parse_event("{not json", "bad.json")

    def test_not_an_object(self):
        with pytest.raises(EventParseError, match="Invalid event data in list.json"):
            parse_event("[1, 2]", "list.json")

    def test_empty_object_missing_fields(self):
        with pytest.raises(EventParseError, match=r"Missing required fields \(type, text\)"):
            parse_event("{}", "empty.json")

    def test_missing_text(self):
        with pytest.raises(EventParseError, match="x.json"):
            parse_event('{"type": "immediate"}', "x.json")

    def test_one_shot_requires_at(self):
        with pytest.raises(EventParseError, match="Missing 'at'"):
            parse_event('{"type": "one-shot", "text": "x"}', "x.json")

    def test_periodic_requires_schedule_and_timezone(self):
        with pytest.raises(EventParseError, match="Missing 'schedule'"):
            parse_event('{"type": "periodic", "text": "x", "timezone": "UTC"}', "x.json")
        with pytest.raises(EventParseError, match="Missing 'timezone'"):
            parse_event('{"type": "periodic", "text": "x", "schedule": "* * * * *"}', "x.json")

    def test_unknown_type(self):
        with pytest.raises(EventParseError, match='Unknown event type "weekly" in x.json'):
            parse_event('{"type": "weekly", "text": "x"}', "x.json")

    def test_oversized_content_rejected_before_parsing(self):
        content = json.dumps({"type": "immediate", "text": "x" * 200})
        with pytest.raises(EventParseError, match="too large"):
            parse_event(content, "big.json", max_bytes=100)


class TestParseTriggerTime:
    """Tests for parse_trigger_time."""

    def test_utc_timestamp(self):
        expected = datetime(2999, 1, 1, tzinfo=UTC).timestamp()
        assert parse_trigger_time("2999-01-01T00:00:00Z") == expected

    def test_offset_timestamp(self):
        expected = datetime(2030, 6, 1, 12, tzinfo=UTC).timestamp()
        assert parse_trigger_time("2030-06-01T14:00:00+02:00") == expected

    def test_naive_timestamp_is_local(self):
        expected = datetime(2030, 6, 1, 12).timestamp()
        assert parse_trigger_time("2030-06-01T12:00:00") == expected

    def test_unparsable(self):
        assert parse_trigger_time("tomorrow") is None
        assert parse_trigger_time("") is None

    def test_result_is_finite(self):
        value = parse_trigger_time("2030-01-01T00:00:00Z")
        assert value is not None and math.isfinite(value)


class TestDescribeSchedule:
    """Tests for describe_schedule and event_to_dict."""

    def test_describe(self):
        assert describe_schedule(ImmediateEvent(text="x")) == "immediate"
        assert describe_schedule(OneShotEvent(text="x", at="2030-01-01T00:00:00Z")) == (
            "2030-01-01T00:00:00Z"
        )
        assert describe_schedule(
            PeriodicEvent(text="x", schedule="*/5 * * * *", timezone="UTC")
        ) == "*/5 * * * *"

    def test_event_to_dict_round_trips_through_parser(self):
        event = PeriodicEvent(
            text="x", schedule="0 * * * *", timezone="UTC", session="ops"
        )
        data = event_to_dict(event)
        assert data == {
            "type": "periodic",
            "text": "x",
            "schedule": "0 * * * *",
            "timezone": "UTC",
            "session": "ops",
        }
        assert parse_event(json.dumps(data), "x.json") == event

    def test_event_to_dict_omits_missing_session(self):
        assert event_to_dict(ImmediateEvent(text="x")) == {"type": "immediate", "text": "x"}
