"""Tests for line parsing and record classification."""

import json
import re
import time

import pytest
from logfeed.classification import (
    AGENT_SUBSYSTEM,
    Classifier,
    extract_fields,
    extract_subsystem,
    format_clock,
    subsystem_matches,
)
from logfeed.feed import classify_all
from logfeed.models import EventType, LogLevel
from logfeed.normalization import (
    clean_recipient,
    extract_key_values,
    humanize_duration,
    strip_ansi,
    strip_model_vendor,
)
from logfeed.parsing import LineParser


def make_record(subsystem=None, payload=None, message=None, level="INFO", time="2026-10-16T10:30:45.000Z"):
    """Build a record the way the agent's logger writes it."""
    record = {"_meta": {"logLevelName": level, "date": time}, "time": time}
    if subsystem is not None:
        record["0"] = json.dumps({"subsystem": subsystem})
    if payload is not None:
        record["1"] = payload
    if message is not None:
        record["2"] = message
    return record


@pytest.fixture
def new_york_time(monkeypatch):
    """Run with a local time zone west of UTC."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


class TestLineParser:
    """Tests for LineParser."""

    @pytest.mark.parametrize("line", ["", "   ", "\n", "10:30:45 AM", "INFO", "not json at all", "{broken", "[1, 2, 3]"])
    def test_non_json_lines(self, line):
        """Lines without a JSON object yield nothing."""
        assert LineParser().parse(line) is None

    def test_whole_line_object(self):
        """A line that is exactly an object is returned unchanged."""
        record = {"0": '{"subsystem":"agent/embedded"}', "1": "run start", "_meta": {"logLevelName": "INFO"}}

        assert LineParser().parse("  " + json.dumps(record) + "  \n") == record

    def test_prefixed_object(self):
        """A non-JSON prefix in front of the object is skipped."""
        line = '2026-10-16T10:30:45Z [openclaw] {"a": 1, "b": {"c": [1, 2]}}'

        assert LineParser().parse(line) == {"a": 1, "b": {"c": [1, 2]}}

    def test_prefix_with_braces(self):
        """Braces inside the prefix do not confuse the extraction."""
        line = '{banner} level=info {"msg": "hello"}'

        assert LineParser().parse(line) == {"msg": "hello"}

    def test_trailing_garbage(self):
        """An object followed by more text is not a record."""
        assert LineParser().parse('{"a": 1} trailing') is None

    def test_parse_lines_skips_noise(self):
        """parse_lines keeps only decodable records, in order."""
        lines = ['{"n": 1}', 'noise', '', 'prefix {"n": 2}', '{"n":']

        records = list(LineParser().parse_lines(lines))

        assert records == [{"n": 1}, {"n": 2}]


class TestFieldExtraction:
    """Tests for pulling fields out of raw records."""

    def test_subsystem_from_descriptor(self):
        assert extract_subsystem('{"subsystem":"agent/embedded"}') == "agent/embedded"
        assert extract_subsystem('{"module":"gateway"}') == "gateway"
        assert extract_subsystem('{"other":1}') == "system"

    def test_subsystem_plain_string(self):
        """A plain first argument belongs to the top-level agent process."""
        assert extract_subsystem("gateway starting") == AGENT_SUBSYSTEM
        assert extract_subsystem('{"unterminated":') == AGENT_SUBSYSTEM

    def test_subsystem_absent(self):
        assert extract_subsystem(None) == "system"

    def test_level_and_time(self):
        fields = extract_fields({"_meta": {"logLevelName": "warn", "date": "2026-10-16T10:30:45Z"}, "2": "x"})

        assert fields.level == LogLevel.WARN
        assert fields.time == "2026-10-16T10:30:45Z"

    def test_level_defaults_to_unknown(self):
        assert extract_fields({"2": "x"}).level == LogLevel.UNKNOWN

    def test_raw_message_precedence(self):
        """Field 2 wins over a string field 1, which wins over a plain field 0."""
        assert extract_fields({"0": "zero", "1": "one", "2": "two"}).raw_message == "two"
        assert extract_fields({"0": "zero", "1": "\x1b[32mone\x1b[39m"}).raw_message == "one"
        assert extract_fields({"0": "\x1b[1mzero\x1b[0m", "1": {"k": 1}}).raw_message == "zero"
        assert extract_fields({"0": '{"subsystem":"x"}', "1": {"k": 1}}).raw_message == ""

    def test_data_is_object_payload(self):
        assert extract_fields({"1": {"k": 1}}).data == {"k": 1}
        assert extract_fields({"1": "text"}).data == {}
        assert extract_fields({"1": None}).data == {}


class TestClassifier:
    """Tests for Classifier rules."""

    def test_run_start_with_model(self):
        """Agent lifecycle records show the model without its vendor prefix."""
        record = {"0": '{"subsystem":"agent/embedded"}', "1": "run start model=gpt-4"}

        event = Classifier().classify(record)

        assert event.event_type == EventType.AGENT_THINKING
        assert "gpt-4" in event.message
        assert event.subsystem == "agent/embedded"

    def test_run_start_strips_vendor(self):
        record = make_record("agent/embedded", message="embedded run start: runId=r1 provider=anthropic model=anthropic/claude-opus-4")

        event = Classifier().classify(record)

        assert event.message == "Agent started thinking (claude-opus-4)"

    def test_user_message(self):
        record = make_record("gateway/channels/whatsapp/inbound", {"from": "+15551234567", "body": "hello"}, "inbound message")

        event = Classifier().classify(record)

        assert event.event_type == EventType.USER_MESSAGE
        assert event.message == "hello"
        assert event.data == {"from": "+15551234567", "body": "hello"}

    def test_user_message_without_body_is_dropped(self):
        record = make_record("gateway/channels/whatsapp/inbound", {"from": "+15551234567"}, "inbound message")

        assert Classifier().classify(record) is None

    def test_auto_reply(self):
        record = make_record("gateway/channels/whatsapp/auto-reply", {"text": "Hi there"}, "auto-reply sent (text)")

        event = Classifier().classify(record)

        assert event.event_type == EventType.AGENT_RESPONSE
        assert event.message == "Hi there"
        assert event.raw_message == "auto-reply sent (text)"

    def test_prompt_end_duration(self):
        record = make_record("agent/embedded", {"durationMs": 1234}, "embedded run prompt end: runId=r1")

        event = Classifier().classify(record)

        assert event.event_type == EventType.AGENT_THINKING
        assert event.message == "Model responded in 1.2s"

    def test_run_done_duration_from_message(self):
        record = make_record("agent/embedded", message="embedded run done: runId=r1 durationMs=850 aborted=false")

        assert Classifier().classify(record).message == "Agent finished in 850ms"

    def test_run_aborted(self):
        record = make_record("agent/embedded", message="embedded run done: runId=r1 durationMs=65000 aborted=true")

        assert Classifier().classify(record).message == "Agent run aborted after 1m 5s"

    def test_agent_end(self):
        record = make_record("agent/embedded", message="embedded run agent end: runId=r1")

        assert Classifier().classify(record).message == "Agent completed task"

    def test_tool_start(self):
        record = make_record("agent/embedded", message="embedded run tool start: runId=r1 tool=exec toolCallId=t1")

        event = Classifier().classify(record)

        assert event.event_type == EventType.TOOL_USE
        assert event.message == "Using tool: exec"

    def test_tool_without_name(self):
        record = make_record("agent/embedded", message="tool start")

        assert Classifier().classify(record).message == "Using a tool"

    def test_message_sent(self):
        record = make_record("gateway/channels/whatsapp/outbound", message="Sent chunk 1/2 to +15551234567")

        event = Classifier().classify(record)

        assert event.event_type == EventType.AGENT_RESPONSE
        assert event.message == "Message sent to +15551234567"

    def test_message_sent_to_chat_id(self):
        record = make_record("gateway/channels/whatsapp/outbound", {"to": "15551234567@s.whatsapp.net"}, "message sent to")

        assert Classifier().classify(record).message == "Message sent to +15551234567"

    def test_failed_delivery_is_an_error(self):
        record = make_record(
            "gateway/channels/whatsapp/outbound",
            message="Failed: message not sent to +15551234567: timeout",
            level="ERROR",
        )

        event = Classifier().classify(record)

        assert event.event_type == EventType.ERROR
        assert event.message == "Failed: message not sent to +15551234567: timeout"

    def test_sent_outside_channels_is_not_a_delivery(self):
        record = make_record("gateway", message="metrics sent to collector")

        assert Classifier().classify(record) is None

    def test_failed_tool_call_is_an_error(self):
        record = make_record("gateway", message="tool call failed: ENOENT", level="ERROR")

        event = Classifier().classify(record)

        assert event.event_type == EventType.ERROR
        assert event.message == "tool call failed: ENOENT"

    def test_failed_agent_tool_call_is_an_error(self):
        record = make_record("agent/embedded", message="embedded run tool start failed: tool=exec", level="ERROR")

        assert Classifier().classify(record).event_type == EventType.ERROR

    def test_tool_marker_outside_agent_is_dropped(self):
        record = make_record("gateway", message="tool start tool=exec")

        assert Classifier().classify(record) is None

    @pytest.mark.parametrize("record", [
        make_record("agent/embedded", message="embedded run done: runId=r1 durationMs=1e999"),
        make_record("agent/embedded", {"durationMs": float("inf")}, "embedded run prompt end: runId=r1"),
    ])
    def test_infinite_duration(self, record):
        event = Classifier().classify(record)

        assert event.event_type == EventType.AGENT_THINKING
        assert event.message in ("Agent finished", "Model responded")

    def test_infinite_duration_from_json_line(self):
        line = json.dumps(make_record("agent/embedded", message="run prompt end")).replace(
            '"2":', '"1": {"durationMs": Infinity}, "2":'
        )

        events = classify_all([line])

        assert [e.message for e in events] == ["Model responded"]

    def test_out_of_range_local_time(self, new_york_time):
        record = make_record(level="ERROR", message="boom", time="0001-01-01T00:00:00+00:00")

        event = Classifier().classify(record)

        assert event.event_type == EventType.ERROR
        assert event.time == ""
        assert event.timestamp == "0001-01-01T00:00:00+00:00"

    def test_error(self):
        record = make_record("gateway", message="Connection to provider failed", level="ERROR")

        event = Classifier().classify(record)

        assert event.event_type == EventType.ERROR
        assert event.message == "Connection to provider failed"
        assert event.level == "ERROR"

    @pytest.mark.parametrize("message", [
        "(node:1234) [DEP0040] DeprecationWarning: The `punycode` module is deprecated.",
        "(Use `node --trace-warnings ...` to show where the warning was created)",
        "ExperimentalWarning: The Fetch API is an experimental feature.",
        "environment variable OPENAI_API_KEY not set",
    ])
    def test_infrastructure_warnings_are_dropped(self, message):
        record = {"_meta": {"logLevelName": "ERROR"}, "0": message}

        assert Classifier().classify(record) is None

    def test_rule_order_beats_error_level(self):
        """An error-level record matched by an earlier rule keeps that rule's type."""
        record = make_record("agent/embedded", message="embedded run tool end: tool=browser", level="ERROR")

        assert Classifier().classify(record).event_type == EventType.TOOL_USE

    @pytest.mark.parametrize("subsystem", ["web-heartbeat", "memory", "diagnostic", "plugins", "gateway/ws", "agent/memory"])
    @pytest.mark.parametrize("level", ["INFO", "ERROR"])
    def test_suppressed_subsystems(self, subsystem, level):
        record = make_record(subsystem, {"messagesHandled": 3}, "embedded run start model=gpt-4 failed", level=level)

        assert Classifier().classify(record) is None

    def test_suppression_is_configurable(self):
        record = make_record("diagnostic", {"prev": "idle", "new": "processing"}, "session state")

        assert Classifier().classify(record) is None

        event = Classifier(suppressed_subsystems=[]).classify(record)
        assert event.event_type == EventType.SYSTEM
        assert event.message == "Session: idle → processing"

    def test_gateway_listening(self):
        record = {"_meta": {"logLevelName": "INFO"}, "0": "listening on ws://127.0.0.1:18789"}

        event = Classifier().classify(record)

        assert event.event_type == EventType.SYSTEM
        assert event.subsystem == AGENT_SUBSYSTEM

    def test_unknown_records_are_dropped(self):
        assert Classifier().classify(make_record("gateway", message="something routine")) is None
        assert Classifier().classify(make_record(level="WARN", message="slow response")) is None
        assert Classifier().classify({}) is None

    @pytest.mark.parametrize("record", [None, [], "text", {"0": 5, "1": [1], "2": 7}, {"_meta": "x", "time": True}])
    def test_never_raises(self, record):
        assert Classifier().classify(record) is None

    def test_time_formatting(self):
        event = Classifier().classify(make_record(level="ERROR", message="boom"))

        assert re.search(r"\d{1,2}:\d{2}:\d{2}", event.time)
        assert event.timestamp == "2026-10-16T10:30:45.000Z"

    def test_missing_time(self):
        record = {"_meta": {"logLevelName": "ERROR"}, "2": "boom"}

        event = Classifier().classify(record)

        assert event.time == ""
        assert event.timestamp is None

    def test_raw_record_is_kept(self):
        record = make_record(level="ERROR", message="boom")

        assert Classifier().classify(record).raw is record

    def test_idempotent(self):
        classifier = Classifier()
        record = make_record("agent/embedded", {"durationMs": 20}, "run prompt end")

        assert classifier.classify(record) == classifier.classify(record)

    def test_to_dict_keys(self):
        event = Classifier().classify(make_record(level="ERROR", message="boom"))

        assert set(event.to_dict()) == {
            "time", "timestamp", "level", "subsystem", "eventType",
            "message", "rawMessage", "data", "raw",
        }
        assert event.to_dict()["eventType"] == "error"


class TestClassifyAll:
    """Tests for classifying a whole batch of lines."""

    def test_order_and_counts(self):
        lines = [
            "10:30:45 AM",
            json.dumps(make_record("agent/embedded", message="run start model=gpt-4")),
            json.dumps(make_record("web-heartbeat", {"messagesHandled": 1}, "heartbeat")),
            "",
            "prefix " + json.dumps(make_record(level="ERROR", message="boom")),
            json.dumps(make_record("gateway", message="routine")),
            "{not json",
        ]

        events = classify_all(lines)

        assert [e.event_type for e in events] == [EventType.AGENT_THINKING, EventType.ERROR]
        assert all(e.message for e in events)


class TestNormalization:
    """Tests for message helpers."""

    def test_strip_ansi(self):
        assert strip_ansi("\x1b[31mred\x1b[0m text") == "red text"

    def test_key_values(self):
        values = extract_key_values('run start runId=abc model=openai/gpt-4 label="a b"')

        assert values == {"runId": "abc", "model": "openai/gpt-4", "label": "a b"}

    def test_strip_model_vendor(self):
        assert strip_model_vendor("openai/gpt-4") == "gpt-4"
        assert strip_model_vendor("gpt-4") == "gpt-4"
        assert strip_model_vendor("llama3:8b") == "llama3:8b"

    @pytest.mark.parametrize("value, expected", [
        (0, "0ms"),
        (850, "850ms"),
        ("1234", "1.2s"),
        (65000, "1m 5s"),
        (3_720_000, "1h 2m"),
        (None, None),
        ("soon", None),
        (-5, None),
        (float("inf"), None),
        ("1e999", None),
        (float("nan"), None),
    ])
    def test_humanize_duration(self, value, expected):
        assert humanize_duration(value) == expected

    def test_clean_recipient(self):
        assert clean_recipient("15551234567@s.whatsapp.net") == "+15551234567"
        assert clean_recipient("+15551234567") == "+15551234567"
        assert clean_recipient(None) is None

    def test_subsystem_matches(self):
        assert subsystem_matches("gateway/ws", "gateway/ws")
        assert subsystem_matches("gateway/ws/client", "gateway/ws")
        assert subsystem_matches("agent/memory", "memory")
        assert not subsystem_matches("gateway/wsx", "gateway/ws")
        assert not subsystem_matches("memoryless", "memory")

    def test_format_clock_epoch(self):
        assert re.search(r"\d{1,2}:\d{2}:\d{2}", format_clock(1760610645000))
        assert re.search(r"\d{1,2}:\d{2}:\d{2}", format_clock(1760610645))
        assert format_clock("yesterday") == ""
        assert format_clock(None) == ""

    def test_format_clock_out_of_range(self, new_york_time):
        assert format_clock("0001-01-01T00:00:00+00:00") == ""
