"""
Classification of agent log records into feed events.

Each record goes through three steps:
1. Field extraction (time, level, subsystem, message, payload)
2. An ordered rule table; the first rule that matches decides the
   event type and summary, or suppresses the record
3. An emptiness gate: records without a summary are dropped

Records no rule recognizes are dropped as well, so the feed only ever
shows lines it knows how to describe.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Sequence

from .models import ClassifiedEvent, EventType, LogLevel, PositionalArgs
from .normalization import (
    clean_recipient,
    extract_key_values,
    find_phone_number,
    first_text,
    humanize_duration,
    strip_ansi,
    strip_model_vendor,
)


LOGGER = logging.getLogger(__name__)

# Subsystem of records whose first argument is a plain message rather
# than a subsystem descriptor (the top-level agent process logs this way)
AGENT_SUBSYSTEM = "openclaw"
DEFAULT_SUBSYSTEM = "system"

# High-volume background subsystems hidden from the feed
DEFAULT_SUPPRESSED_SUBSYSTEMS = (
    "web-heartbeat",
    "heartbeat",
    "memory",
    "diagnostic",
    "plugins",
    "gateway/ws",
)

# Error-level noise that needs no action from whoever watches the feed
IGNORED_ERROR_PATTERNS = [
    re.compile(r'\bDeprecationWarning\b'),
    re.compile(r'\bExperimentalWarning\b'),
    re.compile(r'\[DEP\d+\]'),
    re.compile(r'^\(node:\d+\)'),
    re.compile(r'--trace-(?:warnings|deprecation)'),
    re.compile(r'\benv(?:ironment)? var(?:iable)?s?\b.*\b(?:not set|missing|ignored|deprecated)\b', re.IGNORECASE),
    re.compile(r'^[A-Z][A-Z0-9_]{2,}\s+(?:is )?(?:not set|deprecated|ignored)\b'),
    re.compile(r'^\W*openclaw\s+v?\d+\.\d+', re.IGNORECASE),
]

# Message markers
INBOUND_PATTERN = re.compile(r'\binbound (?:message|msg)\b|\bmessage received\b', re.IGNORECASE)
AUTO_REPLY_PATTERN = re.compile(r'\bauto-?reply sent\b', re.IGNORECASE)
RUN_ABORTED_PATTERN = re.compile(r'\brun aborted\b|\baborted=true\b', re.IGNORECASE)
RUN_START_PATTERN = re.compile(r'\brun start\b', re.IGNORECASE)
PROMPT_START_PATTERN = re.compile(r'\bprompt start\b', re.IGNORECASE)
PROMPT_END_PATTERN = re.compile(r'\bprompt end\b', re.IGNORECASE)
AGENT_END_PATTERN = re.compile(r'\bagent end\b', re.IGNORECASE)
RUN_DONE_PATTERN = re.compile(r'\brun done\b', re.IGNORECASE)
TOOL_START_PATTERN = re.compile(r'\btool (?:start|call)\b', re.IGNORECASE)
TOOL_END_PATTERN = re.compile(r'\btool (?:end|result)\b', re.IGNORECASE)
SENT_TO_PATTERN = re.compile(r'\bsent (?:chunk \d+/\d+ )?to\b\s*(\S+)?', re.IGNORECASE)
SESSION_STATE_PATTERN = re.compile(r'\bsession state\b', re.IGNORECASE)
LISTENING_PATTERN = re.compile(r'\blistening on\s+(\S+)', re.IGNORECASE)

# Failure wording that turns a success marker into an error report
FAILURE_PATTERN = re.compile(r'\b(?:not sent|fail(?:ed|ure|s)?|unable to|could not|couldn\'t|timed out)\b', re.IGNORECASE)

# Subsystem segments of the messaging channels
CHANNEL_SEGMENTS = {'channels', 'outbound', 'whatsapp', 'telegram', 'signal', 'discord', 'slack', 'imessage'}


@dataclass(frozen=True)
class RecordFields:
    """The fields of a raw record that the rules look at."""
    time: Any
    level: LogLevel
    subsystem: str
    raw_message: str
    data: dict
    args: PositionalArgs = field(default_factory=PositionalArgs)

    @property
    def key_values(self) -> dict[str, str]:
        return extract_key_values(self.raw_message)

    def lookup(self, *keys: str) -> Any:
        """Find a value by key in the payload, then in the message's key=value tokens."""
        for key in keys:
            value = self.data.get(key)
            if value not in (None, ''):
                return value
        tokens = self.key_values
        for key in keys:
            if tokens.get(key):
                return tokens[key]
        return None


@dataclass(frozen=True)
class Rule:
    """
    One entry of the rule table.

    A rule whose event_type is None suppresses the records it matches.
    """
    name: str
    matches: Callable[[RecordFields], bool]
    describe: Optional[Callable[[RecordFields], Optional[str]]] = None
    event_type: Optional[EventType] = None

    @property
    def suppresses(self) -> bool:
        return self.event_type is None


def _message_matches(pattern: re.Pattern) -> Callable[[RecordFields], bool]:
    return lambda fields: bool(pattern.search(fields.raw_message))


def _agent_message_matches(pattern: re.Pattern) -> Callable[[RecordFields], bool]:
    return lambda fields: 'agent' in fields.subsystem and bool(pattern.search(fields.raw_message))


def _agent_success_matches(pattern: re.Pattern) -> Callable[[RecordFields], bool]:
    return lambda fields: (
        'agent' in fields.subsystem
        and bool(pattern.search(fields.raw_message))
        and not FAILURE_PATTERN.search(fields.raw_message)
    )


def _is_delivery(fields: RecordFields) -> bool:
    segments = set(re.split(r'[/.]', fields.subsystem))
    return (
        bool(segments & CHANNEL_SEGMENTS)
        and bool(SENT_TO_PATTERN.search(fields.raw_message))
        and not FAILURE_PATTERN.search(fields.raw_message)
    )


def _is_inbound(fields: RecordFields) -> bool:
    if INBOUND_PATTERN.search(fields.raw_message):
        return True
    return fields.subsystem.rsplit('/', 1)[-1] == 'inbound' and 'body' in fields.data


def _describe_inbound(fields: RecordFields) -> str:
    return first_text(
        fields.data.get('body'),
        fields.data.get('text'),
        fields.data.get('message'),
    )


def _describe_auto_reply(fields: RecordFields) -> str:
    return first_text(fields.data.get('text'), fields.data.get('reply')) or "Auto-reply sent"


def _model_name(fields: RecordFields) -> Optional[str]:
    model = fields.lookup('model', 'modelId')
    if not isinstance(model, str) or not model.strip():
        return None
    return strip_model_vendor(model) or None


def _duration(fields: RecordFields) -> Optional[str]:
    return humanize_duration(fields.lookup('durationMs', 'elapsedMs'))


def _describe_run_start(fields: RecordFields) -> str:
    model = _model_name(fields)
    return f"Agent started thinking ({model})" if model else "Agent started thinking"


def _describe_prompt_start(fields: RecordFields) -> str:
    model = _model_name(fields)
    return f"Prompt sent to {model}" if model else "Prompt sent to model"


def _describe_prompt_end(fields: RecordFields) -> str:
    duration = _duration(fields)
    return f"Model responded in {duration}" if duration else "Model responded"


def _describe_agent_end(fields: RecordFields) -> str:
    return "Agent completed task"


def _describe_run_done(fields: RecordFields) -> str:
    duration = _duration(fields)
    return f"Agent finished in {duration}" if duration else "Agent finished"


def _describe_run_aborted(fields: RecordFields) -> str:
    duration = _duration(fields)
    return f"Agent run aborted after {duration}" if duration else "Agent run aborted"


def _tool_name(fields: RecordFields) -> Optional[str]:
    tool = fields.lookup('tool', 'toolName', 'name')
    return tool.strip() if isinstance(tool, str) and tool.strip() else None


def _describe_tool_start(fields: RecordFields) -> str:
    tool = _tool_name(fields)
    return f"Using tool: {tool}" if tool else "Using a tool"


def _describe_tool_end(fields: RecordFields) -> str:
    tool = _tool_name(fields)
    duration = _duration(fields)
    message = f"Tool finished: {tool}" if tool else "Tool finished"
    return f"{message} ({duration})" if duration else message


def _describe_sent(fields: RecordFields) -> str:
    recipient = None
    match = SENT_TO_PATTERN.search(fields.raw_message)
    if match and match.group(1):
        target = match.group(1).strip('.,:;')
        recipient = find_phone_number(target) or clean_recipient(target)
    if not recipient:
        recipient = clean_recipient(fields.data.get('to')) or clean_recipient(fields.data.get('jid'))
    return f"Message sent to {recipient}" if recipient else "Message sent"


def _describe_session_state(fields: RecordFields) -> str:
    previous = fields.lookup('prev', 'from')
    current = fields.lookup('new', 'to', 'state')
    if previous and current:
        return f"Session: {previous} → {current}"
    if current:
        return f"Session: {current}"
    return "Session state changed"


def _describe_listening(fields: RecordFields) -> str:
    match = LISTENING_PATTERN.search(fields.raw_message)
    return f"Gateway listening on {match.group(1)}"


# Order matters: the first matching rule wins
DEFAULT_RULES = [
    Rule("user-message", _is_inbound, _describe_inbound, EventType.USER_MESSAGE),
    Rule("auto-reply", _message_matches(AUTO_REPLY_PATTERN), _describe_auto_reply, EventType.AGENT_RESPONSE),
    Rule("run-aborted", _agent_message_matches(RUN_ABORTED_PATTERN), _describe_run_aborted, EventType.AGENT_THINKING),
    Rule("run-start", _agent_message_matches(RUN_START_PATTERN), _describe_run_start, EventType.AGENT_THINKING),
    Rule("prompt-start", _agent_message_matches(PROMPT_START_PATTERN), _describe_prompt_start, EventType.AGENT_THINKING),
    Rule("prompt-end", _agent_message_matches(PROMPT_END_PATTERN), _describe_prompt_end, EventType.AGENT_THINKING),
    Rule("agent-end", _agent_message_matches(AGENT_END_PATTERN), _describe_agent_end, EventType.AGENT_THINKING),
    Rule("run-done", _agent_message_matches(RUN_DONE_PATTERN), _describe_run_done, EventType.AGENT_THINKING),
    Rule("tool-start", _agent_success_matches(TOOL_START_PATTERN), _describe_tool_start, EventType.TOOL_USE),
    Rule("tool-end", _agent_success_matches(TOOL_END_PATTERN), _describe_tool_end, EventType.TOOL_USE),
    Rule("message-sent", _is_delivery, _describe_sent, EventType.AGENT_RESPONSE),
    Rule("session-state", _message_matches(SESSION_STATE_PATTERN), _describe_session_state, EventType.SYSTEM),
    Rule("gateway-listening", _message_matches(LISTENING_PATTERN), _describe_listening, EventType.SYSTEM),
]


def subsystem_matches(subsystem: str, name: str) -> bool:
    """
    Check if a subsystem belongs to a configured name.

    "gateway/ws" matches itself and "gateway/ws/client"; a single
    segment such as "memory" also matches "agent/memory".
    """
    name = name.strip().strip('/')
    if not name:
        return False
    if subsystem == name or subsystem.startswith(name + '/'):
        return True
    return name in re.split(r'[/.]', subsystem)


def extract_subsystem(descriptor: Any) -> str:
    """Resolve the subsystem from a record's first positional argument."""
    if descriptor is None or descriptor == '':
        return DEFAULT_SUBSYSTEM

    if isinstance(descriptor, dict):
        parsed = descriptor
    elif isinstance(descriptor, str):
        try:
            parsed = json.loads(descriptor)
        except (json.JSONDecodeError, RecursionError):
            return AGENT_SUBSYSTEM
    else:
        return AGENT_SUBSYSTEM

    if not isinstance(parsed, dict):
        return AGENT_SUBSYSTEM

    return first_text(parsed.get('subsystem'), parsed.get('module')) or DEFAULT_SUBSYSTEM


def extract_raw_message(args: PositionalArgs) -> str:
    """Pick the technical message out of the positional arguments."""
    candidates = [args.trailing_message, args.payload]
    descriptor = args.module_descriptor
    if isinstance(descriptor, str) and not descriptor.lstrip().startswith('{'):
        candidates.append(descriptor)

    return first_text(*(strip_ansi(c) for c in candidates if isinstance(c, str)))


def extract_fields(record: dict) -> RecordFields:
    """Pull time, level, subsystem, message and payload out of a raw record."""
    meta = record.get('_meta')
    if not isinstance(meta, dict):
        meta = {}

    args = PositionalArgs.from_record(record)

    return RecordFields(
        time=record.get('time') or meta.get('date'),
        level=LogLevel.from_string(meta.get('logLevelName')),
        subsystem=extract_subsystem(args.module_descriptor),
        raw_message=extract_raw_message(args),
        data=args.payload if isinstance(args.payload, dict) else {},
        args=args,
    )


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            try:
                return datetime.fromisoformat(text.replace('Z', '+00:00'))
            except ValueError:
                return None

    if isinstance(value, (int, float)):
        # Epoch milliseconds vs seconds
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    return None


def format_clock(value: Any) -> str:
    """Render a record timestamp as a local clock string, or "" if unusable."""
    moment = _to_datetime(value)
    if moment is None:
        return ''
    try:
        return moment.astimezone().strftime('%X')
    except (OverflowError, ValueError):
        # Shifting to local time can leave the supported date range
        return ''


class Classifier:
    """
    Turns raw records into feed events.

    The rule table is fixed per instance; the suppression set and the
    ignored error patterns come from configuration.
    """

    def __init__(
        self,
        suppressed_subsystems: Iterable[str] = DEFAULT_SUPPRESSED_SUBSYSTEMS,
        ignored_error_patterns: Sequence[re.Pattern] = IGNORED_ERROR_PATTERNS,
        rules: Sequence[Rule] = DEFAULT_RULES,
    ):
        """
        Initialize the classifier.

        Args:
            suppressed_subsystems: Subsystems whose records are never shown
            ignored_error_patterns: Error messages that are dropped instead of shown
            rules: Ordered rules evaluated before the error rules
        """
        self.suppressed_subsystems = tuple(s for s in suppressed_subsystems if s and s.strip())
        self.ignored_error_patterns = list(ignored_error_patterns)
        self.rules = [
            Rule("suppressed-subsystem", self._is_suppressed_subsystem),
            *rules,
            Rule("ignored-error", self._is_ignored_error),
            Rule("error", lambda fields: fields.level.is_error, lambda fields: fields.raw_message, EventType.ERROR),
        ]

    def classify(self, record: Any) -> Optional[ClassifiedEvent]:
        """
        Classify a single raw record.

        Args:
            record: Decoded JSON object from one log line

        Returns:
            ClassifiedEvent, or None if the record is not shown
        """
        if not isinstance(record, dict):
            return None

        try:
            fields = extract_fields(record)
            match = self.match(fields)
            if match is None or match.suppresses:
                return None
            message = match.describe(fields) if match.describe else None
        except (ArithmeticError, AttributeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.debug("Dropping record that failed classification: %s", exc)
            return None

        if not isinstance(message, str) or not message.strip():
            return None

        return ClassifiedEvent(
            time=format_clock(fields.time),
            timestamp=fields.time,
            level=fields.level.name,
            subsystem=fields.subsystem,
            event_type=match.event_type,
            message=message.strip(),
            raw_message=fields.raw_message,
            data=fields.data,
            raw=record,
        )

    def match(self, fields: RecordFields) -> Optional[Rule]:
        """Return the first rule matching the fields, or None."""
        for rule in self.rules:
            if rule.matches(fields):
                return rule
        return None

    def _is_suppressed_subsystem(self, fields: RecordFields) -> bool:
        return any(subsystem_matches(fields.subsystem, name) for name in self.suppressed_subsystems)

    def _is_ignored_error(self, fields: RecordFields) -> bool:
        if not fields.level.is_error:
            return False
        return any(pattern.search(fields.raw_message) for pattern in self.ignored_error_patterns)
