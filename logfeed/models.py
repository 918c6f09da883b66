"""Data models for the log feed."""

from dataclasses import dataclass, field
from typing import Any, Optional
from enum import Enum


class LogLevel(Enum):
    """Normalized log levels."""
    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    FATAL = 5
    UNKNOWN = -1

    @classmethod
    def from_string(cls, level_str: Optional[str]) -> "LogLevel":
        """Parse a log level name to enum."""
        if not level_str or not isinstance(level_str, str):
            return cls.UNKNOWN
        
        normalized = level_str.upper().strip()
        
        # Handle common variations
        level_map = {
            "SILLY": cls.TRACE,
            "TRACE": cls.TRACE,
            "DEBUG": cls.DEBUG,
            "INFO": cls.INFO,
            "INFORMATION": cls.INFO,
            "WARN": cls.WARN,
            "WARNING": cls.WARN,
            "ERROR": cls.ERROR,
            "ERR": cls.ERROR,
            "FATAL": cls.FATAL,
            "CRITICAL": cls.FATAL,
        }
        
        return level_map.get(normalized, cls.UNKNOWN)

    @property
    def is_error(self) -> bool:
        return self in (LogLevel.ERROR, LogLevel.FATAL)


class EventType(str, Enum):
    """Display categories a log record can be classified into."""
    USER_MESSAGE = "user-message"
    AGENT_THINKING = "agent-thinking"
    AGENT_RESPONSE = "agent-response"
    TOOL_USE = "tool-use"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class PositionalArgs:
    """
    The numbered fields ("0", "1", "2") of a record.
    
    The agent logs through a multi-argument logger call, so the first
    argument is usually a JSON subsystem descriptor, the second a
    message or payload object and the third a message.
    """
    module_descriptor: Any = None
    payload: Any = None
    trailing_message: Any = None

    @classmethod
    def from_record(cls, record: dict) -> "PositionalArgs":
        return cls(
            module_descriptor=record.get("0"),
            payload=record.get("1"),
            trailing_message=record.get("2"),
        )


@dataclass
class ClassifiedEvent:
    """A single record as shown in the feed."""
    time: str
    timestamp: Any
    level: str
    subsystem: str
    event_type: EventType
    message: str
    raw_message: str
    data: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)
    
    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "time": self.time,
            "timestamp": self.timestamp,
            "level": self.level,
            "subsystem": self.subsystem,
            "eventType": self.event_type.value,
            "message": self.message,
            "rawMessage": self.raw_message,
            "data": self.data,
            "raw": self.raw,
        }


@dataclass
class FeedResult:
    """The tail of a log file, ready to be returned to a client."""
    path: str
    events: list[ClassifiedEvent] = field(default_factory=list)
    total: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def showing(self) -> int:
        return len(self.events)
    
    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        result = {
            "logs": [event.to_dict() for event in self.events],
            "total": self.total,
            "showing": self.showing,
            "path": self.path,
            "counts": self.counts,
        }
        if self.error:
            result["error"] = self.error
        return result
