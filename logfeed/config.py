"""Service configuration from environment variables."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .classification import DEFAULT_SUPPRESSED_SUBSYSTEMS


DEFAULT_LOG_DIR = "/tmp/openclaw"
DEFAULT_FILE_PREFIX = "openclaw"
DEFAULT_LIMIT = 500
MAX_LIMIT = 10000
DEFAULT_REFRESH_MS = 5000


@dataclass(frozen=True)
class Settings:
    """Settings shared by the HTTP layer and the feed."""
    log_dir: str = DEFAULT_LOG_DIR
    file_prefix: str = DEFAULT_FILE_PREFIX
    default_limit: int = DEFAULT_LIMIT
    refresh_interval_ms: int = DEFAULT_REFRESH_MS
    suppressed_subsystems: tuple[str, ...] = DEFAULT_SUPPRESSED_SUBSYSTEMS
    cors_origins: tuple[str, ...] = ("*",)
    static_dir: Optional[str] = None
    log_level: str = "INFO"


def _split_list(value: Optional[str], default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _int(value: Optional[str], default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    try:
        number = int(value) if value is not None else default
    except ValueError:
        return default
    if number < minimum or (maximum is not None and number > maximum):
        return default
    return number


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from the environment.
    
    Malformed numbers fall back to their defaults. An empty
    LOGFEED_SUPPRESSED_SUBSYSTEMS disables suppression entirely.
    """
    env = os.environ if environ is None else environ
    
    return Settings(
        log_dir=env.get("LOGFEED_LOG_DIR") or DEFAULT_LOG_DIR,
        file_prefix=env.get("LOGFEED_FILE_PREFIX") or DEFAULT_FILE_PREFIX,
        default_limit=_int(env.get("LOGFEED_DEFAULT_LIMIT"), DEFAULT_LIMIT, maximum=MAX_LIMIT),
        refresh_interval_ms=_int(env.get("LOGFEED_REFRESH_MS"), DEFAULT_REFRESH_MS, minimum=250),
        suppressed_subsystems=_split_list(
            env.get("LOGFEED_SUPPRESSED_SUBSYSTEMS"), DEFAULT_SUPPRESSED_SUBSYSTEMS
        ),
        cors_origins=_split_list(env.get("LOGFEED_CORS_ORIGINS"), ("*",)) or ("*",),
        static_dir=env.get("LOGFEED_STATIC_DIR") or None,
        log_level=(env.get("LOGFEED_LOG_LEVEL") or "INFO").upper(),
    )
