"""Reading agent log files from a log directory."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

# Chunk size for reading log files (64KB)
CHUNK_SIZE = 64 * 1024

LOG_SUFFIX = '.log'

LOGGER = logging.getLogger(__name__)


class LogFileNotFoundError(FileNotFoundError):
    """The requested log file does not exist."""


class LogDirectoryNotFoundError(FileNotFoundError):
    """The requested log directory does not exist."""


class InvalidLogFileName(ValueError):
    """The file name would resolve outside the log directory."""


def today_log_file(prefix: str, today: Optional[datetime] = None) -> str:
    """
    Name of the log file the agent writes to today.
    
    The agent names its files by UTC date: "<prefix>-YYYY-MM-DD.log".
    """
    today = today or datetime.now(timezone.utc)
    return f"{prefix}-{today.strftime('%Y-%m-%d')}{LOG_SUFFIX}"


def resolve_log_path(log_dir: str, log_file: str) -> Path:
    """
    Join a directory and a bare file name.
    
    Raises:
        InvalidLogFileName: If the name has path components
    """
    name = Path(log_file)
    if not log_file or name.name != log_file or log_file in ('.', '..'):
        raise InvalidLogFileName(f"Invalid log file name: {log_file!r}")
    return Path(log_dir) / name


def read_log_lines(log_dir: str, log_file: str) -> list[str]:
    """
    Read all lines of a log file.
    
    Args:
        log_dir: Directory holding the agent's log files
        log_file: Bare file name inside that directory
        
    Returns:
        The file's lines in order (an empty file gives an empty list)
        
    Raises:
        LogFileNotFoundError: If the file does not exist
        InvalidLogFileName: If the name has path components
        OSError: On any other read failure
    """
    path = resolve_log_path(log_dir, log_file)
    
    try:
        with open(path, 'rb') as f:
            lines = list(_read_plain_file(f))
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise LogFileNotFoundError(f"Log file not found: {path}") from exc
    
    LOGGER.debug("Read %d lines from %s", len(lines), path)
    return lines


def list_log_files(log_dir: str) -> list[str]:
    """
    List the log files of a directory, newest name first.
    
    Raises:
        LogDirectoryNotFoundError: If the directory does not exist
        OSError: On any other listing failure
    """
    directory = Path(log_dir)
    if not directory.is_dir():
        raise LogDirectoryNotFoundError(f"Directory not found: {log_dir}")
    
    names = [p.name for p in directory.iterdir() if p.name.endswith(LOG_SUFFIX) and p.is_file()]
    return sorted(names, reverse=True)


def _read_plain_file(file: BinaryIO) -> Iterator[str]:
    """Read a plain text log file."""
    buffer = ""
    pending = b""
    
    while True:
        chunk = file.read(CHUNK_SIZE)
        if not chunk:
            if pending:
                buffer += pending.decode('utf-8', errors='replace')
            if buffer:
                yield buffer.rstrip('\r')
            break
        
        # Keep a multi-byte character split across chunks for the next round
        data = pending + chunk
        try:
            decoded = data.decode('utf-8')
            pending = b""
        except UnicodeDecodeError as exc:
            if exc.start >= len(data) - 3 and exc.reason == 'unexpected end of data':
                decoded = data[:exc.start].decode('utf-8', errors='replace')
                pending = data[exc.start:]
            else:
                decoded = data.decode('utf-8', errors='replace')
                pending = b""
        
        buffer += decoded
        lines = buffer.split('\n')
        
        # Yield all complete lines, keep the last partial line in buffer
        for line in lines[:-1]:
            yield line.rstrip('\r')
        buffer = lines[-1]
