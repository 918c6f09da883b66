"""Extraction of JSON records from raw log lines."""

import json
from typing import Iterable, Iterator, Optional


class LineParser:
    """
    Parses one JSON record out of each log line.
    
    Handles the two formats the agent writes:
    - Plain JSON lines (the whole line is one object)
    - Lines with a non-JSON prefix such as a timestamp banner,
      followed by a trailing JSON object
    
    Anything else (blank lines, banners, truncated writes) yields None.
    """
    
    def parse(self, line: str) -> Optional[dict]:
        """
        Parse a single log line.
        
        Args:
            line: Raw log line
            
        Returns:
            The decoded JSON object, or None if the line holds none
        """
        if not isinstance(line, str):
            return None
        
        stripped = line.strip()
        if not stripped:
            return None
        
        # Try the whole line first
        if stripped.startswith('{'):
            record = self._loads(stripped)
            if record is not None:
                return record
        
        return self._parse_trailing_object(stripped)
    
    def parse_lines(self, lines: Iterable[str]) -> Iterator[dict]:
        """
        Parse an iterable of log lines, skipping the ones without a record.
        
        Args:
            lines: Raw log lines in file order
            
        Yields:
            Decoded JSON objects in the same order
        """
        for line in lines:
            record = self.parse(line)
            if record is not None:
                yield record
    
    def _parse_trailing_object(self, line: str) -> Optional[dict]:
        """Find the object that starts at the right-most '{' and still parses."""
        if not line.endswith('}'):
            return None
        
        start = line.rfind('{')
        while start > 0:
            record = self._loads(line[start:])
            if record is not None:
                return record
            start = line.rfind('{', 0, start)
        
        # start == 0 was already tried by parse(); start == -1 means no object at all
        return None
    
    @staticmethod
    def _loads(text: str) -> Optional[dict]:
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, RecursionError):
            return None
        return data if isinstance(data, dict) else None
