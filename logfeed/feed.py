"""Feed orchestration: read, parse, classify, tail."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .aggregation import ALL_LEVELS, build_feed_result, count_by_event_type
from .classification import Classifier
from .ingestion import LogFileNotFoundError, read_log_lines, resolve_log_path
from .models import ClassifiedEvent, FeedResult
from .parsing import LineParser


LOGGER = logging.getLogger(__name__)


class LogFeed:
    """
    Main orchestrator for the log feed.
    
    Coordinates:
    - File reading
    - Line parsing
    - Classification
    - Level filtering and tailing
    """
    
    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        parser: Optional[LineParser] = None,
    ):
        self.classifier = classifier or Classifier()
        self.parser = parser or LineParser()
    
    def classify_all(self, lines: Iterable[str]) -> list[ClassifiedEvent]:
        """
        Parse and classify raw lines.
        
        Lines without a JSON record and records that classify to
        nothing are dropped; the rest keep their relative order.
        """
        events = []
        for record in self.parser.parse_lines(lines):
            event = self.classifier.classify(record)
            if event is not None:
                events.append(event)
        return events
    
    def tail(
        self,
        log_dir: str,
        log_file: str,
        limit: int,
        level: str = ALL_LEVELS,
    ) -> FeedResult:
        """
        Build the feed for one log file.
        
        Args:
            log_dir: Directory holding the log files
            log_file: Bare file name
            limit: Number of most recent events to return
            level: Level filter ("all" for none)
            
        Returns:
            FeedResult; a missing file gives an empty result with an error message
            
        Raises:
            InvalidLogFileName: If the file name has path components
            OSError: On read failures other than a missing file
        """
        path = str(resolve_log_path(log_dir, log_file))
        
        try:
            lines = read_log_lines(log_dir, log_file)
        except LogFileNotFoundError as exc:
            LOGGER.info("%s", exc)
            return FeedResult(path=path, counts=count_by_event_type([]), error=str(exc))
        
        events = self.classify_all(lines)
        LOGGER.debug("Classified %d of %d lines from %s", len(events), len(lines), Path(path).name)
        
        return build_feed_result(path, events, limit=limit, level=level)


def classify_all(lines: Iterable[str], classifier: Optional[Classifier] = None) -> list[ClassifiedEvent]:
    """Classify raw lines with a default parser and the given (or default) classifier."""
    return LogFeed(classifier=classifier).classify_all(lines)
