"""Response shaping for classified events."""

from collections import Counter
from typing import Iterable

from .models import ClassifiedEvent, EventType, FeedResult


ALL_LEVELS = "all"


def filter_by_level(events: Iterable[ClassifiedEvent], level: str = ALL_LEVELS) -> list[ClassifiedEvent]:
    """
    Keep only events of one level.
    
    Args:
        events: Classified events in file order
        level: Level name (case-insensitive), or "all"
        
    Returns:
        The matching events, order preserved
    """
    wanted = (level or ALL_LEVELS).strip().lower()
    if wanted == ALL_LEVELS:
        return list(events)
    return [e for e in events if e.level.lower() == wanted]


def count_by_event_type(events: Iterable[ClassifiedEvent]) -> dict[str, int]:
    """Count events per event type; every type is present, possibly with 0."""
    counts = Counter(e.event_type.value for e in events)
    return {t.value: counts.get(t.value, 0) for t in EventType}


def build_feed_result(
    path: str,
    events: list[ClassifiedEvent],
    limit: int,
    level: str = ALL_LEVELS,
) -> FeedResult:
    """
    Build the response for one feed request.
    
    Args:
        path: Log file the events came from
        events: All classified events of the file, in order
        limit: Number of most recent events to keep
        level: Optional level filter
        
    Returns:
        FeedResult whose total counts the filtered events before truncation
    """
    filtered = filter_by_level(events, level)
    tail = filtered[-limit:] if limit > 0 else []
    
    return FeedResult(
        path=path,
        events=tail,
        total=len(filtered),
        counts=count_by_event_type(filtered),
    )
