"""
Client-side event search.

Pure functions over a catalog snapshot. Nothing here is cached; the view is
recomputed from scratch on every query change.
"""

from datetime import datetime, tzinfo
from typing import Iterable, Optional

from .models import Event


def _localize(when: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is not None and when.tzinfo is not None:
        return when.astimezone(tz)
    return when


def format_event_date(when: datetime, tz: Optional[tzinfo] = None) -> str:
    """Short calendar date as shown in event lists, e.g. ``3/14/2025``."""
    when = _localize(when, tz)
    return f"{when.month}/{when.day}/{when.year}"


def format_event_date_long(when: datetime, tz: Optional[tzinfo] = None) -> str:
    """Long form used on the details screen, e.g. ``Friday, March 14, 2025``."""
    when = _localize(when, tz)
    return f"{when:%A}, {when:%B} {when.day}, {when.year}"


def event_matches(event: Event, needle: str, tz: Optional[tzinfo] = None) -> bool:
    """True if ``needle`` (already lower-cased) occurs in any searchable field."""
    return (
        needle in event.title.lower()
        or needle in event.college.lower()
        or needle in format_event_date(event.date, tz).lower()
    )


def filter_events(
    catalog: Iterable[Event],
    query: str,
    tz: Optional[tzinfo] = None,
) -> list[Event]:
    """
    Events whose title, college or short date contains ``query``.

    Matching is a case-insensitive substring test. A blank query returns
    the whole catalog in its original order. The query itself is not
    trimmed, so ``"MIT "`` only matches text followed by a space.
    """
    events = list(catalog)
    if not query.strip():
        return events

    needle = query.lower()
    return [event for event in events if event_matches(event, needle, tz)]
