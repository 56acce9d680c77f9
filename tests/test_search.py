"""
Search Tests

Client-side filtering of the event catalog.
"""

from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def catalog():
    """Three events across two colleges."""
    from unisphere.models import Event

    return [
        Event(id="e1", title="Hack Day", college="MIT", date=datetime(2025, 3, 14, 12, tzinfo=timezone.utc)),
        Event(id="e2", title="Spring Fest", college="Stanford", date=datetime(2025, 4, 2, 12, tzinfo=timezone.utc)),
        Event(id="e3", title="Robotics Expo", college="MIT", date=datetime(2025, 11, 20, 12, tzinfo=timezone.utc)),
    ]


class TestFormatting:
    """Tests for date rendering."""

    def test_short_date(self):
        """Test the list date format."""
        from unisphere.search import format_event_date

        assert format_event_date(datetime(2025, 3, 4)) == "3/4/2025"

    def test_long_date(self):
        """Test the details date format."""
        from unisphere.search import format_event_date_long

        assert format_event_date_long(datetime(2025, 3, 14)) == "Friday, March 14, 2025"

    def test_timezone_conversion(self):
        """Test that an explicit timezone shifts the calendar day."""
        from unisphere.search import format_event_date

        late_utc = datetime(2025, 3, 14, 23, tzinfo=timezone.utc)
        plus_two = timezone(timedelta(hours=2))
        assert format_event_date(late_utc) == "3/14/2025"
        assert format_event_date(late_utc, plus_two) == "3/15/2025"


class TestFilterEvents:
    """Tests for filter_events."""

    def test_empty_query_returns_all(self, catalog):
        """Test that an empty query is the identity."""
        from unisphere.search import filter_events

        assert filter_events(catalog, "") == catalog

    def test_whitespace_query_returns_all(self, catalog):
        """Test that a whitespace-only query is the identity."""
        from unisphere.search import filter_events

        assert filter_events(catalog, "   ") == catalog

    def test_title_match_case_insensitive(self, catalog):
        """Test that title matching ignores case."""
        from unisphere.search import filter_events

        assert [e.id for e in filter_events(catalog, "hack")] == ["e1"]
        assert [e.id for e in filter_events(catalog, "HACK")] == ["e1"]

    def test_college_match(self, catalog):
        """Test matching on college."""
        from unisphere.search import filter_events

        assert [e.id for e in filter_events(catalog, "mit")] == ["e1", "e3"]

    def test_date_match(self, catalog):
        """Test matching on the formatted date."""
        from unisphere.search import filter_events

        assert [e.id for e in filter_events(catalog, "4/2/2025")] == ["e2"]
        assert [e.id for e in filter_events(catalog, "11/")] == ["e3"]

    def test_or_across_fields(self, catalog):
        """Test that any field matching is enough."""
        from unisphere.search import filter_events

        assert [e.id for e in filter_events(catalog, "fest")] == ["e2"]
        assert [e.id for e in filter_events(catalog, "2025")] == ["e1", "e2", "e3"]

    def test_no_match(self, catalog):
        """Test that an unmatched query yields an empty view."""
        from unisphere.search import filter_events

        assert filter_events(catalog, "quidditch") == []

    def test_query_not_trimmed(self, catalog):
        """Test that surrounding spaces are part of the needle."""
        from unisphere.search import filter_events

        assert [e.id for e in filter_events(catalog, "day ")] == []
        assert [e.id for e in filter_events(catalog, "hack day")] == ["e1"]

    @pytest.mark.parametrize("query", ["", "MIT", "hack", "2025", "nothing", "e"])
    def test_refiltering_is_idempotent(self, catalog, query):
        """Test that filtering a filtered view changes nothing."""
        from unisphere.search import filter_events

        once = filter_events(catalog, query)
        assert filter_events(once, query) == once

    def test_pure(self, catalog):
        """Test that the input catalog is not modified."""
        from unisphere.search import filter_events

        before = list(catalog)
        filter_events(catalog, "mit")
        assert catalog == before

    def test_accepts_tuple(self, catalog):
        """Test filtering a tuple snapshot."""
        from unisphere.search import filter_events

        assert [e.id for e in filter_events(tuple(catalog), "Robot")] == ["e3"]
