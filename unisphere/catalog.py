"""
Event catalog cache.

In-memory copy of ``GET /events``. A failed refresh keeps whatever was
loaded before: stale-but-available beats empty.
"""

import logging
from typing import Iterable, Optional

from .errors import UnisphereError
from .models import Event
from .snapshot import VersionedSnapshot

logger = logging.getLogger("unisphere.catalog")


def dedupe_by_id(events: Iterable[Event]) -> list[Event]:
    """Keep server order; a repeated id keeps its last occurrence."""
    by_id: dict[str, Event] = {}
    for event in events:
        by_id.pop(event.id, None)
        by_id[event.id] = event
    return list(by_id.values())


class EventCatalog:
    """Full event list as last fetched from the server."""

    def __init__(self, gateway):
        self.gateway = gateway
        self._snapshot: VersionedSnapshot[Event] = VersionedSnapshot()
        self._index: dict[str, Event] = {}

    @property
    def loaded(self) -> bool:
        return self._snapshot.loaded

    def get(self) -> tuple[Event, ...]:
        """Last successful snapshot; empty before the first fetch."""
        return self._snapshot.items

    def find(self, event_id: Optional[str]) -> Optional[Event]:
        if event_id is None:
            return None
        return self._index.get(event_id)

    async def refresh(self) -> tuple[Event, ...]:
        """
        Fetch every event and replace the snapshot in one step.

        Raises the gateway's error on failure, leaving the old snapshot in
        place. A response overtaken by a later-issued refresh is dropped and
        the newer snapshot is returned instead.
        """
        ticket = self._snapshot.issue()
        try:
            events = await self.gateway.get_events()
        except UnisphereError as e:
            logger.warning(f"Catalog refresh #{ticket} failed: {e}")
            raise

        events = dedupe_by_id(events)
        if self._snapshot.apply(ticket, events):
            self._index = {event.id: event for event in events}
            logger.info(f"Catalog refreshed: {len(events)} events")
        else:
            logger.debug(
                f"Discarding catalog refresh #{ticket}; "
                f"#{self._snapshot.applied} already applied"
            )
        return self.get()
