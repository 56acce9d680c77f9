"""
Registration ledger.

The current user's registrations as last fetched. Registering never adds a
local entry (the server assigns id and payment status); cancelling removes
the entry as soon as the server confirms.
"""

import logging
from typing import Optional

from .catalog import EventCatalog
from .errors import UnisphereError
from .models import Event, Registration
from .session import SessionStore
from .snapshot import VersionedSnapshot

logger = logging.getLogger("unisphere.ledger")


class RegistrationLedger:
    """Registrations for the session's user, keyed by registration id."""

    def __init__(self, gateway, session: SessionStore):
        self.gateway = gateway
        self.session = session
        self._snapshot: VersionedSnapshot[Registration] = VersionedSnapshot()
        # registration id -> last ticket issued when its cancel was confirmed
        self._cancelled: dict[str, int] = {}

    @property
    def loaded(self) -> bool:
        return self._snapshot.loaded

    def get(self) -> tuple[Registration, ...]:
        return self._snapshot.items

    def find(self, registration_id: str) -> Optional[Registration]:
        for registration in self._snapshot.items:
            if registration.id == registration_id:
                return registration
        return None

    def reset(self) -> None:
        """Forget everything, e.g. on logout. In-flight refreshes are dropped."""
        self._snapshot.reset()
        self._cancelled.clear()

    async def refresh(self) -> tuple[Registration, ...]:
        """Replace the snapshot with the server's list. Requires a session."""
        ticket = self._snapshot.issue()
        try:
            registrations = await self.session.authorized(self.gateway.get_registrations)
        except UnisphereError as e:
            logger.warning(f"Ledger refresh #{ticket} failed: {e}")
            raise

        # A refresh issued before a confirmed cancel may still list the entry
        registrations = [
            r for r in registrations
            if self._cancelled.get(r.id, 0) < ticket
        ]
        if self._snapshot.apply(ticket, registrations):
            self._cancelled = {
                rid: issued for rid, issued in self._cancelled.items()
                if issued >= ticket
            }
            logger.info(f"Ledger refreshed: {len(registrations)} registrations")
        else:
            logger.debug(
                f"Discarding ledger refresh #{ticket}; "
                f"#{self._snapshot.applied} already applied"
            )
        return self.get()

    async def register(self, event_id: str) -> dict:
        """
        Register for ``event_id``.

        The ledger is not touched; the new registration shows up on the
        next refresh with its server-assigned fields.
        """
        ack = await self.session.authorized(
            lambda token: self.gateway.register_for_event(event_id, token)
        )
        logger.info(f"Registered for event {event_id}")
        return ack

    async def cancel(self, registration_id: str) -> bool:
        """
        Cancel ``registration_id`` and drop it from the snapshot.

        On failure the snapshot is left exactly as it was and the error is
        raised. Returns whether an entry was removed locally; cancelling an
        id that is already gone is a no-op for the ledger.
        """
        await self.session.authorized(
            lambda token: self.gateway.cancel_registration(registration_id, token)
        )

        before = self._snapshot.items
        remaining = [r for r in before if r.id != registration_id]
        self._snapshot.replace_items(remaining)
        self._cancelled[registration_id] = self._snapshot.issued

        removed = len(remaining) != len(before)
        logger.info(
            f"Cancelled registration {registration_id}"
            + ("" if removed else " (not in ledger)")
        )
        return removed

    @staticmethod
    def resolve(
        registration: Registration,
        catalog: Optional[EventCatalog] = None,
    ) -> Optional[Event]:
        """
        The event a registration points at, or ``None`` if it is orphaned.

        The catalog is consulted first; the snapshot the server embedded in
        the registration is the fallback.
        """
        if catalog is not None:
            event = catalog.find(registration.event_ref)
            if event is not None:
                return event
        return registration.event

    def is_orphaned(
        self,
        registration: Registration,
        catalog: Optional[EventCatalog] = None,
    ) -> bool:
        return self.resolve(registration, catalog) is None
