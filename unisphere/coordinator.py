"""
Sync coordinator.

Ties the session, gateway, catalog and ledger to the views a UI shows.
A UI layer (or a test) calls ``on_enter_view`` whenever a data-bearing view
comes into focus and reads the resulting ``ViewState`` plus data; user
actions go through the ``ActionResult``-returning methods below.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from .catalog import EventCatalog
from .config import ClientSettings, get_settings
from .errors import (
    Forbidden,
    NotFound,
    Unauthenticated,
    UnisphereError,
    ValidationFailure,
)
from .gateway import ApiGateway
from .ledger import RegistrationLedger
from .models import (
    Event,
    EventDraft,
    OrganizerSignup,
    Profile,
    ProfileUpdate,
    Registration,
    UserRole,
)
from .search import filter_events
from .session import SessionStore, SQLiteTokenBackend
from .snapshot import VersionedSnapshot

logger = logging.getLogger("unisphere.sync")


# =============================================================================
# View State
# =============================================================================

class View(str, Enum):
    """Data-bearing views that refresh when entered."""
    BROWSE = "browse"
    REGISTRATIONS = "registrations"
    PROFILE = "profile"


@dataclass
class ViewState:
    """What a view should display besides its data."""
    loading: bool = False
    loaded: bool = False
    error: Optional[str] = None
    needs_login: bool = False
    last_error: Optional[UnisphereError] = None
    refreshed_at: Optional[datetime] = None

    @property
    def error_only(self) -> bool:
        """Nothing has ever loaded and the last attempt failed."""
        return self.error is not None and not self.loaded

    def reset(self) -> None:
        self.loading = False
        self.loaded = False
        self.error = None
        self.needs_login = False
        self.last_error = None
        self.refreshed_at = None


@dataclass
class ActionResult:
    """Outcome of a user action, ready to show."""
    success: bool
    message: str = ""
    error: Optional[UnisphereError] = None
    field_errors: dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def needs_login(self) -> bool:
        return isinstance(self.error, Unauthenticated)


@dataclass(frozen=True)
class RegistrationItem:
    """A registration paired with its event, if that still exists."""
    registration: Registration
    event: Optional[Event]

    @property
    def orphaned(self) -> bool:
        return self.event is None


# =============================================================================
# Refresh Coalescing
# =============================================================================

class RefreshChannel:
    """
    Runs refreshes for one target strictly one at a time.

    A request made while a refresh is in flight does not start a second
    one; it marks the channel so exactly one more run follows the current
    one. All such requests share the same task.
    """

    def __init__(self, name: str, refresh: Callable[[], Awaitable[None]]):
        self.name = name
        self._refresh = refresh
        self._task: Optional[asyncio.Task] = None
        self._rerun = False
        self.runs = 0

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(self) -> asyncio.Task:
        if self.in_flight:
            if not self._rerun:
                logger.debug(f"{self.name} refresh in flight; coalescing")
            self._rerun = True
            return self._task

        self._task = asyncio.get_running_loop().create_task(self._drain())
        return self._task

    async def _drain(self) -> None:
        while True:
            self._rerun = False
            self.runs += 1
            await self._refresh()
            if not self._rerun:
                return


# =============================================================================
# Coordinator
# =============================================================================

class SyncCoordinator:
    """Keeps views consistent with the server across screens and sessions."""

    def __init__(
        self,
        session: SessionStore,
        gateway: ApiGateway,
        catalog: Optional[EventCatalog] = None,
        ledger: Optional[RegistrationLedger] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.catalog = catalog or EventCatalog(gateway)
        self.ledger = ledger or RegistrationLedger(gateway, session)
        self.tz = tz

        self.query = ""
        self._profile: VersionedSnapshot[Profile] = VersionedSnapshot()
        # Bumped whenever the signed-in user changes
        self._user_epoch = 0
        self.states: dict[View, ViewState] = {view: ViewState() for view in View}
        self._channels: dict[View, RefreshChannel] = {
            View.BROWSE: RefreshChannel(
                "catalog",
                lambda: self._refresh_view(
                    View.BROWSE,
                    self.catalog.refresh,
                    action="view events",
                    failure="Failed to fetch events. Please try again later.",
                ),
            ),
            View.REGISTRATIONS: RefreshChannel(
                "ledger",
                lambda: self._refresh_view(
                    View.REGISTRATIONS,
                    self.ledger.refresh,
                    action="view your registrations",
                    failure="Failed to fetch registrations. Please try again later.",
                ),
            ),
            View.PROFILE: RefreshChannel(
                "profile",
                lambda: self._refresh_view(
                    View.PROFILE,
                    self._fetch_profile,
                    action="view your profile",
                    failure="Failed to fetch profile. Please try again later.",
                ),
            ),
        }

    # === Helpers ===

    @staticmethod
    def _message_for(error: UnisphereError, action: str, failure: str) -> str:
        if isinstance(error, Unauthenticated):
            return f"Please log in to {action}."
        if isinstance(error, (ValidationFailure, NotFound, Forbidden)):
            return error.user_message
        return failure

    def _fail(self, error: UnisphereError, action: str, failure: str) -> ActionResult:
        logger.error(f"Failed to {action}: {error}")
        field_errors = error.field_errors if isinstance(error, ValidationFailure) else {}
        return ActionResult(
            success=False,
            message=self._message_for(error, action, failure),
            error=error,
            field_errors=field_errors,
        )

    async def _refresh_view(
        self,
        view: View,
        refresh: Callable[[], Awaitable[Any]],
        action: str,
        failure: str,
    ) -> None:
        state = self.states[view]
        epoch = self._user_epoch
        state.loading = True
        try:
            await refresh()
        except UnisphereError as e:
            if view != View.BROWSE and epoch != self._user_epoch:
                logger.debug(f"Dropping {view.value} failure from a previous session: {e}")
                return
            logger.error(f"Failed to {action}: {e}")
            # Previous data stays visible; the error is shown alongside it
            state.error = self._message_for(e, action, failure)
            state.last_error = e
            state.needs_login = isinstance(e, Unauthenticated)
        else:
            if view != View.BROWSE and epoch != self._user_epoch:
                logger.debug(f"Dropping {view.value} result from a previous session")
                return
            state.loaded = True
            state.error = None
            state.last_error = None
            state.needs_login = False
            state.refreshed_at = datetime.now(timezone.utc)
        finally:
            state.loading = False

    @property
    def profile(self) -> Optional[Profile]:
        items = self._profile.items
        return items[0] if items else None

    async def _fetch_profile(self) -> Optional[Profile]:
        ticket = self._profile.issue()
        profile = await self.session.authorized(self.gateway.get_profile)
        if not self._profile.apply(ticket, [profile]):
            logger.debug(f"Discarding profile fetch #{ticket}; a newer profile is applied")
        return self.profile

    # === View Lifecycle ===

    def on_enter_view(self, view: View) -> asyncio.Task:
        """
        Refresh the data behind ``view``.

        Must be called from inside a running event loop. Returns an
        awaitable that completes once the refresh (including any follow-up
        run coalesced into it) has finished. Failures end up on
        ``states[view]``, not as exceptions.
        """
        return self._channels[View(view)].request()

    def is_refreshing(self, view: View) -> bool:
        return self._channels[View(view)].in_flight

    # === Browse ===

    def events(self) -> tuple[Event, ...]:
        return self.catalog.get()

    def search(self, query: str) -> list[Event]:
        self.query = query
        return self.visible_events()

    def clear_search(self) -> list[Event]:
        return self.search("")

    def visible_events(self) -> list[Event]:
        return filter_events(self.catalog.get(), self.query, self.tz)

    # === Registrations ===

    def registration_items(self) -> list[RegistrationItem]:
        return [
            RegistrationItem(registration, self.ledger.resolve(registration, self.catalog))
            for registration in self.ledger.get()
        ]

    async def register_for_event(self, event_id: str) -> ActionResult:
        action = "register for an event"
        try:
            ack = await self.ledger.register(event_id)
        except UnisphereError as e:
            return self._fail(e, action, "Failed to register for the event. Please try again.")

        await self.on_enter_view(View.REGISTRATIONS)
        return ActionResult(success=True, message="Registration successful!", data=ack)

    async def cancel_registration(self, registration_id: str) -> ActionResult:
        action = "cancel a registration"
        try:
            await self.ledger.cancel(registration_id)
        except NotFound as e:
            # Server no longer knows it; reconcile instead of guessing
            result = self._fail(e, action, "Failed to cancel registration. Please try again.")
            await self.on_enter_view(View.REGISTRATIONS)
            return result
        except UnisphereError as e:
            return self._fail(e, action, "Failed to cancel registration. Please try again.")

        return ActionResult(success=True, message="Registration cancelled successfully!")

    # === Auth ===

    async def login(self, email: str, password: str) -> ActionResult:
        try:
            token = await self.gateway.login(email, password)
        except UnisphereError as e:
            logger.error(f"Login error: {e}")
            return ActionResult(
                success=False,
                message=e.user_message,
                error=e,
                field_errors=getattr(e, "field_errors", {}),
            )

        self._forget_user_data()
        await self.session.set_token(token)
        # Role decides whether event creation is offered; not fatal if it fails
        await self.on_enter_view(View.PROFILE)
        return ActionResult(success=True, message="Login successful!")

    async def logout(self) -> ActionResult:
        await self.session.clear()
        self._forget_user_data()
        return ActionResult(success=True, message="Logged out.")

    def _forget_user_data(self) -> None:
        self._user_epoch += 1
        self.ledger.reset()
        self._profile.reset()
        self.states[View.REGISTRATIONS].reset()
        self.states[View.PROFILE].reset()

    async def sign_up_organizer(
        self,
        name: str,
        email: str,
        password: str,
        college: str,
    ) -> ActionResult:
        action = "register as an organizer"
        try:
            signup = OrganizerSignup(name=name, email=email, password=password, college=college)
        except ValidationError as e:
            return self._fail(ValidationFailure.from_pydantic(e), action, "")

        try:
            ack = await self.gateway.sign_up(signup)
        except UnisphereError as e:
            return self._fail(e, action, "Failed to register. Please try again.")
        return ActionResult(
            success=True,
            message="Organizer account created! Please log in.",
            data=ack,
        )

    # === Profile ===

    async def load_profile(self) -> Optional[Profile]:
        await self.on_enter_view(View.PROFILE)
        return self.profile

    @property
    def can_create_events(self) -> bool:
        return self.profile is not None and self.profile.role == UserRole.ORGANIZER

    async def update_profile(self, name: str, roll_no: str = "") -> ActionResult:
        action = "update your profile"
        failure = "Failed to update profile. Please try again."
        try:
            update = ProfileUpdate(name=name, roll_no=roll_no or "")
        except ValidationError as e:
            return self._fail(ValidationFailure.from_pydantic(e), action, failure)

        epoch = self._user_epoch
        try:
            profile = await self.session.authorized(
                lambda token: self.gateway.update_profile(update, token)
            )
        except UnisphereError as e:
            return self._fail(e, action, failure)

        # Confirmed write outranks any profile fetch issued before it
        if epoch == self._user_epoch:
            self._profile.apply(self._profile.issue(), [profile])
        return ActionResult(success=True, message="Profile updated successfully!", data=profile)

    # === Organizer ===

    async def create_event(self, **fields) -> ActionResult:
        """Validate ``fields`` as an ``EventDraft`` and publish it."""
        action = "create an event"
        failure = "Failed to create event. Please try again."
        try:
            draft = EventDraft(**fields)
        except ValidationError as e:
            return self._fail(ValidationFailure.from_pydantic(e), action, failure)

        if self.profile is None:
            await self.load_profile()
        if self.profile is not None and not self.can_create_events:
            return ActionResult(success=False, message="Only organizers can create events.")

        try:
            event = await self.session.authorized(
                lambda token: self.gateway.create_event(draft, token)
            )
        except Forbidden as e:
            logger.error(f"Failed to {action}: {e}")
            return ActionResult(
                success=False, message="Only organizers can create events.", error=e
            )
        except UnisphereError as e:
            return self._fail(e, action, failure)

        logger.info(f"Created event {event.id}: {event.title}")
        await self.on_enter_view(View.BROWSE)
        return ActionResult(success=True, message="Event created successfully!", data=event)


# =============================================================================
# Convenience Functions
# =============================================================================

def create_coordinator(
    settings: Optional[ClientSettings] = None,
    session: Optional[SessionStore] = None,
    gateway: Optional[ApiGateway] = None,
) -> SyncCoordinator:
    """
    Build a coordinator wired to ``settings``.

    Without an explicit session the token is persisted in the SQLite file
    named by ``settings.session_db_path``.
    """
    settings = settings or get_settings()
    if session is None:
        session = SessionStore(SQLiteTokenBackend(settings.session_db_path))
    return SyncCoordinator(session, gateway or ApiGateway(settings))


@asynccontextmanager
async def client_session(
    settings: Optional[ClientSettings] = None,
    session: Optional[SessionStore] = None,
    gateway: Optional[ApiGateway] = None,
):
    """
    Context manager for a coordinator that closes its HTTP client on exit.

    Usage:
        async with client_session() as sync:
            await sync.on_enter_view(View.BROWSE)
    """
    coordinator = create_coordinator(settings, session, gateway)
    try:
        yield coordinator
    finally:
        await coordinator.gateway.close()
