"""
Unisphere - College Events Client

Sync layer for browsing college events, registering for them and managing
a user profile against the Unisphere HTTP API.
"""

from .catalog import EventCatalog
from .config import ClientSettings, get_settings
from .coordinator import (
    ActionResult,
    RefreshChannel,
    RegistrationItem,
    SyncCoordinator,
    View,
    ViewState,
    client_session,
    create_coordinator,
)
from .errors import (
    ApiError,
    Forbidden,
    NetworkFailure,
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
    EventType,
    OrganizerSignup,
    PaymentStatus,
    Profile,
    ProfileUpdate,
    Registration,
    UserRole,
)
from .search import filter_events, format_event_date, format_event_date_long
from .session import (
    MemoryTokenBackend,
    SessionStore,
    SQLiteTokenBackend,
    TokenBackend,
)

__version__ = "0.1.0"
__all__ = [
    # Main classes
    "SyncCoordinator",
    "EventCatalog",
    "RegistrationLedger",
    "SessionStore",
    "ApiGateway",
    "RefreshChannel",

    # Session backends
    "TokenBackend",
    "MemoryTokenBackend",
    "SQLiteTokenBackend",

    # Configuration
    "ClientSettings",
    "get_settings",

    # Data models
    "Event",
    "EventDraft",
    "EventType",
    "OrganizerSignup",
    "PaymentStatus",
    "Profile",
    "ProfileUpdate",
    "Registration",
    "UserRole",
    "View",
    "ViewState",
    "ActionResult",
    "RegistrationItem",

    # Exceptions
    "UnisphereError",
    "Unauthenticated",
    "NetworkFailure",
    "ValidationFailure",
    "Forbidden",
    "NotFound",
    "ApiError",

    # Convenience functions
    "create_coordinator",
    "client_session",

    # Search
    "filter_events",
    "format_event_date",
    "format_event_date_long",
]
