"""
Pydantic models for the Unisphere client.

Field aliases follow the server's wire names (``_id``, ``eventId``,
``registrationFee``, ``rollNo``, ``paymentStatus``); Python code uses the
snake_case attribute names.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

logger = logging.getLogger("unisphere.models")


# =============================================================================
# Enums
# =============================================================================

class EventType(str, Enum):
    TECHNICAL = "technical"
    CULTURAL = "cultural"
    SPORTS = "sports"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OTHER = "other"


class UserRole(str, Enum):
    STUDENT = "student"
    ORGANIZER = "organizer"
    OTHER = "other"


def _coerce_enum(enum_cls, value, fallback):
    """Map a loosely cased wire value onto ``enum_cls``, or ``fallback``."""
    if isinstance(value, enum_cls) or value is None:
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return fallback


# =============================================================================
# Server Resources
# =============================================================================

class Event(BaseModel):
    """An event as listed by the server. Immutable on the client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    title: str
    college: str
    date: datetime
    type: EventType = EventType.OTHER
    registration_fee: float = Field(
        0.0,
        ge=0.0,
        validation_alias=AliasChoices("registrationFee", "registration_fee"),
    )
    description: str = ""
    image: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return _coerce_enum(EventType, v, EventType.OTHER)

    @field_validator("registration_fee", mode="before")
    @classmethod
    def blank_fee_is_free(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return v


class Registration(BaseModel):
    """
    One of the current user's registrations.

    The server sends ``eventId`` either populated (an event object), as a
    bare id, or as null once the event has been deleted. It is split here
    into ``event_ref`` (the id, if known) and ``event`` (the embedded
    snapshot, if any). A registration with neither still renders and can
    be cancelled.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    event_ref: Optional[str] = None
    event: Optional[Event] = None
    payment_status: PaymentStatus = Field(
        PaymentStatus.PENDING,
        validation_alias=AliasChoices("paymentStatus", "payment_status"),
    )

    @model_validator(mode="before")
    @classmethod
    def split_event_reference(cls, data):
        if not isinstance(data, dict) or "eventId" not in data:
            return data

        data = dict(data)
        raw = data.pop("eventId")
        if isinstance(raw, dict):
            ref = raw.get("_id") or raw.get("id")
            data.setdefault("event_ref", str(ref) if ref is not None else None)
            try:
                data.setdefault("event", Event.model_validate(raw))
            except ValidationError as e:
                # Partially populated event; keep the reference only
                logger.debug(f"Ignoring unparseable embedded event {ref}: {e}")
        elif raw is not None:
            data.setdefault("event_ref", str(raw))
        return data

    @field_validator("payment_status", mode="before")
    @classmethod
    def parse_payment_status(cls, v):
        return _coerce_enum(PaymentStatus, v, PaymentStatus.OTHER)


class Profile(BaseModel):
    """The logged-in user's profile."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(None, validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    email: str = ""
    college: str = ""
    role: UserRole = UserRole.STUDENT
    roll_no: Optional[str] = Field(
        None, validation_alias=AliasChoices("rollNo", "roll_no")
    )

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v):
        return _coerce_enum(UserRole, v, UserRole.OTHER)

    @property
    def initial(self) -> str:
        """Avatar letter."""
        return self.name[:1].upper() if self.name else "?"


# =============================================================================
# Request Payloads
# =============================================================================

class LoginRequest(BaseModel):
    """Credentials for ``POST /auth/login``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    """Response of ``POST /auth/login``."""

    model_config = ConfigDict(extra="ignore")

    token: str = Field(..., min_length=1)


class OrganizerSignup(BaseModel):
    """Account creation payload for ``POST /auth/register``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    college: str = Field(..., min_length=1, max_length=200)
    role: Literal["organizer"] = "organizer"


class ProfileUpdate(BaseModel):
    """Editable profile fields for ``PUT /users/profile``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    roll_no: str = Field("", max_length=50)

    def to_payload(self) -> dict:
        return {"name": self.name, "rollNo": self.roll_no}


class EventDraft(BaseModel):
    """Organizer input for ``POST /events``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    date: datetime
    college: str = Field(..., min_length=1, max_length=200)
    type: EventType = EventType.TECHNICAL
    registration_fee: float = Field(0.0, ge=0.0)
    image_path: Optional[Path] = None

    @field_validator("registration_fee", mode="before")
    @classmethod
    def blank_fee_is_free(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return v

    @field_validator("image_path")
    @classmethod
    def image_must_exist(cls, v: Optional[Path]) -> Optional[Path]:
        if v is not None and not v.is_file():
            raise ValueError(f"image file not found: {v}")
        return v

    def to_form_fields(self) -> dict[str, str]:
        """Multipart text fields, as the server expects them."""
        when = self.date
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        iso = when.astimezone(timezone.utc).isoformat(timespec="milliseconds")
        return {
            "title": self.title,
            "description": self.description,
            "date": iso.replace("+00:00", "Z"),
            "college": self.college,
            "type": self.type.value,
            "registrationFee": format(self.registration_fee, "g"),
        }
