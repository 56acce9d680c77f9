"""
Unisphere API gateway.

Thin async wrapper over the remote HTTP service. This is the only module
that talks ``httpx``; every transport error and unexpected status leaves
here as a ``UnisphereError`` subclass. Requests are never retried; the
user re-triggers the action.
"""

import logging
from typing import Any, Optional, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from .config import ClientSettings, get_settings
from .errors import (
    ApiError,
    Forbidden,
    NetworkFailure,
    NotFound,
    Unauthenticated,
    ValidationFailure,
)
from .models import (
    Event,
    EventDraft,
    LoginRequest,
    LoginResponse,
    OrganizerSignup,
    Profile,
    ProfileUpdate,
    Registration,
)

logger = logging.getLogger("unisphere.gateway")

M = TypeVar("M", bound=BaseModel)


class ApiGateway:
    """Typed client for the events, auth, registrations and profile API."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                timeout=httpx.Timeout(self.settings.api_timeout),
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=self.settings.max_connections,
                ),
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # === Plumbing ===

    @staticmethod
    def _auth_header(token: Optional[str]) -> dict[str, str]:
        if not token:
            raise Unauthenticated("Missing bearer token")
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        endpoint: str,
        token: Optional[str] = None,
        authenticated: bool = False,
        **kwargs,
    ) -> httpx.Response:
        """Issue one request and translate failures into client errors."""
        headers = kwargs.pop("headers", {})
        if authenticated:
            # Short-circuits before any I/O when the token is missing
            headers.update(self._auth_header(token))

        client = await self._get_http_client()
        try:
            response = await client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise NetworkFailure(f"{method} {endpoint} failed: {e!r}") from e

        logger.debug(f"{method} {endpoint} -> {response.status_code}")
        self._raise_for_status(method, endpoint, response)
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            for key in ("message", "detail", "error", "msg"):
                if body.get(key):
                    return str(body[key])
        return str(body)[:200]

    def _raise_for_status(self, method: str, endpoint: str, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = self._error_detail(response)
        message = f"{method} {endpoint} returned {status}: {detail}"

        if status == 401:
            raise Unauthenticated(message)
        if status == 403:
            raise Forbidden(message)
        if status == 404:
            raise NotFound(message)
        if status in (400, 422):
            raise ValidationFailure(message, user_message=detail or None)
        if status >= 500:
            raise NetworkFailure(message, status_code=status)
        raise ApiError(message, status_code=status)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise NetworkFailure(
                f"Malformed JSON from {response.request.url}: {e}"
            ) from e

    @staticmethod
    def _unwrap(payload: Any, key: str) -> Any:
        """Accept both a bare payload and one wrapped as ``{key: payload}``."""
        if isinstance(payload, dict) and key in payload:
            return payload[key]
        return payload

    @staticmethod
    def _parse(model: type[M], payload: Any) -> M:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise NetworkFailure(
                f"Unexpected {model.__name__} payload from server: {e}"
            ) from e

    def _parse_list(self, model: type[M], payload: Any) -> list[M]:
        if not isinstance(payload, list):
            raise NetworkFailure(
                f"Expected a list of {model.__name__}, got {type(payload).__name__}"
            )
        return [self._parse(model, item) for item in payload]

    # === Events ===

    async def get_events(self) -> list[Event]:
        """``GET /events``. No authentication."""
        response = await self._request("GET", "/events")
        return self._parse_list(Event, self._unwrap(self._json(response), "events"))

    async def create_event(self, draft: EventDraft, token: Optional[str]) -> Event:
        """``POST /events`` as multipart form data (organizers only)."""
        files = None
        if draft.image_path is not None:
            files = {
                "image": ("event-image.jpg", draft.image_path.read_bytes(), "image/jpeg"),
            }
        response = await self._request(
            "POST",
            "/events",
            token=token,
            authenticated=True,
            data=draft.to_form_fields(),
            files=files,
        )
        return self._parse(Event, self._unwrap(self._json(response), "event"))

    async def register_for_event(self, event_id: str, token: Optional[str]) -> dict:
        """``POST /events/{id}/register``."""
        response = await self._request(
            "POST",
            f"/events/{quote(event_id, safe='')}/register",
            token=token,
            authenticated=True,
        )
        return self._json(response)

    # === Auth ===

    async def login(self, email: str, password: str) -> str:
        """``POST /auth/login``. Returns the bearer token."""
        try:
            credentials = LoginRequest(email=email, password=password)
        except ValidationError as e:
            raise ValidationFailure.from_pydantic(e) from e

        try:
            response = await self._request(
                "POST", "/auth/login", json=credentials.model_dump(mode="json")
            )
        except (Unauthenticated, ValidationFailure) as e:
            raise Unauthenticated(
                f"Login rejected: {e}",
                user_message="Invalid email or password. Please try again.",
            ) from e
        return self._parse(LoginResponse, self._json(response)).token

    async def sign_up(self, signup: OrganizerSignup) -> dict:
        """``POST /auth/register``."""
        response = await self._request(
            "POST", "/auth/register", json=signup.model_dump(mode="json")
        )
        return self._json(response)

    # === Registrations ===

    async def get_registrations(self, token: Optional[str]) -> list[Registration]:
        """``GET /registrations`` for the token's user."""
        response = await self._request(
            "GET", "/registrations", token=token, authenticated=True
        )
        payload = self._unwrap(self._json(response), "registrations")
        return self._parse_list(Registration, payload)

    async def cancel_registration(self, registration_id: str, token: Optional[str]) -> None:
        """``DELETE /registrations/{id}``."""
        await self._request(
            "DELETE",
            f"/registrations/{quote(registration_id, safe='')}",
            token=token,
            authenticated=True,
        )

    # === Profile ===

    async def get_profile(self, token: Optional[str]) -> Profile:
        """``GET /users/profile``."""
        response = await self._request(
            "GET", "/users/profile", token=token, authenticated=True
        )
        return self._parse(Profile, self._unwrap(self._json(response), "user"))

    async def update_profile(self, update: ProfileUpdate, token: Optional[str]) -> Profile:
        """``PUT /users/profile``. The server answers ``{"user": {...}}``."""
        response = await self._request(
            "PUT",
            "/users/profile",
            token=token,
            authenticated=True,
            json=update.to_payload(),
        )
        return self._parse(Profile, self._unwrap(self._json(response), "user"))

