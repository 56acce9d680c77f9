"""Shared fixtures: an in-process fake of the Unisphere HTTP API."""

import asyncio
import json

import httpx
import pytest

VALID_TOKEN = "token-abc"


def make_event(event_id, title, college, date, **extra):
    """Event as the server serializes it."""
    event = {
        "_id": event_id,
        "title": title,
        "college": college,
        "date": date,
        "type": "technical",
        "registrationFee": 100,
        "description": f"{title} at {college}",
    }
    event.update(extra)
    return event


class FakeUnisphereServer:
    """
    Minimal stand-in for the events API, routed through httpx.MockTransport.

    Every request is recorded in ``requests``. ``fail`` maps
    ``(method, path)`` to a status code the next matching call returns.
    """

    def __init__(self):
        self.events = [
            make_event("e1", "Hack Day", "MIT", "2025-03-14T12:00:00.000Z"),
            make_event("e2", "Spring Fest", "Stanford", "2025-04-02T12:00:00.000Z", type="cultural"),
            make_event("e3", "Robotics Expo", "MIT", "2025-05-20T12:00:00.000Z"),
        ]
        self.users = {
            "student@college.edu": {
                "password": "secret",
                "profile": {
                    "_id": "u1",
                    "name": "Ada Lovelace",
                    "email": "student@college.edu",
                    "college": "MIT",
                    "role": "student",
                },
            },
            "organizer@college.edu": {
                "password": "secret",
                "profile": {
                    "_id": "u2",
                    "name": "Grace Hopper",
                    "email": "organizer@college.edu",
                    "college": "Stanford",
                    "role": "organizer",
                },
            },
        }
        self.tokens = {VALID_TOKEN: "student@college.edu", "token-org": "organizer@college.edu"}
        self.registrations = []
        self.requests = []
        self.fail = {}
        self._next_id = 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method=None, path=None):
        return [
            r for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path == path)
        ]

    def _user(self, request):
        header = request.headers.get("Authorization", "")
        token = header.removeprefix("Bearer ")
        return self.tokens.get(token)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path

        forced = self.fail.pop((method, path), None)
        if forced is not None:
            return httpx.Response(forced, json={"message": "forced failure"})

        if method == "GET" and path == "/api/events":
            return httpx.Response(200, json=self.events)

        if method == "POST" and path == "/api/auth/login":
            body = json.loads(request.content)
            user = self.users.get(body["email"])
            if user is None or user["password"] != body["password"]:
                return httpx.Response(400, json={"message": "Invalid credentials"})
            token = next(t for t, email in self.tokens.items() if email == body["email"])
            return httpx.Response(200, json={"token": token})

        if method == "POST" and path == "/api/auth/register":
            body = json.loads(request.content)
            self.users[body["email"]] = {
                "password": body["password"],
                "profile": {k: body[k] for k in ("name", "email", "college", "role")},
            }
            self.tokens[f"token-{len(self.tokens) + 1}"] = body["email"]
            return httpx.Response(201, json={"message": "User registered"})

        email = self._user(request)
        if email is None:
            return httpx.Response(401, json={"message": "Not authorized"})

        if method == "POST" and path.startswith("/api/events/") and path.endswith("/register"):
            event_id = path.split("/")[3]
            if not any(e["_id"] == event_id for e in self.events):
                return httpx.Response(404, json={"message": "Event not found"})
            event = next(e for e in self.events if e["_id"] == event_id)
            self.registrations.append({
                "_id": f"r{self._next_id}",
                "eventId": event,
                "paymentStatus": "pending",
            })
            self._next_id += 1
            return httpx.Response(201, json={"message": "Registered"})

        if method == "GET" and path == "/api/registrations":
            return httpx.Response(200, json=self.registrations)

        if method == "DELETE" and path.startswith("/api/registrations/"):
            registration_id = path.rsplit("/", 1)[1]
            before = len(self.registrations)
            self.registrations = [r for r in self.registrations if r["_id"] != registration_id]
            if len(self.registrations) == before:
                return httpx.Response(404, json={"message": "Registration not found"})
            return httpx.Response(200, json={"message": "Registration cancelled"})

        if path == "/api/users/profile":
            profile = self.users[email]["profile"]
            if method == "GET":
                return httpx.Response(200, json=profile)
            if method == "PUT":
                profile.update(json.loads(request.content))
                return httpx.Response(200, json={"user": profile})

        if method == "POST" and path == "/api/events":
            if self.users[email]["profile"]["role"] != "organizer":
                return httpx.Response(403, json={"message": "Organizers only"})
            form = dict(httpx.QueryParams(request.content.decode()))
            event = make_event(f"e{len(self.events) + 1}", form["title"], form["college"], form["date"])
            self.events.append(event)
            return httpx.Response(201, json=event)

        return httpx.Response(404, json={"message": f"No route {method} {path}"})


@pytest.fixture
def server():
    """Fresh fake API per test."""
    return FakeUnisphereServer()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at the fake API, with state under tmp_path."""
    from unisphere.config import ClientSettings
    return ClientSettings(api_base_url="http://testserver/api/", data_dir=tmp_path)


@pytest.fixture
def gateway(server, settings):
    from unisphere.gateway import ApiGateway
    return ApiGateway(settings, transport=server.transport())


class GatedGateway:
    """
    Gateway double whose calls block until the test releases them.

    Each call appends a future to ``pending[name]``; resolving that future
    (with a result or an exception) completes the call.
    """

    def __init__(self):
        self.pending = {}

    def _wait(self, name):
        future = asyncio.get_running_loop().create_future()
        self.pending.setdefault(name, []).append(future)
        return future

    async def get_events(self):
        return await self._wait("get_events")

    async def get_registrations(self, token):
        return await self._wait("get_registrations")

    async def cancel_registration(self, registration_id, token):
        return await self._wait("cancel_registration")

    async def register_for_event(self, event_id, token):
        return await self._wait("register_for_event")

    async def get_profile(self, token):
        return await self._wait("get_profile")

    async def update_profile(self, update, token):
        return await self._wait("update_profile")


async def settle(rounds=5):
    """Let every ready task run up to its next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def gated():
    return GatedGateway()
