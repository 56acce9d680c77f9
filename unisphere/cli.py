"""
Unisphere command-line client.

Usage:
    python -m unisphere login --email me@college.edu
    python -m unisphere events --search MIT
    python -m unisphere register EVENT_ID
    python -m unisphere registrations
    python -m unisphere cancel REGISTRATION_ID
    python -m unisphere profile --name "Ada" --roll-no 42
"""

import argparse
import asyncio
import getpass
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import ClientSettings, get_settings
from .coordinator import ActionResult, SyncCoordinator, View, client_session
from .gateway import ApiGateway
from .models import Event
from .search import format_event_date, format_event_date_long

logger = logging.getLogger("unisphere.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unisphere", description="Unisphere college events client")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the session token")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="Prompted for when omitted")

    sub.add_parser("logout", help="Forget the stored session token")

    signup = sub.add_parser("signup", help="Create an organizer account")
    signup.add_argument("--name", required=True)
    signup.add_argument("--email", required=True)
    signup.add_argument("--college", required=True)
    signup.add_argument("--password", help="Prompted for when omitted")

    events = sub.add_parser("events", help="List events")
    events.add_argument("--search", default="", help="Filter by title, college or date")

    show = sub.add_parser("show", help="Show one event")
    show.add_argument("event_id")

    register = sub.add_parser("register", help="Register for an event")
    register.add_argument("event_id")

    sub.add_parser("registrations", help="List my registrations")

    cancel = sub.add_parser("cancel", help="Cancel a registration")
    cancel.add_argument("registration_id")

    profile = sub.add_parser("profile", help="Show or edit my profile")
    profile.add_argument("--name")
    profile.add_argument("--roll-no")

    create = sub.add_parser("create-event", help="Publish an event (organizers)")
    create.add_argument("--title", required=True)
    create.add_argument("--description", required=True)
    create.add_argument("--college", required=True)
    create.add_argument("--date", required=True, type=datetime.fromisoformat, help="ISO date, e.g. 2025-03-14")
    create.add_argument("--type", default="technical", choices=["technical", "cultural", "sports", "other"])
    create.add_argument("--fee", default="0")
    create.add_argument("--image", type=Path)

    return parser


def _report(result: ActionResult) -> int:
    print(result.message)
    for field_name, problem in result.field_errors.items():
        print(f"  - {field_name}: {problem}")
    return 0 if result.success else 1


def _event_line(event: Event) -> str:
    return f"{event.id}  {event.title} | {event.college} | {format_event_date(event.date)}"


async def _show_view(sync: SyncCoordinator, view: View) -> bool:
    """Enter ``view`` and print its error, if any. Returns False on error-only."""
    await sync.on_enter_view(view)
    state = sync.states[view]
    if state.error:
        print(state.error)
    return not state.error_only


async def run(
    args: argparse.Namespace,
    settings: Optional[ClientSettings] = None,
    gateway: Optional[ApiGateway] = None,
) -> int:
    async with client_session(settings, gateway=gateway) as sync:
        command = args.command

        if command == "login":
            password = args.password or getpass.getpass("Password: ")
            return _report(await sync.login(args.email, password))

        if command == "logout":
            return _report(await sync.logout())

        if command == "signup":
            password = args.password or getpass.getpass("Password: ")
            return _report(
                await sync.sign_up_organizer(args.name, args.email, password, args.college)
            )

        if command == "events":
            if not await _show_view(sync, View.BROWSE):
                return 1
            visible = sync.search(args.search)
            if not visible:
                print("No events found.")
            for event in visible:
                print(_event_line(event))
            return 0

        if command == "show":
            if not await _show_view(sync, View.BROWSE):
                return 1
            event = sync.catalog.find(args.event_id)
            if event is None:
                print(f"No event with id {args.event_id}")
                return 1
            print(event.title)
            print(f"  Date:    {format_event_date_long(event.date)}")
            print(f"  College: {event.college}")
            print(f"  Type:    {event.type.value}")
            print(f"  Fee:     {event.registration_fee:g}")
            if event.description:
                print(f"\n{event.description}")
            return 0

        if command == "register":
            return _report(await sync.register_for_event(args.event_id))

        if command == "registrations":
            await sync.on_enter_view(View.BROWSE)
            if not await _show_view(sync, View.REGISTRATIONS):
                return 1
            items = sync.registration_items()
            if not items:
                print("You have not registered for any events yet.")
            for item in items:
                status = item.registration.payment_status.value
                if item.orphaned:
                    print(f"{item.registration.id}  Event no longer available [{status}]")
                else:
                    print(f"{item.registration.id}  {_event_line(item.event)} [{status}]")
            return 0

        if command == "cancel":
            return _report(await sync.cancel_registration(args.registration_id))

        if command == "profile":
            if args.name is not None or args.roll_no is not None:
                profile = await sync.load_profile()
                name = args.name if args.name is not None else (profile.name if profile else "")
                return _report(await sync.update_profile(name, args.roll_no or ""))
            if not await _show_view(sync, View.PROFILE):
                return 1
            profile = sync.profile
            print(f"[{profile.initial}] {profile.name or 'User'}")
            print(f"  Email:   {profile.email}")
            print(f"  College: {profile.college}")
            print(f"  Role:    {profile.role.value}")
            print(f"  Roll No: {profile.roll_no or '-'}")
            return 0

        if command == "create-event":
            return _report(
                await sync.create_event(
                    title=args.title,
                    description=args.description,
                    college=args.college,
                    date=args.date,
                    type=args.type,
                    registration_fee=args.fee,
                    image_path=args.image,
                )
            )

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    log_level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
