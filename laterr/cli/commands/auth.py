"""Account commands: signup, login, logout, whoami."""

import asyncio
import logging
from typing import TYPE_CHECKING

from .helpers import print_json, read_password, report_error, validate_input

if TYPE_CHECKING:
    from laterr.client import LocalClient

logger = logging.getLogger(__name__)


def cmd_signup(args, client: "LocalClient"):
    email = validate_input(args.email, "email", 320)
    password = read_password(args.password)
    resp = asyncio.run(client.auth.sign_up(email, password))
    if resp.error:
        report_error(resp.error)
    print(f"✓ Created account {resp.user.email} ({resp.user.id})")


def cmd_login(args, client: "LocalClient"):
    email = validate_input(args.email, "email", 320)
    password = read_password(args.password)
    resp = asyncio.run(client.auth.sign_in_with_password(email, password))
    if resp.error:
        report_error(resp.error)
    print(f"✓ Signed in as {resp.user.email}")
    print(f"  Session expires: {resp.session.expires_at}")


def cmd_logout(args, client: "LocalClient"):
    resp = asyncio.run(client.auth.sign_out())
    if resp.error:
        report_error(resp.error)
    print("✓ Signed out")


def cmd_whoami(args, client: "LocalClient"):
    resp = asyncio.run(client.auth.get_user())
    if resp.error:
        report_error(resp.error)
    if args.json:
        print_json({"user": resp.user.to_dict(), "expires_at": resp.session.expires_at})
    else:
        print(f"{resp.user.email} ({resp.user.id})")
        print(f"Session expires: {resp.session.expires_at}")
