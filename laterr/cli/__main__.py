"""
Laterr CLI - administer the local database from a terminal.

Usage:
    laterr status [--json]
    laterr signup EMAIL [--password P]
    laterr login EMAIL [--password P]
    laterr logout
    laterr whoami [--json]
    laterr query TABLE [--eq COL=VAL]... [--order COL] [--desc] [--limit N] [--json]
    laterr export PATH
    laterr import PATH
    laterr reset --yes
"""

import argparse
import logging
import sys
from pathlib import Path

from laterr.client import create_client
from laterr.config import get_settings
from laterr.errors import LaterrError
from laterr.logging_config import setup_laterr_logging

from .commands.auth import cmd_login, cmd_logout, cmd_signup, cmd_whoami
from .commands.data import cmd_export, cmd_import, cmd_query, cmd_reset, cmd_status

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="laterr",
        description="Local data store for the laterr reading list",
    )
    parser.add_argument("--data-dir", "-d", help="Data directory (default: ~/.laterr)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # status
    p_status = subparsers.add_parser("status", help="Show database status")
    p_status.add_argument("--json", "-j", action="store_true")

    # accounts
    p_signup = subparsers.add_parser("signup", help="Create an account")
    p_signup.add_argument("email")
    p_signup.add_argument("--password", "-p", help="Password (prompted if omitted)")

    p_login = subparsers.add_parser("login", help="Sign in")
    p_login.add_argument("email")
    p_login.add_argument("--password", "-p", help="Password (prompted if omitted)")

    subparsers.add_parser("logout", help="Sign out")

    p_whoami = subparsers.add_parser("whoami", help="Show the signed-in user")
    p_whoami.add_argument("--json", "-j", action="store_true")

    # query
    p_query = subparsers.add_parser("query", help="Select rows from a table")
    p_query.add_argument("table")
    p_query.add_argument("--columns", "-c", default="*", help="Column list (default: *)")
    p_query.add_argument("--eq", action="append", metavar="COL=VAL",
                         help="Equality filter (repeatable)")
    p_query.add_argument("--order", "-o", help="Order by column")
    p_query.add_argument("--desc", action="store_true", help="Descending order")
    p_query.add_argument("--limit", "-l", type=int)
    p_query.add_argument("--json", "-j", action="store_true")

    # image
    p_export = subparsers.add_parser("export", help="Write the database image to a file")
    p_export.add_argument("path")

    p_import = subparsers.add_parser("import", help="Replace the database with an image file")
    p_import.add_argument("path")

    p_reset = subparsers.add_parser("reset", help="Delete all local data")
    p_reset.add_argument("--yes", action="store_true", help="Confirm the reset")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.data_dir:
        settings = settings.model_copy(update={"data_dir": Path(args.data_dir).expanduser()})
    setup_laterr_logging(settings.log_level, settings.data_dir)

    client = create_client(settings=settings)

    try:
        if args.command == "status":
            cmd_status(args, client)
        elif args.command == "signup":
            cmd_signup(args, client)
        elif args.command == "login":
            cmd_login(args, client)
        elif args.command == "logout":
            cmd_logout(args, client)
        elif args.command == "whoami":
            cmd_whoami(args, client)
        elif args.command == "query":
            cmd_query(args, client)
        elif args.command == "export":
            cmd_export(args, client)
        elif args.command == "import":
            cmd_import(args, client)
        elif args.command == "reset":
            cmd_reset(args, client)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)
    except LaterrError as e:
        logger.error(f"Command failed: {e.message}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
