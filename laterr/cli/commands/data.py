"""Database commands: status, query, export, import, reset."""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from laterr.database.schema import SCHEMA_VERSION, validate_table_name

from .helpers import parse_assignment, print_json, report_error

if TYPE_CHECKING:
    from laterr.client import LocalClient

logger = logging.getLogger(__name__)

COUNTED_TABLES = ("users", "sessions", "categories", "items", "tag_icons")


def cmd_status(args, client: "LocalClient"):
    """Show row counts and the current session."""
    counts = {}
    for table in COUNTED_TABLES:
        resp = asyncio.run(client.table(table).select("id"))
        if resp.error:
            report_error(resp.error)
        counts[table] = len(resp.data)
    session = asyncio.run(client.auth.get_session()).session

    if args.json:
        print_json({
            "schema_version": SCHEMA_VERSION,
            "data_dir": str(client.settings.data_dir),
            "counts": counts,
            "signed_in_as": session.user.email if session else None,
        })
        return

    print(f"Data dir: {client.settings.data_dir}")
    print(f"Schema:   v{SCHEMA_VERSION}")
    for table, n in counts.items():
        print(f"  {table:<12} {n}")
    print(f"Session:  {session.user.email if session else 'signed out'}")


def cmd_query(args, client: "LocalClient"):
    """Run a select with optional equality filters."""
    table = validate_table_name(args.table)
    builder = client.table(table).select(args.columns)
    for assignment in args.eq or []:
        column, value = parse_assignment(assignment)
        builder.eq(column, value)
    if args.order:
        builder.order(args.order, ascending=not args.desc)
    if args.limit is not None:
        builder.limit(args.limit)

    resp = asyncio.run(builder)
    if resp.error:
        report_error(resp.error)

    if args.json:
        print_json(resp.data)
        return
    if not resp.data:
        print("(no rows)")
        return
    for row in resp.data:
        print("  ".join(f"{k}={v}" for k, v in row.items() if k != "password_hash"))


def cmd_export(args, client: "LocalClient"):
    """Write the database image to a file."""
    path = Path(args.path)
    image = client.db.export_image()
    path.write_bytes(image)
    path.chmod(0o600)
    print(f"✓ Exported {len(image)} bytes to {path}")


def cmd_import(args, client: "LocalClient"):
    """Replace the database with an image file."""
    path = Path(args.path)
    if not path.exists():
        print(f"✗ File not found: {path}")
        raise SystemExit(1)
    client.db.import_image(path.read_bytes())
    print(f"✓ Imported {path}")


def cmd_reset(args, client: "LocalClient"):
    """Delete all local data."""
    if not args.yes:
        print("✗ Refusing to reset without --yes (this deletes every account and item)")
        raise SystemExit(1)
    asyncio.run(client.auth.sign_out())
    client.db.reset()
    print("✓ Local database reset")
