"""Shared helper functions for CLI commands."""

import getpass
import json
import re
import sys
from typing import Any, Optional, Tuple


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    sanitized = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)

    return sanitized


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def read_password(provided: Optional[str]) -> str:
    """Use --password if given, otherwise prompt without echo."""
    if provided:
        return provided
    try:
        return getpass.getpass("Password: ")
    except (EOFError, KeyboardInterrupt):
        print("\nAborted.")
        sys.exit(1)


def parse_assignment(value: str) -> Tuple[str, Any]:
    """Split COL=VALUE; VALUE is parsed as JSON when possible (numbers, null, lists)."""
    if "=" not in value:
        raise ValueError(f"Expected COLUMN=VALUE, got {value!r}")
    column, raw = value.split("=", 1)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = raw
    return column.strip(), parsed


def report_error(error) -> None:
    print(f"✗ {error.message}")
    sys.exit(1)
