"""
laterr - local data layer.

Runs the laterr application without a server: an embedded SQLite image
persisted to a host byte store, a fluent query builder, and local auth.
"""

from .client import LocalClient, create_client
from .database.base import APIError, APIResponse, AuthResponse, Session, User

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("laterr")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "LocalClient",
    "create_client",
    "APIError",
    "APIResponse",
    "AuthResponse",
    "Session",
    "User",
]
