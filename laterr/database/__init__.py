"""Embedded database layer.

- engine: owned in-memory SQLite handle and its single-writer lock
- schema: DDL and idempotent schema creation
- persistence: full-image flush to the host byte store
- codec: JSON-in-text column encoding
- query: fluent builder compiled to one SQL statement
- local: the pieces wired together
"""

from .base import APIError, APIResponse, AuthResponse, Session, User
from .engine import Engine
from .local import LocalDatabase
from .persistence import DB_KEY, PersistenceBridge
from .query import QueryBuilder
from .schema import ALLOWED_TABLES, SCHEMA_VERSION, ensure_schema

__all__ = [
    "APIError",
    "APIResponse",
    "AuthResponse",
    "Session",
    "User",
    "Engine",
    "LocalDatabase",
    "PersistenceBridge",
    "DB_KEY",
    "QueryBuilder",
    "ALLOWED_TABLES",
    "SCHEMA_VERSION",
    "ensure_schema",
]
