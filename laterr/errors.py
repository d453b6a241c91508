"""Exception types for the laterr local data layer.

Exceptions are raised where the work happens and converted into
``APIError`` values at the builder and auth boundaries, so callers of the
client never have to catch them.
"""

import sqlite3
from typing import Optional

# Error kinds carried by APIError.kind
NOT_FOUND = "not_found"
CONSTRAINT = "constraint"
CREDENTIAL = "credential"
PERSISTENCE = "persistence"
MALFORMED = "malformed"
INVALID_REQUEST = "invalid_request"
ENGINE = "engine"
NOT_IMPLEMENTED = "not_implemented"


class LaterrError(Exception):
    """Base class for all laterr errors."""

    kind = ENGINE
    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class SchemaError(LaterrError):
    """Schema creation failed; the application cannot start."""


class PersistenceError(LaterrError):
    """Reading or writing the durable store failed."""

    kind = PERSISTENCE


class ValidationError(LaterrError):
    """The caller supplied input that cannot be accepted."""

    kind = INVALID_REQUEST


class QueryError(ValidationError):
    """A builder was used in a way that cannot be compiled."""


class NoRowsError(LaterrError):
    """single()/maybe_single() did not get the row count it expects."""

    kind = NOT_FOUND
    code = "PGRST116"


class AuthError(LaterrError):
    """Credential-class failure (bad password, unknown user, bad token)."""

    kind = CREDENTIAL


class ConstraintError(LaterrError):
    """Uniqueness, foreign-key, NOT NULL or CHECK violation."""

    kind = CONSTRAINT


class TableNotFoundError(LaterrError):
    """The statement referenced a table the image does not have."""

    kind = NOT_FOUND
    code = "42P01"


_CONSTRAINT_CODES = (
    ("UNIQUE", "23505"),
    ("FOREIGN KEY", "23503"),
    ("NOT NULL", "23502"),
    ("CHECK", "23514"),
)


def classify_engine_error(exc: sqlite3.Error) -> LaterrError:
    """Map a sqlite3 exception onto the laterr error taxonomy."""
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        code = next((c for marker, c in _CONSTRAINT_CODES if marker in message), None)
        return ConstraintError(message, code=code)
    if "no such table" in message.lower():
        return TableNotFoundError(message)
    return LaterrError(message)


class ObjectNotFoundError(LaterrError):
    """A stored file does not exist."""

    kind = NOT_FOUND
    code = "404"
