"""Result and record types shared by the query and auth layers."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..errors import LaterrError


@dataclass
class APIError:
    """An error returned as a value from the client surface."""
    message: str
    code: Optional[str] = None
    kind: str = "engine"
    details: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "APIError":
        if isinstance(exc, LaterrError):
            return cls(message=exc.message, code=exc.code, kind=exc.kind, details=exc.details)
        return cls(message=str(exc) or exc.__class__.__name__)


@dataclass
class APIResponse:
    """``{data, error}`` result of an awaited builder or client call."""
    data: Any = None
    error: Optional[APIError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, exc: BaseException) -> "APIResponse":
        return cls(data=None, error=APIError.from_exception(exc))


@dataclass
class User:
    """A local account, never carrying the password hash."""
    id: str
    email: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Session:
    """The single-slot session record: user, signed token, expiry."""
    user: User
    token: str
    expires_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            user=User.from_row(data["user"]),
            token=data["token"],
            expires_at=data["expires_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"user": self.user.to_dict(), "token": self.token, "expires_at": self.expires_at}


@dataclass
class AuthResponse:
    """Result of an auth call."""
    user: Optional[User] = None
    session: Optional[Session] = None
    error: Optional[APIError] = None

    @classmethod
    def failure(cls, exc: BaseException) -> "AuthResponse":
        return cls(error=APIError.from_exception(exc))
