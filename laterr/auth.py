"""Local authentication for laterr.

Accounts live in the ``users`` table, passwords are bcrypt hashes, and a
successful sign-in issues an HS256 JWT that is recorded in ``sessions`` and
in the single-slot session record (``laterr_session`` in the key-value store).
The slot is what the UI reads to answer "am I signed in" without touching the
database; changes to it are broadcast to other contexts on the session
channel.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import bcrypt
from jose import JWTError, jwt

from .broadcast import SessionChannel, Subscription
from .config import Settings
from .database.base import AuthResponse, Session, User
from .database.local import LocalDatabase
from .database.query import QueryBuilder
from .errors import AuthError, ConstraintError, PersistenceError, ValidationError
from .hoststore import KeyValueStore
from .logging_config import log_auth_event
from .utils import generate_id, parse_datetime

logger = logging.getLogger(__name__)

SESSION_KEY = "laterr_session"
SECRET_KEY = "laterr_jwt_secret"

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72

INVALID_CREDENTIALS = "Invalid login credentials"

AuthCallback = Callable[[str, Optional[Session]], None]


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds)).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except (ValueError, TypeError):
        return False


def generate_secret() -> str:
    """Generate a token signing secret."""
    return secrets.token_urlsafe(32)


def create_access_token(
    user: User,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta = timedelta(days=7),
    now: Optional[datetime] = None,
) -> tuple[str, datetime]:
    """Create a JWT for ``user``.

    Returns:
        The token and its expiry instant.
    """
    issued = now or datetime.now(timezone.utc)
    expire = issued + expires_delta
    to_encode = {
        "sub": user.id,
        "email": user.email,
        "exp": expire,
        "iat": issued,
        "type": "access",
    }
    return jwt.encode(to_encode, secret, algorithm=algorithm), expire


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """Decode and validate a JWT (signature and expiry).

    Raises:
        AuthError: The token is malformed, tampered with or expired.
    """
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise AuthError("Invalid token", code="invalid_token", details=str(e)) from e


class LocalAuth:
    """Credential storage, session issuance and the session slot.

    Methods are blocking; ``laterr.client.AuthClient`` runs them off the event
    loop. Failures come back inside ``AuthResponse.error``.
    """

    def __init__(
        self,
        db: LocalDatabase,
        slots: KeyValueStore,
        settings: Settings,
        channel: SessionChannel,
        context_id: Optional[str] = None,
    ):
        self._db = db
        self._slots = slots
        self._settings = settings
        self._channel = channel
        self.context_id = context_id or channel.new_context_id()
        self._secret: Optional[str] = None

    # === helpers ===

    def _table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self._db, name)

    @property
    def secret(self) -> str:
        """Signing secret: configured, else generated once and kept in the store."""
        if self._secret is None:
            secret = self._settings.jwt_secret_key or self._slots.get_item(SECRET_KEY)
            if not secret:
                secret = generate_secret()
                self._slots.set_item(SECRET_KEY, secret)
                logger.info("Generated new local token signing secret")
            self._secret = secret
        return self._secret

    def _write_slot(self, session: Optional[Session]) -> None:
        if session is None:
            existed = self._slots.remove_item(SESSION_KEY)
            if existed:
                self._channel.publish(self.context_id, None)
            return
        record = session.to_dict()
        self._slots.set_json(SESSION_KEY, record)
        self._channel.publish(self.context_id, record)

    @staticmethod
    def _validate_credentials(email: str, password: str) -> None:
        if not email or not password:
            raise ValidationError("Email and password are required", code="validation_failed")
        if len(password.encode()) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes",
                code="validation_failed",
            )

    # === operations ===

    def sign_up(self, email: str, password: str) -> AuthResponse:
        """Create an account. Does not sign in."""
        try:
            self._validate_credentials(email, password)
        except ValidationError as e:
            return AuthResponse.failure(e)

        existing = self._table("users").select("id").eq("email", email).execute()
        if existing.error:
            return AuthResponse(error=existing.error)
        if existing.data:
            log_auth_event("sign_up_rejected", email, "email_taken")
            return AuthResponse.failure(
                ConstraintError("User already registered", code="user_already_exists")
            )

        password_hash = hash_password(password, self._settings.bcrypt_rounds)
        created = (
            self._table("users")
            .insert({"id": generate_id(), "email": email, "password_hash": password_hash})
            .execute()
        )
        if created.error:
            return AuthResponse(error=created.error)

        user = User.from_row(created.data)
        log_auth_event("sign_up", email)
        return AuthResponse(user=user)

    def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        """Check credentials, issue a session and write the session slot."""
        found = (
            self._table("users")
            .select("id, email, password_hash, created_at, updated_at")
            .eq("email", email)
            .maybe_single()
            .execute()
        )
        if found.error:
            return AuthResponse(error=found.error)

        # Same error either way; only the log knows which check failed
        if found.data is None:
            log_auth_event("sign_in_failed", email, "unknown_email")
            return AuthResponse.failure(AuthError(INVALID_CREDENTIALS, code="invalid_credentials"))
        if not verify_password(password or "", found.data["password_hash"]):
            log_auth_event("sign_in_failed", email, "bad_password")
            return AuthResponse.failure(AuthError(INVALID_CREDENTIALS, code="invalid_credentials"))

        user = User.from_row(found.data)
        try:
            token, expire = create_access_token(
                user,
                self.secret,
                self._settings.jwt_algorithm,
                timedelta(minutes=self._settings.session_expire_minutes),
            )
        except PersistenceError as e:
            return AuthResponse.failure(e)
        expires_at = expire.isoformat()

        stored = (
            self._table("sessions")
            .insert({"user_id": user.id, "token": token, "expires_at": expires_at})
            .execute()
        )
        if stored.error:
            return AuthResponse(error=stored.error)

        session = Session(user=user, token=token, expires_at=expires_at)
        try:
            self._write_slot(session)
        except PersistenceError as e:
            return AuthResponse.failure(e)

        log_auth_event("sign_in", email)
        return AuthResponse(user=user, session=session)

    def sign_out(self) -> AuthResponse:
        """Drop the session row and clear the slot. Safe to call when signed out."""
        session = self.get_session()
        error = None
        if session is not None:
            deleted = self._table("sessions").delete().eq("token", session.token).execute()
            error = deleted.error
            if error:
                logger.warning(f"Could not delete session row: {error.message}")
        try:
            self._write_slot(None)
        except PersistenceError as e:
            return AuthResponse.failure(e)
        if session is not None:
            log_auth_event("sign_out", session.user.email)
        return AuthResponse(error=error)

    def get_session(self) -> Optional[Session]:
        """Read the session slot; expired or unreadable records are cleared."""
        record = self._slots.get_json(SESSION_KEY)
        if record is None:
            return None

        try:
            session = Session.from_dict(record)
        except (KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed session record: {e}")
            self._write_slot(None)
            return None

        expires_at = parse_datetime(session.expires_at)
        if expires_at is None or expires_at <= datetime.now(timezone.utc):
            log_auth_event("session_expired", session.user.email)
            self._write_slot(None)
            return None
        return session

    def get_user(self) -> AuthResponse:
        """Return the signed-in user after re-verifying the token itself."""
        session = self.get_session()
        if session is None:
            return AuthResponse.failure(AuthError("Auth session missing", code="session_missing"))

        try:
            payload = decode_token(session.token, self.secret, self._settings.jwt_algorithm)
            if payload.get("sub") != session.user.id:
                raise AuthError("Invalid token", code="invalid_token", details="subject mismatch")
        except AuthError as e:
            log_auth_event("token_rejected", session.user.email, e.details)
            self._write_slot(None)
            return AuthResponse.failure(e)

        return AuthResponse(user=session.user, session=session)

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        """Notify ``callback`` of the current session, then of other contexts' changes.

        The initial ``INITIAL_SESSION`` call is scheduled on the running event
        loop (or made directly when there is none). Later calls are
        ``SIGNED_IN`` / ``SIGNED_OUT`` and only come from other contexts.
        """
        current = self.get_session()
        try:
            asyncio.get_running_loop().call_soon(callback, "INITIAL_SESSION", current)
        except RuntimeError:
            callback("INITIAL_SESSION", current)

        def listener(record):
            session = None
            if record is not None:
                try:
                    session = Session.from_dict(record)
                except (KeyError, TypeError) as e:
                    logger.warning(f"Ignoring malformed broadcast session: {e}")
            callback("SIGNED_IN" if session else "SIGNED_OUT", session)

        return self._channel.subscribe(self.context_id, listener)
