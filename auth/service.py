"""
auth/service.py -- AuthService, the orchestrator that owns the session invariants.

Operations: register, login, refresh, logout, update_profile, get_user_by_id,
and authenticate (access-token check for the transport layer).

Invariants enforced here:
  - One live refresh token per user. Every issue overwrites the stored value,
    so the previous refresh token stops working even before it expires.
  - Refresh tokens are single-use. refresh() checks the presented token
    against the stored one and rotates with a conditional UPDATE, so a replay
    or the loser of a concurrent refresh gets UnauthorizedError.
  - Nothing outward carries a secret. Every user-shaped return is PublicUser.

Errors: only the auth.errors taxonomy leaves this class. Store failures are
logged and re-raised as InternalError with the original exception chained.

All methods are synchronous and may block on bcrypt and on the store. The
HTTP layer calls them from FastAPI's threadpool (plain `def` routes).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from auth.models import AuthResult, PublicUser, TokenClaims, TokenPair, User
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.store import UserStore
from auth.tokens import Clock, TokenService, utcnow
from core.config import Settings

logger = logging.getLogger("authority.service")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _validate_username(username: str) -> None:
    if len(username) < USERNAME_MIN_LENGTH:
        raise ValidationError(f"Username must be at least {USERNAME_MIN_LENGTH} characters long.")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"Username must be at most {USERNAME_MAX_LENGTH} characters long.")


def _validate_email(email: str) -> None:
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format.")


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Turn any SQLAlchemy failure inside the block into InternalError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store failure during %s", operation)
        raise InternalError() from exc


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AuthService:
    """Coordinates the store, the hasher, and the token service.

    Usage:
        settings = get_settings()
        service = AuthService(UserStore(settings.database_url), TokenService.from_settings(settings), settings)
        result = service.register("alice", "alice@x.com", "secret123")
        pair = service.refresh(result.refresh_token)
    """

    def __init__(self, store: UserStore, tokens: TokenService, settings: Settings, clock: Clock = utcnow) -> None:
        self.store = store
        self.tokens = tokens
        self._session_lifetime = timedelta(seconds=settings.refresh_token_store_seconds)
        self._clock = clock

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str) -> AuthResult:
        """Create a user and open its first session."""
        if not username or not email or not password:
            raise ValidationError("Username, email and password are required.")
        _validate_username(username)
        _validate_email(email)

        with _store_errors("register"):
            if self.store.get_by_email(email) is not None:
                raise ConflictError("User already exists.")
            try:
                user = self.store.create_user(username, email, hash_password(password))
            except IntegrityError as exc:
                # A concurrent registration won the race past the existence check.
                raise ConflictError("User already exists.") from exc
            result = self._open_session(user)
        logger.info("Registered user id=%s", user.id)
        return result

    def login(self, email: str, password: str) -> AuthResult:
        """Check credentials and open a new session, replacing any previous one."""
        if not email or not password:
            raise ValidationError("Email and password are required.")

        with _store_errors("login"):
            user = self.store.get_by_email(email)
            if user is None:
                # Equalize timing -- do NOT return before running bcrypt [C1]
                verify_password(password, DUMMY_HASH)
                logger.info("Login failed: unknown email")
                raise NotFoundError("User not found.")
            if not user.is_active:
                logger.info("Login refused for inactive user id=%s", user.id)
                raise ForbiddenError("User is not active.")
            if not verify_password(password, user.password_hash):
                logger.warning("Login failed: invalid password for user id=%s", user.id)
                raise UnauthorizedError("Invalid password.")
            result = self._open_session(user)
        logger.info("User id=%s logged in", user.id)
        return result

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a new pair. The presented token dies."""
        try:
            claims = self.tokens.verify_refresh(refresh_token)
        except InvalidTokenError as exc:
            raise UnauthorizedError("Invalid refresh token.") from exc

        with _store_errors("refresh"):
            user = self.store.get_by_id(claims.id)
            if user is None or not self._is_current_session(user, refresh_token):
                logger.warning("Refresh rejected for user id=%s: token is not the live session", claims.id)
                raise UnauthorizedError("Invalid refresh token.")
            if not user.is_active:
                raise ForbiddenError("User is not active.")

            pair = self.tokens.issue_pair(TokenClaims(id=user.id, email=user.email))
            rotated = self.store.rotate_refresh_token(
                user.id, refresh_token, pair.refresh_token, self._clock() + self._session_lifetime
            )
        if not rotated:
            logger.warning("Refresh lost a rotation race for user id=%s", user.id)
            raise UnauthorizedError("Invalid refresh token.")
        logger.info("Rotated refresh token for user id=%s", user.id)
        return pair

    def logout(self, user_id: int) -> None:
        """Clear the stored session. Idempotent, including for unknown ids."""
        with _store_errors("logout"):
            self.store.update_refresh_token(user_id, None, None)
        logger.info("User id=%s logged out", user_id)

    def authenticate(self, access_token: str) -> TokenClaims:
        """Return the claims of a valid access token, or raise UnauthorizedError."""
        try:
            return self.tokens.verify_access(access_token)
        except InvalidTokenError as exc:
            raise UnauthorizedError("Invalid access token.") from exc

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_user_by_id(self, user_id: int) -> PublicUser | None:
        with _store_errors("get_user_by_id"):
            user = self.store.get_by_id(user_id)
        return PublicUser.from_user(user) if user is not None else None

    def update_profile(self, user_id: int, username: str | None = None, email: str | None = None) -> PublicUser:
        """Change username and/or email. Fields left as None are not touched."""
        if username is not None:
            _validate_username(username)
        if email is not None:
            _validate_email(email)
        if username is None and email is None:
            raise ValidationError("At least one field (username or email) must be provided.")

        fields = {k: v for k, v in (("username", username), ("email", email)) if v is not None}
        with _store_errors("update_profile"):
            user = self.store.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found.")
            if email is not None and email != user.email:
                owner = self.store.get_by_email(email)
                if owner is not None and owner.id != user_id:
                    raise ConflictError("Email is already in use.")
            try:
                self.store.update_profile(user_id, **fields)
            except IntegrityError as exc:
                raise ConflictError("Email is already in use.") from exc
            updated = self.store.get_by_id(user_id)
        if updated is None:
            raise InternalError("User disappeared during update.")
        logger.info("Updated profile fields %s for user id=%s", sorted(fields), user_id)
        return PublicUser.from_user(updated)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_session(self, user: User) -> AuthResult:
        """Issue a pair for the user and make its refresh token the live session."""
        pair = self.tokens.issue_pair(TokenClaims(id=user.id, email=user.email))
        self.store.update_refresh_token(user.id, pair.refresh_token, self._clock() + self._session_lifetime)
        return AuthResult(
            user=PublicUser.from_user(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    def _is_current_session(self, user: User, presented: str) -> bool:
        if not user.refresh_token or not user.token_expires_at:
            return False
        if not hmac.compare_digest(user.refresh_token.encode("utf-8"), presented.encode("utf-8")):
            return False
        return datetime.fromisoformat(user.token_expires_at) > self._clock()
