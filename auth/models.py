"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store and the service do the work.

User is the internal row representation and carries secrets. PublicUser is
the only shape that ever leaves the core: it has no password_hash,
refresh_token, or token_expires_at field, so secrets cannot leak by accident.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A row of the users table.

    Timestamps are ISO 8601 UTC strings, the same format the store writes.
    refresh_token / token_expires_at are None when the user has no session.
    """

    username: str
    email: str
    password_hash: str
    id: int | None = None
    refresh_token: str | None = None
    token_expires_at: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """Outward projection of a User with every secret field removed."""

    id: int
    username: str
    email: str
    is_active: bool
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried by both access and refresh tokens.

    iat / exp are Unix timestamps (seconds) and jti is a random token id. They
    are left empty on claims built for issuing; the issuer stamps them.
    """

    id: int
    email: str
    iat: int = 0
    exp: int = 0
    jti: str = ""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """Returned by register and login."""

    user: PublicUser
    access_token: str
    refresh_token: str
