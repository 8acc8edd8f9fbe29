"""
auth/tokens.py -- JWT issuing and verification for access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Both token kinds carry exactly {id, email, iat,
       exp, jti}. jti is random, so two tokens issued in the same second for
       the same user still differ and rotation always changes the value.
       The two kinds are told apart by their signing secret: access tokens
       are signed with ACCESS_TOKEN_SECRET, refresh tokens with
       REFRESH_TOKEN_SECRET. Settings guarantees the two differ, so a refresh
       token never verifies as an access token and vice versa.

  Claims: decoded payloads are validated against a strict pydantic schema.
       Unknown or missing fields and wrong types (including bool for id) all
       raise InvalidTokenError -- nothing untyped escapes this module.

  Clock: expiry is checked here against the injected clock rather than by
       jose, so issuing and verifying are pure functions of (claims, secret,
       clock) and expiry can be tested without sleeping.

  Secrets: injected at construction (TokenService.from_settings). There is
       no module-level secret and no fallback value.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timezone

from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from auth.errors import InvalidTokenError
from auth.models import TokenClaims, TokenPair
from core.config import Settings

_ALGORITHM = "HS256"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _ClaimSchema(BaseModel):
    """Wire shape of a token payload. Anything else is rejected."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    id: int
    email: str
    iat: int
    exp: int
    jti: str


class TokenService:
    """Issues and verifies the two token kinds.

    Usage:
        tokens = TokenService.from_settings(get_settings())
        pair = tokens.issue_pair(TokenClaims(id=1, email="alice@x.com"))
        claims = tokens.verify_access(pair.access_token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: int,
        refresh_ttl: int,
        clock: Clock = utcnow,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Token signing secrets must be configured.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> TokenService:
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=settings.access_token_expire_seconds,
            refresh_ttl=settings.refresh_token_expire_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Issuing
    # ------------------------------------------------------------------

    def issue_access(self, claims: TokenClaims) -> str:
        """Sign {id, email} with the access secret (default lifetime 5 minutes)."""
        return self._encode(claims, self._access_secret, self.access_ttl)

    def issue_refresh(self, claims: TokenClaims) -> str:
        """Sign {id, email} with the refresh secret (default lifetime 10 days)."""
        return self._encode(claims, self._refresh_secret, self.refresh_ttl)

    def issue_pair(self, claims: TokenClaims) -> TokenPair:
        return TokenPair(access_token=self.issue_access(claims), refresh_token=self.issue_refresh(claims))

    def _encode(self, claims: TokenClaims, secret: str, ttl: int) -> str:
        issued_at = int(self._clock().timestamp())
        payload = {
            "id": claims.id,
            "email": claims.email,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> TokenClaims:
        """Return the claims of a valid access token. Raises InvalidTokenError otherwise."""
        return self._decode(token, self._access_secret)

    def verify_refresh(self, token: str) -> TokenClaims:
        """Return the claims of a valid refresh token. Raises InvalidTokenError otherwise.

        This is signature and expiry only. Whether the token is still the one
        stored against the user is AuthService.refresh's job.
        """
        return self._decode(token, self._refresh_secret)

    def _decode(self, token: str, secret: str) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise InvalidTokenError("Token is missing.")
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM], options={"verify_exp": False})
        except JWTError as exc:
            raise InvalidTokenError("Token signature is invalid.") from exc
        try:
            parsed = _ClaimSchema.model_validate(payload)
        except PydanticValidationError as exc:
            raise InvalidTokenError("Token claims are malformed.") from exc
        if parsed.exp <= int(self._clock().timestamp()):
            raise InvalidTokenError("Token has expired.")
        return TokenClaims(id=parsed.id, email=parsed.email, iat=parsed.iat, exp=parsed.exp, jti=parsed.jti)
