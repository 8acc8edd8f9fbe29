"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth_service() hands routes the AuthService wired up in the app lifespan.
get_current_claims() reads the `Authorization: Bearer <access token>` header and
returns the verified TokenClaims; it raises UnauthorizedError, which the app's
AuthError handler turns into a 401 with the standard error envelope.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request/Depends)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.errors import UnauthorizedError
from auth.models import TokenClaims
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def bearer_token(request: Request) -> str | None:
    """Return the token from an `Authorization: Bearer ...` header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_claims(request: Request, service: AuthService = Depends(get_auth_service)) -> TokenClaims:
    """Require a valid access token. Raises UnauthorizedError (HTTP 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise UnauthorizedError("Authentication required.")
    return service.authenticate(token)
