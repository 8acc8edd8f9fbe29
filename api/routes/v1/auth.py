"""
api/routes/v1/auth.py -- Session and profile REST endpoints.

Routes:
  POST  /api/v1/auth/register   -- create account; returns token pair, sets refresh cookie
  POST  /api/v1/auth/login      -- password login; returns token pair, sets refresh cookie
  POST  /api/v1/auth/refresh    -- rotate refresh token (cookie or body); sets new cookie
  POST  /api/v1/auth/logout     -- end the session (requires access token); clears cookie
  GET   /api/v1/auth/me         -- current user (requires access token)
  PATCH /api/v1/auth/me         -- update username/email (requires access token)

Handlers are plain `def`, not `async def`: FastAPI runs them in its threadpool,
so bcrypt and blocking store calls never stall the event loop.

Errors raised by AuthService propagate to the AuthError handler in api/main.py,
which owns the status-code mapping. Two routes answer their own 401s: login
folds "unknown email" and "wrong password" into one response so it does not
reveal whether an account exists, and refresh clears the dead cookie.

Security:
  [M5] Cache-Control: no-store on every response that carries tokens.
  The refresh cookie is httpOnly and SameSite=strict; Secure when SECURE_COOKIES=true.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    ProfilePatch,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_claims
from auth.errors import NotFoundError, UnauthorizedError, ValidationError
from auth.models import TokenClaims
from auth.service import AuthService
from core.config import Settings

REFRESH_COOKIE = "refreshToken"

# Auth policy:
# - POST  /auth/register, /auth/login:  public
# - POST  /auth/refresh:                public -- the refresh token is the credential
# - POST  /auth/logout:                 requires access token (identifies the user)
# - GET   /auth/me, PATCH /auth/me:     requires access token
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create an account and open its first session."""
    settings: Settings = request.app.state.settings
    result = service.register(body.username, body.email, body.password)
    set_refresh_cookie(response, result.refresh_token, settings)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthResponse.from_result(result, settings.access_token_expire_seconds)


@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Authenticate with email and password; replaces any previous session.

    Returns the same generic error for unknown email and wrong password
    ("bad_credentials"). An inactive account still gets 403 from the
    AuthError handler.
    """
    settings: Settings = request.app.state.settings
    try:
        result = service.login(body.email, body.password)
    except (NotFoundError, UnauthorizedError):
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid email or password.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    set_refresh_cookie(response, result.refresh_token, settings)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthResponse.from_result(result, settings.access_token_expire_seconds)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    service: AuthService = Depends(get_auth_service),
):
    """Exchange the current refresh token for a new pair.

    The presented token is single-use: a second call with it returns 401 and
    the client must log in again. The 401 also clears the refresh cookie so a
    browser stops replaying the dead token.
    """
    settings: Settings = request.app.state.settings
    token = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    if not token:
        raise ValidationError("Refresh token is required.")
    try:
        pair = service.refresh(token)
    except UnauthorizedError as exc:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
            headers={"WWW-Authenticate": "Bearer"},
        )
        clear_refresh_cookie(resp, settings)
        return resp
    set_refresh_cookie(response, pair.refresh_token, settings)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenPairResponse.from_pair(pair, settings.access_token_expire_seconds)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the user's refresh token and clear the cookie."""
    service.logout(claims.id)
    clear_refresh_cookie(response, request.app.state.settings)
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=UserResponse)
def me(
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Return the currently authenticated user."""
    user = service.get_user_by_id(claims.id)
    if user is None:
        raise NotFoundError("User not found.")
    return UserResponse.from_public(user)


@router.patch("/auth/me", response_model=UserResponse)
def update_me(
    body: ProfilePatch,
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Change the current user's username and/or email."""
    user = service.update_profile(claims.id, username=body.username, email=body.email)
    return UserResponse.from_public(user)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    """Write the refresh token as an httpOnly cookie.

    samesite="strict": the cookie is never sent on cross-site requests, so the
    refresh endpoint cannot be driven from another origin.
    max_age: matches the server-side session window (token_expires_at).
    """
    response.set_cookie(
        REFRESH_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
        max_age=settings.refresh_token_store_seconds,
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        REFRESH_COOKIE,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
    )
