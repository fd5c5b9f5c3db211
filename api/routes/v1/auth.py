"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST /api/v1/auth/login    -- email + password; returns access + refresh tokens
  POST /api/v1/auth/refresh  -- refresh token; returns a new access token
  GET  /api/v1/auth/me       -- current account (requires Bearer access token)

Handlers are thin: SessionManager raises SessionError subclasses and the
exception handler in api/main.py renders them, so no status codes are chosen
here.

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import LoginRequest, LoginResponse, RefreshRequest, RefreshResponse, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.sessions import SessionManager

# Auth policy:
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - GET  /api/v1/auth/me:       requires Bearer access token
router = APIRouter()


@limiter.limit(login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a token pair and the account."""
    manager: SessionManager = request.app.state.session_manager
    result = await manager.login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=manager.codec.access_ttl_seconds,
            user=UserResponse.from_user(result.user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/refresh", response_model=RefreshResponse, response_model_exclude_none=True)
async def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a stored refresh token for a new access token."""
    manager: SessionManager = request.app.state.session_manager
    result = await manager.refresh(body.refresh_token)
    resp = JSONResponse(
        status_code=200,
        content=RefreshResponse(
            access_token=result.access_token,
            expires_in=manager.codec.access_ttl_seconds,
            refresh_token=result.refresh_token,
        ).model_dump(exclude_none=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the account that owns the presented access token."""
    return UserResponse.from_user(current_user)
