"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes accept a single credential: an access token in the
Authorization: Bearer <token> header. Verification is stateless -- signature
and exp only, no store lookup.

  missing header / not Bearer  -> UnauthorizedError (401)
  bad signature / expired      -> ForbiddenError (403)

get_current_subject() returns the numeric account id from the token's sub
claim. get_current_user() additionally loads the account from the store.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.errors import ForbiddenError, NotFoundError, UnauthorizedError
from auth.models import User
from auth.tokens import InvalidTokenError, TokenCodec, TokenKind


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_subject(request: Request) -> int:
    """Require a valid access token and return its subject as an account id.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user_id: int = Depends(get_current_subject)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise UnauthorizedError("Unauthorized", reason="missing or non-Bearer Authorization header")

    codec: TokenCodec = request.app.state.codec
    try:
        subject = codec.verify(token, TokenKind.access)
        return int(subject)
    except (InvalidTokenError, ValueError) as exc:
        raise ForbiddenError("Invalid token", reason=str(exc)) from exc


def get_current_user(request: Request, user_id: int = Depends(get_current_subject)) -> User:
    """Require a valid access token whose subject still has an account."""
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found", reason=f"token subject {user_id} has no account")
    return user
