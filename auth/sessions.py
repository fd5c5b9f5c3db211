"""
auth/sessions.py -- Session manager: login and refresh orchestration.

Refresh-token lifecycle:

    ISSUED --(record live, signature ok)--> ACTIVE   refresh succeeds
           --(now >= expires_at)----------> EXPIRED  unreachable, later purged
           --(signature check fails)------> REVOKED  record deleted on the spot

Blocking work (SQL round-trips, bcrypt) runs in worker threads under a
per-call deadline so one slow request never stalls the event loop. A deadline
miss surfaces as SessionTimeoutError (an InternalError), never as
UnauthorizedError, so clients do not mistake a transient failure for a
credential rejection.

A deadline miss abandons the worker thread; it cannot be cancelled and runs
to completion. A write it was carrying may therefore still commit after the
SessionTimeoutError has been raised:
  - login: the refresh record is stored but its token was never handed out.
    Nobody can present it, so it is inert and the sweep removes it at expiry.
  - rotation: the presented record is consumed without a replacement being
    issued. The client has to log in again.
Neither case can grant access the caller did not already have.

Log lines distinguish "token not found" from "token failed verification";
the UnauthorizedError message handed to clients is identical for both.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import InternalError, SessionError, SessionTimeoutError, UnauthorizedError
from auth.models import RefreshToken, User
from auth.store import RefreshTokenStore, UserStore, to_iso
from auth.tokens import InvalidTokenError, TokenCodec, TokenKind, verify_credentials

logger = logging.getLogger("portfolio.auth")

T = TypeVar("T")

_INVALID_TOKEN = "Invalid token"


@dataclass(frozen=True)
class SessionPolicy:
    """Lifetimes and behaviour switches for the session manager."""

    refresh_ttl_seconds: int = 7 * 24 * 60 * 60
    rotate_refresh_tokens: bool = False
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: User


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    # Only set when rotation is enabled.
    refresh_token: str | None = None


class SessionManager:
    """Issue and renew sessions for accounts held in a UserStore.

    Usage:
        manager = SessionManager(user_store, refresh_store, codec)
        result = await manager.login("a@x.com", "secret1")
        renewed = await manager.refresh(result.refresh_token)
    """

    def __init__(
        self,
        user_store: UserStore,
        refresh_store: RefreshTokenStore,
        codec: TokenCodec,
        policy: SessionPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.user_store = user_store
        self.refresh_store = refresh_store
        self.codec = codec
        self.policy = policy or SessionPolicy()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Blocking-call wrapper
    # ------------------------------------------------------------------

    async def _run(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Run a blocking call in a worker thread under the per-call deadline.

        SessionError subclasses pass through untouched. Store failures become
        InternalError; a deadline miss becomes SessionTimeoutError.
        """
        call = functools.partial(func, *args, **kwargs)
        try:
            return await asyncio.wait_for(asyncio.to_thread(call), timeout=self.policy.timeout_seconds)
        except asyncio.TimeoutError as exc:
            name = getattr(func, "__qualname__", repr(func))
            raise SessionTimeoutError("Request timed out", reason=f"{name} exceeded deadline") from exc
        except SessionError:
            raise
        except SQLAlchemyError as exc:
            name = getattr(func, "__qualname__", repr(func))
            raise InternalError("An unexpected error occurred", reason=f"store failure in {name}: {exc}") from exc

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        """Verify credentials and issue an access + refresh token pair.

        Raises NotFoundError (no such account), UnauthorizedError (wrong
        password), or InternalError. The refresh record is committed before
        this coroutine returns.
        """
        user = await self._run(verify_credentials, self.user_store, email, password)
        now = self._clock()
        subject = str(user.id)
        access_token = self.codec.issue_access_token(subject, now=now)
        refresh_token = await self._persist_refresh_token(user.id, now)
        logger.info("Login succeeded for user_id=%s", user.id)
        return LoginResult(access_token=access_token, refresh_token=refresh_token, user=user)

    async def _persist_refresh_token(self, user_id: int, now: datetime) -> str:
        token = self.codec.issue_refresh_token(str(user_id), now=now)
        record = RefreshToken(
            user_id=user_id,
            token=token,
            expires_at=to_iso(now + timedelta(seconds=self.policy.refresh_ttl_seconds)),
            created_at=to_iso(now),
        )
        await self._run(self.refresh_store.create, record)
        return token

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, presented_token: str) -> RefreshResult:
        """Mint a new access token from a stored, validly signed refresh token.

        Unknown or expired token: UnauthorizedError, nothing deleted.
        Stored token failing verification: record deleted, UnauthorizedError.
        With rotation enabled the presented record is consumed and a new
        refresh token is returned alongside the access token.
        """
        now = self._clock()
        record = await self._run(self.refresh_store.find_by_token, presented_token, now)
        if record is None:
            logger.info("Refresh rejected: token not found or expired")
            raise UnauthorizedError(_INVALID_TOKEN, reason="refresh token not found")

        try:
            subject = self.codec.verify(presented_token, TokenKind.refresh, now=now)
            if subject != str(record.user_id):
                raise InvalidTokenError(f"sub {subject!r} does not match record owner {record.user_id}")
        except InvalidTokenError as exc:
            logger.warning("Refresh rejected: stored token failed verification (record id=%s): %s", record.id, exc)
            await self._revoke(record)
            raise UnauthorizedError(_INVALID_TOKEN, reason=f"refresh token failed verification: {exc}") from exc

        new_refresh_token = None
        if self.policy.rotate_refresh_tokens:
            consumed = await self._run(self.refresh_store.delete, record)
            if not consumed:
                logger.info("Refresh rejected: record id=%s already consumed by a concurrent refresh", record.id)
                raise UnauthorizedError(_INVALID_TOKEN, reason="refresh token already rotated")
            new_refresh_token = await self._persist_refresh_token(record.user_id, now)

        access_token = self.codec.issue_access_token(subject, now=now)
        logger.info("Refresh succeeded for user_id=%s", record.user_id)
        return RefreshResult(access_token=access_token, refresh_token=new_refresh_token)

    async def _revoke(self, record: RefreshToken) -> None:
        """Defensive revocation. Failure is logged; the caller fails regardless."""
        try:
            await self._run(self.refresh_store.delete, record)
        except Exception as exc:
            logger.error(
                "Failed to revoke refresh token record id=%s (stale until expiry at %s): %s",
                record.id,
                record.expires_at,
                getattr(exc, "reason", exc),
                exc_info=not isinstance(exc, SessionError),
            )
