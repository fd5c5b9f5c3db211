"""
auth/tokens.py -- JWT codec, password hashing, and credential verification.

Security design decisions:
  JWT: python-jose with HS256. Two kinds of token are minted, each with its
       own secret:
         access  -- claims sub, type, iat, exp, jti. Self-contained: verified
                    by signature and exp alone, never looked up in a store.
         refresh -- claims sub, type, iat, jti. NO exp claim. The validity
                    window lives in the persisted RefreshToken record so it can
                    be cut short by deleting the row.
       iat and exp are whole-second NumericDates, so tokens minted within the
       same second share an iat: issue order is monotonic (later iat >= earlier
       iat), strictly increasing only across second boundaries. The jti makes
       every minted token string unique even when two are issued for the same
       subject within the same second.

  Passwords: bcrypt used directly (no passlib wrapper). verify_password()
       returns False on malformed hashes instead of raising.

  Keys: TokenCodec receives a SigningKeys object at construction instead of
       reading global settings, so tests can build codecs with disposable keys.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import NotFoundError, UnauthorizedError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("portfolio.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def verify_credentials(store: UserStore, email: str, password: str) -> User:
    """Look up an account by email and check its password.

    Raises NotFoundError when no account matches the email (case-insensitive)
    and UnauthorizedError when the password does not match the stored hash.
    Blocking: runs bcrypt, call it off the event loop.
    """
    user = store.get_by_email(email)
    if user is None:
        raise NotFoundError("User not found", reason=f"no account for email {email!r}")
    if not verify_password(password, user.hashed_password):
        raise UnauthorizedError("Invalid password", reason=f"password mismatch for user_id={user.id}")
    return user


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"


class InvalidTokenError(ValueError):
    """Raised when a token fails signature, type, or expiry verification."""


@dataclass(frozen=True)
class SigningKeys:
    """Secrets and lifetimes used by TokenCodec."""

    access_secret: str
    refresh_secret: str
    access_ttl_seconds: int = 3600

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("both signing secrets must be non-empty")
        if self.access_secret == self.refresh_secret:
            raise ValueError("access and refresh secrets must differ")

    @classmethod
    def from_settings(cls, settings: Settings) -> SigningKeys:
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl_seconds=settings.access_token_expire_seconds,
        )

    def secret_for(self, kind: TokenKind) -> str:
        return self.access_secret if kind is TokenKind.access else self.refresh_secret


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: datetime) -> int:
    return int(value.astimezone(timezone.utc).timestamp())


class TokenCodec:
    """Create and verify signed access/refresh tokens.

    Usage:
        codec = TokenCodec(SigningKeys(access_secret=..., refresh_secret=...))
        token = codec.issue_access_token("42")
        subject = codec.verify(token, TokenKind.access)   # "42"
    """

    def __init__(self, keys: SigningKeys) -> None:
        self._keys = keys

    @property
    def access_ttl_seconds(self) -> int:
        return self._keys.access_ttl_seconds

    def issue_access_token(self, subject: str, now: datetime | None = None) -> str:
        issued_at = _timestamp(now or _utcnow())
        payload = {
            "sub": str(subject),
            "type": TokenKind.access.value,
            "iat": issued_at,
            "exp": issued_at + self._keys.access_ttl_seconds,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._keys.access_secret, algorithm=_ALGORITHM)

    def issue_refresh_token(self, subject: str, now: datetime | None = None) -> str:
        # No exp claim: the persisted record owns the validity window.
        payload = {
            "sub": str(subject),
            "type": TokenKind.refresh.value,
            "iat": _timestamp(now or _utcnow()),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._keys.refresh_secret, algorithm=_ALGORITHM)

    def decode(self, token: str, kind: TokenKind, now: datetime | None = None) -> dict:
        """Verify a token of the given kind and return its claims.

        exp is checked here rather than by jose so that the boundary is the
        same everywhere in the codebase: a token is expired once now >= exp.
        """
        try:
            claims = jwt.decode(
                token,
                self._keys.secret_for(kind),
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidTokenError(f"invalid {kind.value} token: {exc}") from exc

        if claims.get("type") != kind.value:
            raise InvalidTokenError(f"token type {claims.get('type')!r} is not {kind.value!r}")
        if not claims.get("sub"):
            raise InvalidTokenError("missing sub claim")

        if kind is TokenKind.access:
            exp = claims.get("exp")
            if not isinstance(exp, int):
                raise InvalidTokenError("missing or invalid exp claim")
            if _timestamp(now or _utcnow()) >= exp:
                raise InvalidTokenError("access token expired")
        return claims

    def verify(self, token: str, kind: TokenKind, now: datetime | None = None) -> str:
        """Return the subject of a valid token. Raises InvalidTokenError otherwise."""
        return self.decode(token, kind, now=now)["sub"]
