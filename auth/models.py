"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
manager do the work; these only own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """An account that can log in with email + password.

    email is stored lowercase; lookups are case-insensitive. hashed_password is
    a bcrypt hash and must never leave the process -- use public_view() when
    building responses.
    """

    name: str
    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None

    def public_view(self) -> dict:
        """Return the account fields that are safe to send to a client."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": self.created_at,
        }


@dataclass
class RefreshToken:
    """One issued refresh token.

    The record is the source of truth for the token's validity window: the
    signed token string carries no exp claim, so expiry (and early revocation)
    is controlled entirely by expires_at and by deleting the row.

    expires_at is an ISO 8601 UTC timestamp with microsecond precision. A
    record is live while now < expires_at.
    """

    user_id: int
    token: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None
