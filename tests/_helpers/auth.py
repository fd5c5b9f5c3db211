"""Shared builders for the session-core tests: disposable keys and a seeded store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from auth.models import User
from auth.sessions import SessionManager, SessionPolicy
from auth.store import RefreshTokenStore, UserStore, create_auth_engine
from auth.tokens import SigningKeys, TokenCodec, hash_password

ACCESS_SECRET = "a" * 32 + "-access-test-secret"
REFRESH_SECRET = "r" * 32 + "-refresh-test-secret"

TEST_EMAIL = "a@x.com"
TEST_PASSWORD = "correct1"


@dataclass
class AuthState:
    user_store: UserStore
    refresh_store: RefreshTokenStore
    codec: TokenCodec
    manager: SessionManager
    user_id: int

    def close(self) -> None:
        self.user_store.close()


def make_auth_state(policy: SessionPolicy | None = None, keys: SigningKeys | None = None) -> AuthState:
    """Build a fully wired session core on a fresh named in-memory DB.

    One account is seeded: TEST_EMAIL / TEST_PASSWORD.
    """
    engine = create_auth_engine(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    user_store = UserStore(engine)
    refresh_store = RefreshTokenStore(engine)
    codec = TokenCodec(keys or SigningKeys(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET))
    manager = SessionManager(user_store, refresh_store, codec, policy)
    user_id = user_store.create_user(User(name="Alice", email=TEST_EMAIL, hashed_password=hash_password(TEST_PASSWORD)))
    return AuthState(user_store, refresh_store, codec, manager, user_id)
