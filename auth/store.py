"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore and RefreshTokenStore are the
repositories; _row_to_user / _row_to_refresh_token are the mappers. Route,
dependency, and session code never touches SQL directly.

Both repositories share one Engine (create_auth_engine) so that deleting an
account and deleting its refresh tokens happen in a single transaction.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps:
  Stored as ISO 8601 UTC strings with fixed microsecond precision
  (to_iso()). Fixed width means lexicographic order equals chronological
  order, so expires_at comparisons can run in SQL.

Passive expiry:
  find_by_token() filters on expires_at > now, so an expired record is
  unreachable the instant it expires. purge_expired() physically removes
  those rows and is called periodically by the background sweep in
  api/main.py.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import RefreshToken, User

logger = logging.getLogger("portfolio.store")

_DEFAULT_DB_URL = "sqlite:///portfolio_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # always lowercase
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token", Text, nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

Index("ix_refresh_tokens_expires_at", _refresh_tokens.c.expires_at)
Index("ix_refresh_tokens_user_id", _refresh_tokens.c.user_id)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_auth_engine(db_url: str = _DEFAULT_DB_URL) -> Engine:
    """Create the Engine shared by UserStore and RefreshTokenStore and ensure the schema."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(value: datetime) -> str:
    """Normalize a datetime to a fixed-width UTC ISO 8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User accounts.

    Usage:
        engine = create_auth_engine("sqlite:///:memory:")
        store = UserStore(engine)
        store.create_user(User(name="Ada", email="ada@x.com", hashed_password=hash_password("secret1")))
        user = store.get_by_email("ADA@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> int:
        """Insert a new account and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email.lower(),
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up an account by email, ignoring case. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all accounts ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update name, email, and/or hashed_password on an existing account.

        Returns True if a row was updated, False if user_id was not found.
        Raises sqlalchemy.exc.IntegrityError if the new email is taken.
        """
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete an account and every refresh token it owns.

        Both deletes run in one transaction. The explicit token delete does not
        rely on the FK cascade, which SQLite only honours with foreign_keys=ON.
        Returns True if the account existed.
        """
        with self.engine.begin() as conn:
            tokens = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        if result.rowcount:
            logger.info("Deleted user_id=%s and %d refresh token(s)", user_id, tokens.rowcount)
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


class RefreshTokenStore:
    """Repository for persisted refresh tokens.

    Every method is a single statement, so each read/write/delete is atomic
    per record: a delete racing a lookup for the same token leaves the caller
    either with the record (and it is gone afterwards) or with None.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, record: RefreshToken) -> int:
        """Insert a new refresh token record and return its id."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    user_id=record.user_id,
                    token=record.token,
                    expires_at=record.expires_at,
                    created_at=record.created_at or _now_iso(),
                )
            )
            conn.commit()
            record_id = result.inserted_primary_key[0]
        record.id = record_id
        return record_id

    def find_by_token(self, token: str, now: datetime | None = None) -> RefreshToken | None:
        """Return the live record for token, or None if unknown or expired.

        A record is expired once now >= expires_at.
        """
        now_iso = to_iso(now) if now is not None else _now_iso()
        with self.engine.connect() as conn:
            row = conn.execute(
                _refresh_tokens.select().where(
                    (_refresh_tokens.c.token == token) & (_refresh_tokens.c.expires_at > now_iso)
                )
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete(self, record: RefreshToken) -> bool:
        """Delete one record by token string. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == record.token))
            conn.commit()
        return result.rowcount > 0

    def delete_for_user(self, user_id: int) -> int:
        """Delete every refresh token owned by user_id. Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count(self) -> int:
        """Return the number of stored rows, including expired rows not yet purged."""
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_refresh_tokens)).scalar() or 0

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete every record with expires_at <= now. Returns rows removed."""
        now_iso = to_iso(now) if now is not None else _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= now_iso))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
