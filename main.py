#!/usr/bin/env python3
"""
Portfolio API -- operator command line.

Every /api/v1/users route requires a Bearer token, so the first account has
to be created out-of-band. This script does that, plus a one-off refresh
token sweep for deployments that run the API with a very long sweep interval.

Usage:
  python main.py create-user --name "Ada" --email ada@example.com --password s3cret1
  python main.py purge-expired

Environment variables are read through core.config (AUTH_DB_URL, DEBUG,
ACCESS_TOKEN_SECRET, REFRESH_TOKEN_SECRET, ...).
"""

import argparse
import sys

from sqlalchemy.exc import IntegrityError

from api.models import email_problem, password_problem
from auth.models import User
from auth.store import RefreshTokenStore, UserStore, create_auth_engine
from auth.tokens import hash_password
from core.config import get_settings


def _create_user(args: argparse.Namespace) -> int:
    # Same normalization as the HTTP models: trim name and email, never the password.
    args.name = args.name.strip()
    args.email = args.email.strip()
    problem = password_problem(args.name, args.password) or email_problem(args.email)
    if problem:
        print(f"  [!] {problem}")
        return 2

    engine = create_auth_engine(get_settings().auth_db_url)
    store = UserStore(engine)
    try:
        user_id = store.create_user(
            User(name=args.name, email=args.email, hashed_password=hash_password(args.password))
        )
    except IntegrityError:
        print(f"  [!] An account for '{args.email}' already exists.")
        return 1
    finally:
        store.close()
    print(f"  Created user {user_id} <{args.email.lower()}>")
    return 0


def _purge_expired(args: argparse.Namespace) -> int:
    store = RefreshTokenStore(create_auth_engine(get_settings().auth_db_url))
    try:
        removed = store.purge_expired()
    finally:
        store.close()
    print(f"  Removed {removed} expired refresh token(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Portfolio API operator commands.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.set_defaults(func=_create_user)

    purge = sub.add_parser("purge-expired", help="Delete expired refresh tokens now")
    purge.set_defaults(func=_purge_expired)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
