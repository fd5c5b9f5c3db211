"""
api/routes/v1/users.py -- Account management REST endpoints.

Routes (all require a Bearer access token):
  GET    /api/v1/users        -- list accounts
  POST   /api/v1/users        -- create account
  GET    /api/v1/users/{id}   -- account detail
  PUT    /api/v1/users/{id}   -- partial update of name / email / password
  DELETE /api/v1/users/{id}   -- delete account and all of its refresh tokens

Field rules (checked here, reported as 400 with a human message):
  - name must not equal password
  - password: at least 6 chars, at least one letter and one digit
  - email must look like something@domain.tld

Password hashes never appear in a response.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, UserCreate, UserResponse, UserUpdate, email_problem, password_problem
from auth.dependencies import get_current_subject
from auth.errors import ConflictError, InvalidInputError, NotFoundError
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password

router = APIRouter(dependencies=[Depends(get_current_subject)])


def _check_rules(name: str | None, email: str | None, password: str | None) -> None:
    problem = password_problem(name, password) or email_problem(email)
    if problem:
        raise InvalidInputError(problem)


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate) -> UserResponse:
    """Create a new account. Email is stored lowercase."""
    _check_rules(body.name, body.email, body.password)
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(
            User(name=body.name, email=body.email, hashed_password=hash_password(body.password))
        )
    except IntegrityError as exc:
        raise ConflictError("Email already registered", reason=str(exc.orig)) from exc
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int) -> UserResponse:
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse.from_user(user)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(request: Request, user_id: int, body: UserUpdate) -> UserResponse:
    """Update any subset of name, email, password. A new password is re-hashed."""
    updates = body.supplied()
    if not updates:
        raise InvalidInputError("No fields provided for update!")
    _check_rules(updates.get("name"), updates.get("email"), updates.get("password"))

    if "password" in updates:
        updates["hashed_password"] = hash_password(updates.pop("password"))

    user_store: UserStore = request.app.state.user_store
    try:
        updated = user_store.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise ConflictError("Email already registered", reason=str(exc.orig)) from exc
    if not updated:
        raise NotFoundError("User not found")
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(request: Request, user_id: int) -> MessageResponse:
    """Delete an account. Its refresh tokens are removed in the same transaction."""
    if not request.app.state.user_store.delete_user(user_id):
        raise NotFoundError("User not found")
    return MessageResponse(message="User deleted successfully!")
