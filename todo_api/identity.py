"""
Registration and login.

Both entry points validate their input into ``ValidationError``, talk to the
``user`` table through the caller's session, and on success hand back an
``AuthResponse`` carrying a freshly issued token.
"""
from typing import Optional
import logging

import pydantic
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from todo_api.auth import create_access_token
from todo_api.errors import ConflictError, InvalidCredentialsError, UnauthorizedError, ValidationError, errors_from_pydantic
from todo_api.models import User, utcnow
from todo_api.schemas import AuthResponse, RegisterRequest, UserInfo
from todo_api.security import dummy_verify, get_password_hash, verify_password

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.exec(select(User).where(User.email == normalize_email(email))).first()


def email_exists(db: Session, email: str) -> bool:
    return find_user_by_email(db, email) is not None


def _auth_response(user: User) -> AuthResponse:
    issued = create_access_token(user.id, user.email)
    return AuthResponse(
        token=issued.token,
        expires_at=issued.expires_at,
        user=UserInfo(id=user.id, email=user.email),
    )


def register(db: Session, email: str, password: str, confirm_password: str) -> AuthResponse:
    try:
        request = RegisterRequest(email=email, password=password, confirm_password=confirm_password)
    except pydantic.ValidationError as exc:
        raise ValidationError(errors_from_pydantic(exc)) from exc

    if email_exists(db, request.email):
        logger.warning("Registration rejected: email already registered")
        raise ConflictError()

    db_user = User(
        email=request.email,
        hashed_password=get_password_hash(request.password),
        created_at=utcnow(),
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as exc:
        # A concurrent registration won the race past the existence check;
        # the unique index on email is the final arbiter.
        db.rollback()
        logger.warning("Registration rejected by unique constraint on email")
        raise ConflictError() from exc
    db.refresh(db_user)

    logger.info("User registered: id=%s", db_user.id)
    return _auth_response(db_user)


def login(db: Session, email: str, password: str) -> AuthResponse:
    user = find_user_by_email(db, email)
    if user is None:
        # Keep the timing of an unknown email close to that of a wrong password.
        dummy_verify(password)
        logger.info("Login failed")
        raise InvalidCredentialsError()
    if not verify_password(password, user.hashed_password):
        logger.info("Login failed")
        raise InvalidCredentialsError()

    logger.info("User logged in: id=%s", user.id)
    return _auth_response(user)


def get_user(db: Session, user_id: int) -> User:
    """
    The account behind a validated token. A token can outlive its account,
    in which case the caller is treated as unauthenticated.
    """
    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedError()
    return user


def delete_user(db: Session, user_id: int) -> None:
    """Removes the account and, through the relationship cascade, all its tasks."""
    user = get_user(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("User deleted: id=%s", user_id)
