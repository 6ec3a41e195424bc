"""CRUD operations for users.

This module contains database interaction logic for user entities,
isolated from FastAPI route handlers. Contacts go through the generic
handlers in :mod:`contactbook.factory`.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, undefer
from fastapi import HTTPException, status

from . import models, schemas


def create_user(
    db: Session, user_in: schemas.UserCreate, hashed_password: str
) -> models.User:
    """
    Create and persist a new user.

    The role is never taken from the payload: new users always get
    :attr:`Role.USER`.

    Args:
        db (Session): SQLAlchemy database session.
        user_in (UserCreate): Incoming user data.
        hashed_password (str): Securely hashed password.

    Raises:
        HTTPException: If a user with the same email already exists.

    Returns:
        User: Newly created user instance.
    """
    if get_user_by_email(db, user_in.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        )

    user = models.User(
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        email=user_in.email.lower(),
        password=hashed_password,
        role=models.Role.USER,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent signup for the same address
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        ) from None
    db.refresh(user)
    return user


def get_user_by_email(
    db: Session, email: str, with_password: bool = False
) -> models.User | None:
    """
    Retrieve a user by email address.

    Args:
        db (Session): Database session.
        email (str): User email, matched case-insensitively.
        with_password (bool): Also load the deferred password hash.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    stmt = select(models.User).where(models.User.email == email.strip().lower())
    if with_password:
        stmt = stmt.options(undefer(models.User.password))
    return db.execute(stmt).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: int) -> models.User | None:
    """
    Retrieve a user by primary key.

    Args:
        db (Session): Database session.
        user_id (int): User identifier.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(models.User.id == user_id)
    ).scalar_one_or_none()


def get_user_by_reset_token(
    db: Session, hashed_token: str, now: datetime
) -> models.User | None:
    """
    Retrieve the user holding an unexpired password reset token.

    A wrong token and an expired one both yield ``None``.

    Args:
        db (Session): Database session.
        hashed_token (str): SHA-256 hex digest of the raw token.
        now (datetime): Reference time for the expiry check.

    Returns:
        User | None: Matching user, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(
            models.User.password_reset_token == hashed_token,
            models.User.password_reset_expires > now,
        )
    ).scalar_one_or_none()


def save_user(db: Session, user: models.User) -> models.User:
    """
    Persist changes made to a user.

    Args:
        db (Session): Database session.
        user (User): Modified user.

    Returns:
        User: Refreshed user instance.
    """
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
