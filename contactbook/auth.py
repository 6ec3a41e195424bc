"""Authentication and authorization related routes and helpers."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import schemas, crud
from .core import Settings, get_settings
from .database import get_db
from .mail import Mailer, get_mailer
from .models import User, hash_reset_token, utcnow

logger = logging.getLogger("contactbook")

COOKIE_NAME = "jwt"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().BCRYPT_ROUNDS,
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def set_password(user: User, password: str) -> None:
    """
    Store a new password on a user.

    For an existing user the change time is recorded one second in the
    past so a token issued right after the change stays valid while
    older tokens are rejected.

    Args:
        user (User): Target user.
        password (str): New plain password.
    """
    user.password = get_password_hash(password)
    if user.id is not None:
        user.password_changed_at = utcnow() - timedelta(seconds=1)


def create_access_token(user_id: int, settings: Settings) -> str:
    """Create a signed session token carrying only the user id."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=settings.JWT_EXPIRES_IN_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> dict[str, Any] | None:
    """Decode and validate a session token. Returns ``None`` if invalid or expired."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def send_token_response(user: User, response: Response, settings: Settings) -> dict:
    """
    Issue a session token for the user.

    The token is returned in the body and set as an HTTP-only ``jwt``
    cookie, marked secure in production.

    Args:
        user (User): Authenticated user.
        response (Response): Outgoing response to attach the cookie to.
        settings (Settings): Application settings.

    Returns:
        dict: Success envelope with the token and the user.
    """
    token = create_access_token(user.id, settings)
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        expires=datetime.now(timezone.utc)
        + timedelta(days=settings.JWT_COOKIE_EXPIRES_IN_DAYS),
        httponly=True,
        secure=settings.is_production,
    )
    return {
        "status": "success",
        "data": {"token": token, "user": serialize_user(user)},
    }


def serialize_user(user: User) -> dict:
    """Public representation of a user."""
    return schemas.UserOut.model_validate(user).model_dump(mode="json", by_alias=True)


def get_current_user(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    """Dependency that returns the user authenticated by the session token.

    The token is read from the ``Authorization: Bearer`` header, falling
    back to the ``jwt`` cookie.
    """

    def unauthorized(detail: str) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = token or request.cookies.get(COOKIE_NAME)
    if not token:
        raise unauthorized("You are not logged in! Please log in to get access.")

    payload = decode_access_token(token, settings)
    if payload is None or "id" not in payload or "iat" not in payload:
        raise unauthorized("Invalid or expired token. Please log in again.")

    user = crud.get_user_by_id(db, payload["id"])
    if user is None:
        raise unauthorized("The user belonging to this token no longer exists.")

    issued_at = datetime.fromtimestamp(payload["iat"], timezone.utc).replace(tzinfo=None)
    if user.is_password_changed_after(issued_at):
        raise unauthorized("User recently changed password! Please log in again.")

    return user


@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    """Return the currently authenticated user."""

    return {"status": "success", "data": {"user": serialize_user(current_user)}}


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    user_in: schemas.UserCreate,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Register a new user and log them in.

    A ``role`` sent by the client is ignored; new users are always
    regular users.
    """

    hashed_password = get_password_hash(user_in.password)
    user = crud.create_user(db, user_in, hashed_password)
    logger.info("User %s signed up", user.id)
    return send_token_response(user, response, settings)


@router.post("/login")
def login(
    credentials: schemas.LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Authenticate user by email and password and issue a session token."""

    if not credentials.email or not credentials.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide email and password!",
        )

    user = crud.get_user_by_email(db, credentials.email, with_password=True)
    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )
    logger.info("User %s logged in", user.id)
    return send_token_response(user, response, settings)


@router.post("/forgotPassword")
async def forgot_password(
    body: schemas.ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_mailer),
):
    """Email a password reset link to the user.

    If the email cannot be sent the pending reset is cleared again. That
    cleanup is best effort: its own failure is logged and the request
    still ends with the mail error.
    """

    user = crud.get_user_by_email(db, body.email)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="There is no user with this email.",
        )

    reset_token = user.create_password_reset_token(settings.PASSWORD_RESET_EXPIRES_MINUTES)
    crud.save_user(db, user)

    reset_url = request.url_for("reset_password", token=reset_token)
    text = (
        "Forgot your password? Submit a PATCH request with your new password "
        f"and passwordConfirm to: {reset_url}\n"
        "If you didn't forget your password, please ignore this message"
    )

    try:
        await mailer.send(
            user.email,
            f"Your password reset token (valid for {settings.PASSWORD_RESET_EXPIRES_MINUTES} min)",
            text,
        )
    except Exception:
        logger.exception("Sending password reset email to user %s failed", user.id)
        user.clear_password_reset()
        try:
            crud.save_user(db, user)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Clearing password reset token of user %s failed", user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="There was an error sending an email. Try again later!",
        )

    return {
        "status": "success",
        "message": f"Reset token sent to the following email: {user.email}",
    }


@router.patch("/resetPassword/{token}")
def reset_password(
    token: str,
    body: schemas.ResetPasswordRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Set a new password using a reset token and log the user in.

    Unknown and expired tokens are rejected with the same response.
    """

    user = crud.get_user_by_reset_token(db, hash_reset_token(token), utcnow())
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token is invalid or has expired",
        )

    set_password(user, body.password)
    user.clear_password_reset()
    crud.save_user(db, user)
    logger.info("User %s reset their password", user.id)
    return send_token_response(user, response, settings)
