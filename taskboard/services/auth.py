"""Register/login/refresh/logout against the user store and the token service.

Side effects are confined to `User.refresh_token`; the HTTP layer owns the
refresh cookie.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import AppError, Conflict, Unauthenticated
from ..models import User, utcnow
from ..security import TokenService, hash_password, verify_password

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    return hash_password("dummy-password-for-timing", rounds=rounds)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.exec(select(User).where(User.email == email.lower())).first()


def _start_session(db: Session, tokens: TokenService, user: User) -> AuthResult:
    """Issue a fresh token pair and store the refresh token, replacing any previous one."""
    access_token = tokens.issue_access_token(user.id)
    refresh_token = tokens.issue_refresh_token(user.id)
    user.refresh_token = refresh_token
    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)
    return AuthResult(user=user, access_token=access_token, refresh_token=refresh_token)


def register(
    db: Session,
    tokens: TokenService,
    name: str,
    email: str,
    password: str,
    rounds: int = 10,
) -> AuthResult:
    email = email.strip().lower()
    if get_user_by_email(db, email):
        raise Conflict("An account with this email already exists.")

    user = User(name=name, email=email, password=hash_password(password, rounds=rounds))
    result = _start_session(db, tokens, user)
    logger.info("New user registered: %s", user.email)
    return result


def login(
    db: Session,
    tokens: TokenService,
    email: str,
    password: str,
    rounds: int = 10,
) -> AuthResult:
    user = get_user_by_email(db, email.strip())
    if user is None:
        # Same bcrypt work as a real comparison so both failures look alike.
        verify_password(password, _dummy_hash(rounds))
        raise Unauthenticated("Invalid email or password.")

    if not verify_password(password, user.password):
        raise Unauthenticated("Invalid email or password.")

    result = _start_session(db, tokens, user)
    logger.info("User logged in: %s", user.email)
    return result


def refresh(db: Session, tokens: TokenService, refresh_token: Optional[str]) -> AuthResult:
    """Exchange a refresh token for a new pair, rotating the stored value.

    The stored token is read, compared and then overwritten without a
    compare-and-swap, so two concurrent calls with the same token can both
    succeed.
    """
    if not refresh_token:
        raise Unauthenticated("Refresh token not provided.")

    try:
        payload = tokens.verify_refresh_token(refresh_token)
    except AppError as exc:
        logger.warning("Refresh token rejected: %s", exc.message)
        raise Unauthenticated("Invalid or expired refresh token.") from exc

    user = db.get(User, payload.user_id)
    if user is None or user.refresh_token != refresh_token:
        if user is not None:
            logger.warning("Refresh token mismatch for user %s (rotated-out token reused?)", user.id)
        raise Unauthenticated("Invalid refresh token.")

    return _start_session(db, tokens, user)


def logout(db: Session, refresh_token: Optional[str]) -> bool:
    """Revoke the session holding `refresh_token`, if any.

    Returns True when a stored token was cleared. Never raises for store
    errors; logout always succeeds from the caller's point of view.
    """
    if not refresh_token:
        return False

    try:
        user = db.exec(select(User).where(User.refresh_token == refresh_token)).first()
        if user is None:
            return False
        user.refresh_token = None
        user.updated_at = utcnow()
        db.add(user)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error clearing refresh token")
        return False

    logger.info("User logged out: %s", user.email)
    return True
