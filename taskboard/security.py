"""Password hashing and JWT issuance/verification.

Access and refresh tokens are signed with distinct secrets, so a token of
one class never verifies as the other.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from .config import Settings
from .errors import ExpiredToken, InvalidToken

ALGORITHM = "HS256"
BCRYPT_MAX_BYTES = 72


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')[:BCRYPT_MAX_BYTES]
    hashed_bytes = hashed_password.encode('utf-8') if isinstance(hashed_password, str) else hashed_password
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # Not a bcrypt hash at all.
        return False


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password using bcrypt directly."""
    password_bytes = password.encode('utf-8')[:BCRYPT_MAX_BYTES]  # bcrypt limit
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    expires_at: datetime


class TokenService:
    """Issues and verifies signed, time-limited access and refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def issue_access_token(self, user_id: str) -> str:
        return self._encode(user_id, self._access_secret, self.access_ttl)

    def issue_refresh_token(self, user_id: str) -> str:
        return self._encode(user_id, self._refresh_secret, self.refresh_ttl)

    def verify_access_token(self, token: str) -> TokenPayload:
        return self._decode(token, self._access_secret)

    def verify_refresh_token(self, token: str) -> TokenPayload:
        return self._decode(token, self._refresh_secret)

    @staticmethod
    def _encode(user_id: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "userId": user_id,
            "iat": now,
            "exp": now + ttl,
            # Unique per token so two tokens minted in the same second still differ.
            "jti": uuid4().hex,
        }
        return jwt.encode(claims, secret, algorithm=ALGORITHM)

    @staticmethod
    def _decode(token: Optional[str], secret: str) -> TokenPayload:
        if not token:
            raise InvalidToken()
        try:
            payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError as exc:
            raise ExpiredToken() from exc
        except JWTError as exc:
            raise InvalidToken() from exc

        user_id = payload.get("userId")
        exp = payload.get("exp")
        if not isinstance(user_id, str) or not user_id or not isinstance(exp, (int, float)):
            raise InvalidToken()
        return TokenPayload(user_id=user_id, expires_at=datetime.fromtimestamp(exp, tz=timezone.utc))
