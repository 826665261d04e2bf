import uuid

from fastapi import Depends, Request
from sqlmodel import Session

from .config import Settings
from .database import get_db
from .errors import Unauthenticated, ValidationError
from .models import User
from .rate_limit import SlidingWindowLimiter
from .security import TokenService

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def _get_token_from_request(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise Unauthenticated("Access denied. No token provided.", headers=_BEARER_CHALLENGE)
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Access denied. Invalid token format.", headers=_BEARER_CHALLENGE)
    return token


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> User:
    """Resolve the user behind the bearer access token."""
    token = _get_token_from_request(request)
    payload = tokens.verify_access_token(token)

    user = db.get(User, payload.user_id)
    if user is None:
        raise Unauthenticated("Access denied. User not found.")
    return user


def auth_rate_limit(request: Request) -> None:
    """Count one auth attempt against the caller's IP."""
    limiter: SlidingWindowLimiter = request.app.state.auth_limiter
    client_ip = request.client.host if request.client else "unknown"
    limiter.hit(client_ip)


def valid_task_id(id: str) -> str:
    """Path parameter check: task ids are UUIDs, returned in canonical form."""
    try:
        return str(uuid.UUID(id))
    except ValueError:
        raise ValidationError([{"field": "id", "message": "Invalid task ID"}])
