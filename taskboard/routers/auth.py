from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlmodel import Session

from ..config import Settings
from ..database import get_db
from ..dependencies import auth_rate_limit, get_settings, get_tokens
from ..errors import envelope
from ..schemas.user import LoginRequest, RefreshRequest, RegisterRequest, UserPublic
from ..security import TokenService
from ..services import auth as auth_service

router = APIRouter()

REFRESH_COOKIE = "refreshToken"


def _set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path="/",
    )


def _clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=REFRESH_COOKIE,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def _session_payload(result: auth_service.AuthResult) -> dict:
    # The refresh token only ever travels in the cookie.
    return {
        "user": UserPublic.model_validate(result.user).model_dump(by_alias=True, mode="json"),
        "accessToken": result.access_token,
    }


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_rate_limit)])
def register(
    payload: RegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    """Create a new user account and start a session."""
    result = auth_service.register(
        db, tokens, payload.name, payload.email, payload.password, rounds=settings.bcrypt_rounds
    )
    _set_refresh_cookie(response, result.refresh_token, settings)
    return envelope(True, "Registration successful", data=_session_payload(result))


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    """Authenticate with email and password."""
    result = auth_service.login(db, tokens, payload.email, payload.password, rounds=settings.bcrypt_rounds)
    _set_refresh_cookie(response, result.refresh_token, settings)
    return envelope(True, "Login successful", data=_session_payload(result))


@router.post("/refresh")
def refresh(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = None,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    """Rotate the refresh token and hand out a new access token."""
    token = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    result = auth_service.refresh(db, tokens, token)
    _set_refresh_cookie(response, result.refresh_token, settings)
    return envelope(True, data={"accessToken": result.access_token})


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Revoke the current refresh token (if any) and clear the cookie."""
    auth_service.logout(db, request.cookies.get(REFRESH_COOKIE))
    _clear_refresh_cookie(response, settings)
    return envelope(True, "Logged out successfully")
