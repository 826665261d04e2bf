from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..database import get_db
from ..dependencies import get_current_user
from ..errors import envelope
from ..models import User
from ..schemas.user import ProfileUpdate, UserPublic
from ..services import users as user_service

router = APIRouter()


def _user_out(user: User) -> dict:
    return {"user": UserPublic.model_validate(user).model_dump(by_alias=True, mode="json")}


@router.get("/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    return envelope(True, data=_user_out(current_user))


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = user_service.update_profile(db, current_user, name=payload.name, email=payload.email)
    return envelope(True, "Profile updated successfully", data=_user_out(user))
