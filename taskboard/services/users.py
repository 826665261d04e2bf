from typing import Optional

from sqlmodel import Session, select

from ..errors import Conflict, NoFields
from ..models import User, utcnow


def update_profile(
    db: Session,
    user: User,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    """Apply a partial profile update; email stays unique across users."""
    updates = {}
    if name is not None:
        updates["name"] = name
    if email is not None:
        email = email.strip().lower()
        taken = db.exec(select(User).where(User.email == email, User.id != user.id)).first()
        if taken:
            raise Conflict("An account with this email already exists.")
        updates["email"] = email

    if not updates:
        raise NoFields()

    for field, value in updates.items():
        setattr(user, field, value)
    user.updated_at = utcnow()

    db.add(user)
    db.commit()
    db.refresh(user)
    return user
