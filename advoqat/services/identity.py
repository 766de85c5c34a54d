"""Single place where the three user addressing formats are resolved.

Handlers accept a user reference as the external identity id (UUID), the
numeric database id, or the account email. Everything past the HTTP edge works
with the internal numeric id.
"""
import logging
import uuid
from typing import Optional, Union

from sqlalchemy.orm import Session

from advoqat.errors import NotFoundError, ValidationError
from advoqat.models import User

logger = logging.getLogger(__name__)

UserRef = Union[int, str]


def _looks_like_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def resolve_user(db: Session, ref: Optional[UserRef]) -> Optional[User]:
    """Return the user for ``ref`` or None when it cannot be resolved."""
    if ref is None:
        return None
    if isinstance(ref, bool):
        return None
    if isinstance(ref, int):
        return db.get(User, ref)

    value = str(ref).strip()
    if not value:
        return None
    if "@" in value:
        return db.query(User).filter(User.email == value.lower()).first()
    if value.isdigit():
        return db.get(User, int(value))
    if _looks_like_uuid(value):
        return db.query(User).filter(User.external_id == value).first()

    logger.debug(f"Unrecognised user reference format: {value!r}")
    return None


def require_user(db: Session, ref: Optional[UserRef], label: str = "User") -> User:
    if ref is None or (isinstance(ref, str) and not ref.strip()):
        raise ValidationError(f"Missing {label.lower()} reference")
    user = resolve_user(db, ref)
    if user is None:
        raise NotFoundError(f"{label} not found")
    return user
