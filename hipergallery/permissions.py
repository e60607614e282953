import enum
from dataclasses import dataclass
from typing import Optional

from .errors import PermissionDenied
from .records import ArtworkRecord


class Role(str, enum.Enum):
    ADMIN = "admin"
    ARTIST = "artist"
    VIEWER = "viewer"


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str
    name: str = ""
    role: Role = Role.VIEWER

    def as_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role.value}


@dataclass(frozen=True)
class Permissions:
    can_upload: bool = False
    can_edit: bool = False
    can_delete: bool = False


NONE = Permissions()
ALL = Permissions(True, True, True)


def resolve_role(email: Optional[str], stored_role: Optional[str], admin_email: str) -> Role:
    """Decide a user's role once, when their session is resolved."""
    if email and admin_email and email.strip().lower() == admin_email.strip().lower():
        return Role.ADMIN
    try:
        return Role((stored_role or "").strip().lower())
    except ValueError:
        return Role.ARTIST


def permissions_for(user: Optional[SessionUser], artwork: Optional[ArtworkRecord] = None) -> Permissions:
    if user is None or user.role is Role.VIEWER:
        return NONE
    if user.role is Role.ADMIN:
        return ALL
    owns = artwork is not None and artwork.user_id is not None and artwork.user_id == user.id
    return Permissions(can_upload=True, can_edit=owns, can_delete=owns)


def require(user: Optional[SessionUser], action: str, artwork: Optional[ArtworkRecord] = None) -> None:
    allowed = getattr(permissions_for(user, artwork), f"can_{action}")
    if not allowed:
        who = user.role.value if user else "anonymous"
        raise PermissionDenied(f"{who} may not {action} this artwork")
