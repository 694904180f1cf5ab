"""
# `salesdesk/schemas/profile.py` — Profile schema

One document per principal in the `users` collection, document id = UID.
Firestore field names stay camelCase so documents written by the web client
and by this service are interchangeable:

| Field       | Type              | Notes |
|-------------|-------------------|-------|
| uid         | `str`             | == Principal.uid |
| email       | `str` / `null`    | |
| displayName | `str` / `null`    | principal name, else e-mail, at creation |
| photoURL    | `str` / `null`    | |
| role        | `admin`/`employee`| decided once at creation |
| approved    | `bool`            | admins always true |
| createdAt   | timestamp         | server-assigned, never overwritten |

Defaults are applied once in `new_profile_document`; reads validate the stored
document as-is.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from salesdesk.core.errors import ProfileInvalid
from salesdesk.schemas.principal import Principal


class Role(str, Enum):
    admin = "admin"
    employee = "employee"


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uid: str = Field(..., description="Firebase UID")
    email: Optional[str] = Field(None)
    display_name: Optional[str] = Field(None, alias="displayName")
    photo_url: Optional[str] = Field(None, alias="photoURL")
    role: Role
    approved: bool
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @classmethod
    def from_document(cls, uid: str, data: Dict[str, Any]) -> "Profile":
        """Validate a stored `users/{uid}` document."""
        try:
            return cls.model_validate({**data, "uid": uid})
        except ValidationError as exc:
            raise ProfileInvalid(f"users/{uid} does not match the profile schema: {exc}") from exc


class ProfileOut(BaseModel):
    """Profile as returned by the API (snake_case)."""
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    role: Role
    approved: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileOut":
        return cls(**profile.model_dump())


def new_profile_document(principal: Principal, is_admin: bool) -> Dict[str, Any]:
    """Document written the first time a principal is seen."""
    return {
        "uid": principal.uid,
        "email": principal.email,
        "displayName": principal.display_name or principal.email,
        "photoURL": principal.photo_url,
        "role": Role.admin.value if is_admin else Role.employee.value,
        "approved": is_admin,
        "createdAt": SERVER_TIMESTAMP,
    }
