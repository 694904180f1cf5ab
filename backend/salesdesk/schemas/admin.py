"""
salesdesk/schemas/admin.py
Admin approval and allow-list models.
"""
from typing import List

from pydantic import BaseModel, Field, field_validator
from pydantic.networks import validate_email

from salesdesk.schemas.profile import ProfileOut


class PendingApprovalsOut(BaseModel):
    total: int
    profiles: List[ProfileOut] = Field(default_factory=list)


class AllowListEntry(BaseModel):
    email: str = Field(..., description="E-mail granted the admin role on first sign-in")

    @field_validator("email")
    @classmethod
    def _valid_address(cls, value: str) -> str:
        # validated as an address but kept as typed: allow-list ids are matched exactly
        value = value.strip()
        validate_email(value)
        return value


class AllowListOut(BaseModel):
    emails: List[str] = Field(default_factory=list)
