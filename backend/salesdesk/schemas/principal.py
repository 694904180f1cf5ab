"""
salesdesk/schemas/principal.py
Identity-provider-issued principal.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Principal(BaseModel):
    """Signed-in identity; immutable for the lifetime of a session."""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1, description="Firebase UID")
    email: Optional[str] = Field(None, description="E-mail (if the provider shares one)")
    display_name: Optional[str] = Field(None, description="Display name")
    photo_url: Optional[str] = Field(None, description="Avatar URL")
