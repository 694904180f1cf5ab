"""
salesdesk/schemas/session.py
Login / session request and response models.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from salesdesk.schemas.principal import Principal
from salesdesk.schemas.profile import ProfileOut


class LoginCredential(BaseModel):
    """
    Result of the browser side of a Google sign-in.

    - popup: `id_token` is the Firebase ID token from the JS SDK;
    - redirect: `request_uri` (+ `provider_session_id`) from the callback;
    - either flow may instead report the provider's failure `error` code.
    """
    id_token: Optional[str] = Field(None, description="Firebase ID token (popup flow)")
    request_uri: Optional[str] = Field(None, description="Full callback URL (redirect flow)")
    provider_session_id: Optional[str] = Field(None, description="sessionId returned by createAuthUri")
    error: Optional[str] = Field(None, description="Provider error code reported by the client")

    @model_validator(mode="after")
    def _one_outcome(self):
        if not (self.id_token or self.request_uri or self.error):
            raise ValueError("id_token, request_uri or error is required")
        return self


class RedirectStart(BaseModel):
    auth_uri: str
    provider_session_id: str


class LoginStartOut(BaseModel):
    mode: Literal["popup", "redirect"]
    auth_uri: Optional[str] = None


class SessionOut(BaseModel):
    authenticated: bool
    loading: bool = False
    principal: Optional[Principal] = None
    profile: Optional[ProfileOut] = None
