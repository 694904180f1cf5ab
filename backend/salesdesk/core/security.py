"""
# `salesdesk/core/security.py` — Request-level access dependencies

FastAPI dependencies that resolve *who* is calling and *whether* the guard
lets them through. Use with `Depends(...)` on routers.

## Caller resolution (`get_access_context`)
1. **Session cookie**: the registry's `SessionContext` for the cookie; its
   live profile is used, or re-read when no subscription is active. While
   its sign-in is still loading (or failed) the profile is reported as
   missing, so checks answer "no decision yet" instead of re-reading.
2. **Bearer token**: `Authorization: Bearer <Firebase ID token>` is verified
   with the Admin SDK (revocation checked) and the profile is ensured
   (created on first sight, exactly as on interactive sign-in).
3. Neither → anonymous.

## Role checks (`require_access`)
The guard's decision table is applied with the profile's stored approval
flag. `Allow` and the approved-employee forward let the request through;
`unauthenticated` → 401; `wrong-role` and `pending-approval` → 403;
no decision yet → 503.
"""
from typing import Callable, Optional, Tuple

from fastapi import Depends, HTTPException, Request, Response, status

from salesdesk.config import settings
from salesdesk.core.auth import decode_id_token, extract_bearer_token, token_to_principal
from salesdesk.core.constants import REASON_UNAUTHENTICATED
from salesdesk.schemas.access import AccessRequirement
from salesdesk.schemas.principal import Principal
from salesdesk.schemas.profile import Profile
from salesdesk.services.access_guard import evaluate
from salesdesk.services.approvals import ApprovalService
from salesdesk.services.profile_sync import ProfileSynchronizer
from salesdesk.services.session import SessionContext
from salesdesk.services.session_registry import SessionRegistry

AccessContext = Tuple[Optional[Principal], Optional[Profile]]


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_synchronizer(request: Request) -> ProfileSynchronizer:
    return request.app.state.sessions.synchronizer


def get_approvals(request: Request) -> ApprovalService:
    return request.app.state.approvals


def get_session_id(request: Request) -> Optional[str]:
    return request.cookies.get(settings.session_cookie_name)


def get_session(request: Request) -> Optional[SessionContext]:
    """Existing session for the cookie, or None. Never creates one."""
    return get_registry(request).get(get_session_id(request))


async def get_or_create_session(request: Request, response: Response) -> SessionContext:
    """Session for the cookie; opens a new one (and sets the cookie) when needed."""
    current = get_session_id(request)
    session_id, session = await get_registry(request).get_or_create(current)
    if session_id != current:
        response.set_cookie(
            settings.session_cookie_name,
            session_id,
            httponly=True,
            samesite="lax",
            secure=settings.environment == "production",
        )
    request.state.session_id = session_id
    return session


async def get_access_context(request: Request) -> AccessContext:
    session = get_session(request)
    if session is not None and session.principal is not None:
        if session.loading or session.last_error is not None:
            # sign-in still settling (or failed): no decision yet
            return session.principal, None
        profile = session.profile
        if profile is not None and session.subscription is None:
            profile = await session.refresh_profile()
        return session.principal, profile

    token = extract_bearer_token(request)
    if token:
        principal = token_to_principal(await decode_id_token(token))
        profile = await get_synchronizer(request).ensure_profile(principal)
        return principal, profile

    return None, None


def require_access(requirement: AccessRequirement) -> Callable:
    """Dependency factory: only callers the guard admits for `requirement` pass."""

    async def _dependency(ctx: AccessContext = Depends(get_access_context)) -> Profile:
        principal, profile = ctx
        live_approved = profile.approved if profile is not None else None
        decision = evaluate(principal, profile, False, requirement, live_approved)
        if decision is None:
            raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Profile not available yet")
        if decision.reason == REASON_UNAUTHENTICATED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication credentials were not provided",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not decision.grants_access:
            raise HTTPException(status.HTTP_403_FORBIDDEN, decision.reason)
        return profile

    return _dependency


get_current_admin = require_access(AccessRequirement.admin)
get_approved_employee = require_access(AccessRequirement.employee_approved)
