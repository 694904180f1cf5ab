"""
# salesdesk/routers/auth.py — Sign-in / session endpoints

### GET /auth/login
Login mode for this deployment (`popup` or `redirect`). In redirect mode the
Google sign-in URL is returned as `auth_uri` and the provider session id is
kept on the server-side session for the callback.

### POST /auth/google
Completes a popup sign-in: body carries the Firebase ID token from the JS SDK,
or the SDK's error code when the popup failed. Benign outcomes (popup closed,
duplicate request) and concurrent calls return the unchanged session.

### GET /auth/google/callback
Completes a redirect sign-in and sends the browser to the page its role
leads to.

### POST /auth/logout
Revokes refresh tokens, tears down the profile subscription, drops the
session cookie.

### GET /auth/me, POST /auth/me/refresh
Current principal/profile; refresh re-reads the profile from Firestore.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse

from salesdesk.config import settings
from salesdesk.core.constants import ROUTE_ADMIN_DASHBOARD, ROUTE_LOGIN
from salesdesk.core.security import get_or_create_session, get_registry, get_session, get_session_id
from salesdesk.schemas.access import AccessRequirement
from salesdesk.schemas.profile import ProfileOut, Role
from salesdesk.schemas.session import LoginCredential, LoginStartOut, SessionOut
from salesdesk.services.access_guard import evaluate
from salesdesk.services.session import SessionContext

router = APIRouter(prefix="/auth", tags=["Auth"])


def _session_out(session: SessionContext) -> SessionOut:
    return SessionOut(
        authenticated=session.principal is not None,
        loading=session.loading,
        principal=session.principal,
        profile=ProfileOut.from_profile(session.profile) if session.profile else None,
    )


def _landing_path(session: SessionContext) -> str:
    profile = session.profile
    if profile is None:
        return ROUTE_LOGIN
    if profile.role == Role.admin:
        return ROUTE_ADMIN_DASHBOARD
    decision = evaluate(
        session.principal, profile, False, AccessRequirement.employee_approved, profile.approved
    )
    return decision.path if decision is not None else ROUTE_LOGIN


@router.get("/login", response_model=LoginStartOut, summary="Login mode (and redirect URL)")
async def start_login(session: SessionContext = Depends(get_or_create_session)):
    mode = session.login_mode
    if mode != "redirect":
        return LoginStartOut(mode="popup")
    create_auth_uri = getattr(session.identity, "create_auth_uri", None)
    if create_auth_uri is None:
        raise HTTPException(status.HTTP_501_NOT_IMPLEMENTED, "Identity provider has no redirect flow")
    start = await create_auth_uri(settings.redirect_callback_url)
    session.redirect_state = start.provider_session_id
    return LoginStartOut(mode="redirect", auth_uri=start.auth_uri)


@router.post("/google", response_model=SessionOut, summary="Complete popup sign-in")
async def login_with_google(
    credential: LoginCredential,
    session: SessionContext = Depends(get_or_create_session),
):
    await session.login_with_google(credential)
    return _session_out(session)


@router.get("/google/callback", summary="Complete redirect sign-in")
async def google_callback(
    request: Request,
    response: Response,
    session: SessionContext = Depends(get_or_create_session),
):
    error = request.query_params.get("error")
    credential = LoginCredential(
        request_uri=str(request.url),
        provider_session_id=session.redirect_state,
        error=error,
    )
    session.redirect_state = None
    principal = await session.login_with_google(credential)
    target = _landing_path(session) if principal is not None else ROUTE_LOGIN
    redirect = RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)
    for key, value in response.headers.items():
        if key.lower() == "set-cookie":
            redirect.headers.append(key, value)
    return redirect


@router.post("/logout", summary="Sign out and close the session")
async def logout(request: Request, response: Response):
    session = get_session(request)
    if session is not None:
        try:
            await session.logout()
        finally:
            get_registry(request).close(get_session_id(request))
    response.delete_cookie(settings.session_cookie_name)
    return {"detail": "Logged out"}


@router.get("/me", response_model=SessionOut)
async def me(request: Request):
    session = get_session(request)
    if session is None:
        return SessionOut(authenticated=False)
    return _session_out(session)


@router.post("/me/refresh", response_model=SessionOut, summary="Re-read the profile from Firestore")
async def refresh_me(request: Request):
    session = get_session(request)
    if session is None or session.principal is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Not signed in")
    await session.refresh_profile()
    return _session_out(session)
