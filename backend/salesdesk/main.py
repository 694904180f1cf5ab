"""
# `salesdesk/main.py` — Application entry point

## Startup
- Logging is configured from `LOG_LEVEL`.
- Unless already provided (tests inject their own), the Firestore document
  store, the profile synchronizer, the session registry and the approval
  service are built and attached to `app.state`.
- APScheduler (`AsyncIOScheduler`) runs `expire_idle` on the registry every
  `SESSION_SWEEP_MINUTES`, closing sessions idle for `SESSION_IDLE_MINUTES`.

## Routers
- `/auth`: sign-in, logout, current session
- `/access`: page guard decisions and navigation
- `/admin`: approvals and admin allow-list (admin only)

## Errors
Domain errors are mapped to HTTP responses:
`AuthFatal` 401, `ProfileNotFound` 404, `ApprovalConflict` 409,
`ProfileInvalid` 500, `StoreUnavailable` 503.

## Shutdown
Scheduler stopped, every session closed (listeners detached).
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salesdesk.config import get_db, settings
from salesdesk.core.errors import (
    ApprovalConflict,
    AuthFatal,
    ProfileInvalid,
    ProfileNotFound,
    SalesDeskError,
    StoreUnavailable,
)
from salesdesk.core.identity import FirebaseIdentityClient
from salesdesk.repositories.documents import FirestoreDocumentStore
from salesdesk.routers import access, admin, auth
from salesdesk.services.approvals import ApprovalService
from salesdesk.services.profile_sync import ProfileSynchronizer
from salesdesk.services.session_registry import SessionRegistry

logger = logging.getLogger("salesdesk")

app = FastAPI(
    title="SalesDesk Access API",
    description="Session, profile and role/approval access control for the SalesDesk operations app.",
    version="1.0.0",
    redirect_slashes=False,
)

# Configure CORS (allow front-end domain or all origins as specified)
allow_origins = [origin.strip() for origin in settings.allowed_origins.split(',')] if settings.allowed_origins else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(access.router)
app.include_router(admin.admin_router)


_ERROR_STATUS = {
    AuthFatal: status.HTTP_401_UNAUTHORIZED,
    ProfileNotFound: status.HTTP_404_NOT_FOUND,
    ApprovalConflict: status.HTTP_409_CONFLICT,
    ProfileInvalid: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(SalesDeskError)
async def _domain_error(request: Request, exc: SalesDeskError):
    code = next(
        (status_code for cls, status_code in _ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc), "code": exc.code})


def build_services(target: FastAPI) -> None:
    """Wire the Firestore-backed services onto `target.state`."""
    store = FirestoreDocumentStore(get_db(), timeout=settings.store_timeout_seconds)
    synchronizer = ProfileSynchronizer(
        store, users_collection=settings.users_collection, admins_collection=settings.admins_collection
    )
    target.state.sessions = SessionRegistry(
        synchronizer,
        identity_factory=lambda: FirebaseIdentityClient(settings, timeout=settings.store_timeout_seconds),
        login_mode=settings.effective_login_mode,
        idle_seconds=settings.session_idle_minutes * 60,
    )
    target.state.approvals = ApprovalService(
        store, users_collection=settings.users_collection, admins_collection=settings.admins_collection
    )


@app.on_event("startup")
async def _startup():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if getattr(app.state, "sessions", None) is None:
        build_services(app)
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        app.state.sessions.expire_idle,
        "interval",
        minutes=settings.session_sweep_minutes,
        id="sessions-expire-idle",
        replace_existing=True,
    )
    scheduler.start()
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def _shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    sessions = getattr(app.state, "sessions", None)
    if sessions is not None:
        sessions.close_all()


# Run the app directly with uvicorn (for development)
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("salesdesk.main:app", host="0.0.0.0", port=8000, reload=True)
