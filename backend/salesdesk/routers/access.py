"""
# salesdesk/routers/access.py — Page guard endpoints

### GET /access/navigation
Sidebar sections for the caller's role.

### GET /access/{requirement}
Runs the page guard for `admin` or `employeeApproved` against the caller's
session and waits (up to GUARD_DECISION_TIMEOUT_SECONDS) for its first
decision. `state` is `initializing`/`deciding` when none was reached.

### GET /access/{requirement}/events
Server-sent events, one `decision` event per distinct guard decision, for as
long as the page keeps the stream open (e.g. the pending-approval screen
waiting for an admin to approve).
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from salesdesk.config import settings
from salesdesk.core.security import get_access_context, get_or_create_session, get_synchronizer
from salesdesk.schemas.access import AccessOut, AccessRequirement, NavSection
from salesdesk.services.access_guard import AccessGuard
from salesdesk.services.navigation import navigation_for
from salesdesk.services.profile_sync import ProfileSynchronizer
from salesdesk.services.session import SessionContext

logger = logging.getLogger("salesdesk.routers.access")

router = APIRouter(prefix="/access", tags=["Access"])


@router.get("/navigation", response_model=List[NavSection])
async def navigation(ctx=Depends(get_access_context)):
    _principal, profile = ctx
    return navigation_for(profile)


@router.get("/{requirement}", response_model=AccessOut)
async def check_access(
    requirement: AccessRequirement,
    session: SessionContext = Depends(get_or_create_session),
    synchronizer: ProfileSynchronizer = Depends(get_synchronizer),
):
    guard = AccessGuard(session, synchronizer, requirement).start()
    try:
        await guard.first_decision(settings.guard_decision_timeout_seconds)
        return AccessOut(requirement=requirement, state=guard.state, decision=guard.decision)
    finally:
        guard.stop()


@router.get("/{requirement}/events")
async def access_events(
    requirement: AccessRequirement,
    request: Request,
    session: SessionContext = Depends(get_or_create_session),
    synchronizer: ProfileSynchronizer = Depends(get_synchronizer),
):
    async def _stream():
        guard = AccessGuard(session, synchronizer, requirement).start()
        try:
            async for decision in guard.decisions():
                if await request.is_disconnected():
                    break
                yield f"event: decision\ndata: {decision.model_dump_json()}\n\n"
        finally:
            guard.stop()
            logger.debug("Closed %s decision stream", requirement.value)

    return StreamingResponse(
        _stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
