"""
# salesdesk/routers/admin.py — Admin approvals and allow-list

All routes are mounted under `/admin` and require an admin profile
(`get_current_admin`).

| Method | Path | Purpose |
|--------|------|---------|
| GET | /admin/approvals | employees waiting for approval |
| POST | /admin/approvals/{uid} | approve an employee |
| DELETE | /admin/approvals/{uid} | withdraw approval |
| GET | /admin/allow-list | e-mails that become admins on first sign-in |
| POST | /admin/allow-list | add an e-mail |
| DELETE | /admin/allow-list/{email} | remove an e-mail (existing profiles keep their role) |
"""
from fastapi import APIRouter, Depends, status

from salesdesk.core.security import get_approvals, get_current_admin
from salesdesk.schemas.admin import AllowListEntry, AllowListOut, PendingApprovalsOut
from salesdesk.schemas.profile import Profile, ProfileOut
from salesdesk.services.approvals import ApprovalService

admin_router = APIRouter(prefix="/admin", tags=["Admin"])


@admin_router.get("/approvals", response_model=PendingApprovalsOut)
async def list_pending(
    _admin: Profile = Depends(get_current_admin),
    approvals: ApprovalService = Depends(get_approvals),
):
    pending = await approvals.list_pending()
    return PendingApprovalsOut(total=len(pending), profiles=[ProfileOut.from_profile(p) for p in pending])


@admin_router.post("/approvals/{uid}", response_model=ProfileOut)
async def approve(
    uid: str,
    admin: Profile = Depends(get_current_admin),
    approvals: ApprovalService = Depends(get_approvals),
):
    return ProfileOut.from_profile(await approvals.set_approval(uid, True, by=admin.uid))


@admin_router.delete("/approvals/{uid}", response_model=ProfileOut)
async def revoke(
    uid: str,
    admin: Profile = Depends(get_current_admin),
    approvals: ApprovalService = Depends(get_approvals),
):
    return ProfileOut.from_profile(await approvals.set_approval(uid, False, by=admin.uid))


@admin_router.get("/allow-list", response_model=AllowListOut)
async def list_allow_list(
    _admin: Profile = Depends(get_current_admin),
    approvals: ApprovalService = Depends(get_approvals),
):
    return AllowListOut(emails=await approvals.list_allow_list())


@admin_router.post("/allow-list", response_model=AllowListOut, status_code=status.HTTP_201_CREATED)
async def add_allow_list(
    entry: AllowListEntry,
    admin: Profile = Depends(get_current_admin),
    approvals: ApprovalService = Depends(get_approvals),
):
    await approvals.add_to_allow_list(entry.email, by=admin.uid)
    return AllowListOut(emails=await approvals.list_allow_list())


@admin_router.delete("/allow-list/{email}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_allow_list(
    email: str,
    _admin: Profile = Depends(get_current_admin),
    approvals: ApprovalService = Depends(get_approvals),
):
    await approvals.remove_from_allow_list(email)
