"""
# `salesdesk/services/approvals.py` — Admin-side approval actions

- `list_pending()`: employee profiles with `approved == false`.
- `set_approval(uid, approved, by)`: flips the flag on an employee profile.
  Admin profiles are always approved and cannot be changed here. Live
  subscribers (the employee's own guard) pick the change up from Firestore.
- Allow-list maintenance on the `admins` collection. Changing the allow-list
  never touches existing profiles; it only affects principals seen later.
"""
import logging
from typing import List

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from salesdesk.core.errors import ApprovalConflict, ProfileNotFound
from salesdesk.repositories.documents import DocumentStore
from salesdesk.schemas.profile import Profile, Role

logger = logging.getLogger("salesdesk.approvals")


class ApprovalService:
    def __init__(self, store: DocumentStore, users_collection: str = "users", admins_collection: str = "admins"):
        self._store = store
        self._users = users_collection
        self._admins = admins_collection

    async def list_pending(self) -> List[Profile]:
        rows = await self._store.query(self._users, [
            ("role", "==", Role.employee.value),
            ("approved", "==", False),
        ])
        return [Profile.from_document(uid, data) for uid, data in rows]

    async def set_approval(self, uid: str, approved: bool, by: str) -> Profile:
        data = await self._store.get(self._users, uid)
        if data is None:
            raise ProfileNotFound(f"No profile for uid={uid}")
        profile = Profile.from_document(uid, data)
        if profile.role != Role.employee:
            raise ApprovalConflict("Only employee profiles carry an approval flag")

        await self._store.upsert_merge(self._users, uid, {
            "approved": approved,
            "approvedBy": by,
            "approvedAt": SERVER_TIMESTAMP,
        })
        logger.info("uid=%s approved=%s by=%s", uid, approved, by)
        fresh = await self._store.get(self._users, uid)
        return Profile.from_document(uid, fresh if fresh is not None else {**data, "approved": approved})

    async def list_allow_list(self) -> List[str]:
        rows = await self._store.query(self._admins)
        return sorted(doc_id for doc_id, _ in rows)

    async def add_to_allow_list(self, email: str, by: str) -> None:
        await self._store.upsert_merge(self._admins, email, {"addedBy": by, "addedAt": SERVER_TIMESTAMP})

    async def remove_from_allow_list(self, email: str) -> None:
        await self._store.delete(self._admins, email)
