"""
# `salesdesk/services/profile_sync.py` — Profile synchronizer

Keeps the application's `Profile` for a principal in step with Firestore.

## ensure_profile(principal)
1. `users/{uid}` exists → returned unchanged. Nothing is re-copied from the
   principal on later sign-ins.
2. Absent → `admins/{email}` decides the role (admin ⇒ approved).
3. The new document is written with a transactional merge in which `role`,
   `approved` and `createdAt` are create-only, so two first sign-ins racing
   (two tabs) cannot regress each other's fields.
4. The document is read back so server-assigned `createdAt` is populated.

## subscribe(uid, on_change) / watch(uid)
Live updates, first delivery = current document. `Subscription.unsubscribe()`
is idempotent and final.

## refresh(uid)
One-shot re-read for callers without an active subscription.
"""
import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from salesdesk.core.constants import CREATE_ONLY_PROFILE_FIELDS
from salesdesk.core.errors import ProfileInvalid, ProfileNotFound, StoreUnavailable
from salesdesk.repositories.documents import DocumentStore
from salesdesk.schemas.principal import Principal
from salesdesk.schemas.profile import Profile, new_profile_document

logger = logging.getLogger("salesdesk.profile_sync")


class Subscription:
    """Handle for a live profile subscription."""

    def __init__(self, uid: str):
        self.uid = uid
        self.active = True
        self._cancel: Optional[Callable[[], None]] = None

    def _bind(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        if not self.active:
            # unsubscribed from inside the initial delivery
            cancel()

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._cancel is not None:
            self._cancel()


class ProfileSynchronizer:
    def __init__(self, store: DocumentStore, users_collection: str = "users", admins_collection: str = "admins"):
        self._store = store
        self._users = users_collection
        self._admins = admins_collection

    async def ensure_profile(self, principal: Principal) -> Profile:
        existing = await self._store.get(self._users, principal.uid)
        if existing is not None:
            return Profile.from_document(principal.uid, existing)

        is_admin = await self.is_allow_listed(principal.email)
        document = new_profile_document(principal, is_admin)
        await self._store.upsert_merge(
            self._users, principal.uid, document, create_only=CREATE_ONLY_PROFILE_FIELDS
        )
        logger.info("Created profile uid=%s role=%s", principal.uid, document["role"])

        fresh = await self._store.get(self._users, principal.uid)
        if fresh is None:
            raise StoreUnavailable(f"{self._users}/{principal.uid} missing right after it was written")
        return Profile.from_document(principal.uid, fresh)

    async def is_allow_listed(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return await self._store.get(self._admins, email) is not None

    async def refresh(self, uid: str) -> Profile:
        data = await self._store.get(self._users, uid)
        if data is None:
            raise ProfileNotFound(f"No profile for uid={uid}")
        return Profile.from_document(uid, data)

    def subscribe(self, uid: str, on_change: Callable[[Profile], None]) -> Subscription:
        subscription = Subscription(uid)

        def _deliver(data):
            if not subscription.active or data is None:
                return
            try:
                profile = Profile.from_document(uid, data)
            except ProfileInvalid:
                logger.exception("Ignoring malformed profile update for uid=%s", uid)
                return
            on_change(profile)

        subscription._bind(self._store.subscribe(self._users, uid, _deliver))
        return subscription

    async def watch(self, uid: str) -> AsyncIterator[Profile]:
        """Async stream of profile values; closing the iterator unsubscribes."""
        queue: "asyncio.Queue[Profile]" = asyncio.Queue()
        subscription = self.subscribe(uid, queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            subscription.unsubscribe()
