# salesdesk/services/session_registry.py
"""
One `SessionContext` per browser session cookie.

The registry is created at application startup and closed at shutdown; an
APScheduler interval job calls `expire_idle` so abandoned sessions do not keep
Firestore listeners open.
"""
from __future__ import annotations

import logging
import secrets
import time
from typing import Callable, Dict, Optional, Tuple

from salesdesk.core.identity import IdentityClient
from salesdesk.services.profile_sync import ProfileSynchronizer
from salesdesk.services.session import SessionContext

logger = logging.getLogger("salesdesk.sessions")


class SessionRegistry:
    def __init__(
        self,
        synchronizer: ProfileSynchronizer,
        identity_factory: Callable[[], IdentityClient],
        login_mode: str = "popup",
        idle_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.synchronizer = synchronizer
        self._identity_factory = identity_factory
        self._login_mode = login_mode
        self._idle_seconds = idle_seconds
        self._clock = clock
        self._sessions: Dict[str, SessionContext] = {}
        self._last_seen: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self) -> Tuple[str, SessionContext]:
        session_id = secrets.token_urlsafe(32)
        context = SessionContext(self._identity_factory(), self.synchronizer, login_mode=self._login_mode)
        await context.start()
        self._sessions[session_id] = context
        self._last_seen[session_id] = self._clock()
        logger.debug("Opened session %s…", session_id[:8])
        return session_id, context

    def get(self, session_id: Optional[str]) -> Optional[SessionContext]:
        if not session_id:
            return None
        context = self._sessions.get(session_id)
        if context is not None:
            self._last_seen[session_id] = self._clock()
        return context

    async def get_or_create(self, session_id: Optional[str]) -> Tuple[str, SessionContext]:
        context = self.get(session_id)
        if context is not None:
            return session_id, context
        return await self.create()

    def close(self, session_id: str) -> None:
        context = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if context is not None:
            context.close()

    async def expire_idle(self) -> int:
        """Closes sessions unused for longer than the idle window. Returns how many."""
        cutoff = self._clock() - self._idle_seconds
        expired = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for sid in expired:
            self.close(sid)
        if expired:
            logger.info("Expired %d idle session(s)", len(expired))
        return len(expired)

    def close_all(self) -> None:
        for sid in list(self._sessions):
            self.close(sid)
