"""
# `salesdesk/services/session.py` — Session context

Explicitly owned state for one browser session: the signed-in principal, its
profile, and the loading flag. Created by the session registry, torn down on
logout, idle expiry or shutdown. Pages (guards, routers) receive it by
reference.

Ordering on sign-in: the previous profile subscription is cancelled, then
`ensure_profile` completes, then the live subscription opens. A generation
counter drops the outcome of a transition that was superseded while it was
waiting on the store.
"""
import logging
from typing import Callable, List, Optional

from salesdesk.core.errors import AuthTransient
from salesdesk.core.identity import IdentityClient
from salesdesk.schemas.principal import Principal
from salesdesk.schemas.profile import Profile
from salesdesk.schemas.session import LoginCredential
from salesdesk.services.profile_sync import ProfileSynchronizer, Subscription

logger = logging.getLogger("salesdesk.session")

SessionListener = Callable[["SessionContext"], None]


class SessionContext:
    def __init__(self, identity: IdentityClient, synchronizer: ProfileSynchronizer, login_mode: str = "popup"):
        self.identity = identity
        self.synchronizer = synchronizer
        self.login_mode = login_mode

        self.principal: Optional[Principal] = None
        self.profile: Optional[Profile] = None
        self.loading = True
        self.last_error: Optional[Exception] = None
        # createAuthUri session id awaiting the redirect callback
        self.redirect_state: Optional[str] = None

        self._subscription: Optional[Subscription] = None
        self._listeners: List[SessionListener] = []
        self._generation = 0
        self._login_in_flight = False
        self._unsubscribe_identity: Optional[Callable[[], None]] = None
        self.closed = False

    # ---- lifecycle ----

    async def start(self) -> None:
        self._unsubscribe_identity = self.identity.on_session_change(self._apply_principal)
        await self._apply_principal(self.identity.current_principal())

    def close(self) -> None:
        """Local teardown; does not sign the user out upstream."""
        if self.closed:
            return
        self.closed = True
        self._generation += 1
        self._close_subscription()
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        self._listeners.clear()

    # ---- listeners ----

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ---- principal / profile ----

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _apply_principal(self, principal: Optional[Principal]) -> None:
        self._generation += 1
        generation = self._generation
        self._close_subscription()

        self.principal = principal
        self.profile = None
        self.last_error = None
        if principal is None:
            self.loading = False
            self._notify()
            return

        self.loading = True
        self._notify()
        try:
            profile = await self.synchronizer.ensure_profile(principal)
        except Exception as exc:
            if generation == self._generation:
                self.last_error = exc
                self.loading = False
                self._notify()
            raise
        if generation != self._generation:
            logger.debug("Discarding stale profile for uid=%s", principal.uid)
            return

        self.profile = profile
        self.loading = False
        self._subscription = self.synchronizer.subscribe(principal.uid, self._on_profile)
        self._notify()

    def _on_profile(self, profile: Profile) -> None:
        if self.principal is None or profile.uid != self.principal.uid:
            return
        self.profile = profile
        self._notify()

    # ---- operations ----

    async def login_with_google(self, credential: LoginCredential) -> Optional[Principal]:
        """
        Runs the interactive sign-in. Returns the principal, or None when the
        call was dropped (another login outstanding) or the provider reported
        a benign outcome. Other failures propagate.
        """
        if self._login_in_flight:
            logger.info("Login already in progress; dropping duplicate request")
            return None
        self._login_in_flight = True
        try:
            return await self.identity.begin_interactive_login(credential)
        except AuthTransient as exc:
            logger.info("Login did not proceed: %s", exc.code or exc)
            return None
        finally:
            self._login_in_flight = False

    async def refresh_profile(self) -> Optional[Profile]:
        if self.principal is None:
            return None
        generation = self._generation
        profile = await self.synchronizer.refresh(self.principal.uid)
        if generation == self._generation:
            self.profile = profile
            self._notify()
        return profile

    async def logout(self) -> None:
        # no update may reach a signed-out session
        self._close_subscription()
        try:
            await self.identity.end_session()
        finally:
            if self.principal is not None:
                await self._apply_principal(None)
