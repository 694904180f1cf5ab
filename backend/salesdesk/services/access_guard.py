"""
# `salesdesk/services/access_guard.py` — Page access guard

`evaluate` is the decision table, first match wins:

| Condition                                              | Decision |
|--------------------------------------------------------|----------|
| loading                                                | none (initializing) |
| no principal                                           | redirect `/login` (unauthenticated) |
| no profile / profile of another uid                    | none (deciding) |
| admin required, role != admin                          | redirect `/` (wrong-role) |
| admin required, role == admin                          | allow |
| employeeApproved required, role != employee            | redirect `/` (wrong-role) |
| employee, live approval flag not delivered yet         | none (deciding) |
| employee, not approved                                 | redirect `/login?status=pending` (pending-approval) |
| employee, approved                                     | redirect `/employee/dashboard` (approved) |

`AccessGuard` re-runs the table whenever the session or the approval flag
changes. For `employeeApproved` it holds its own live subscription on the
profile document; the approval flag only ever comes from that subscription.
"""
import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from salesdesk.core.constants import (
    REASON_APPROVED,
    REASON_PENDING_APPROVAL,
    REASON_UNAUTHENTICATED,
    REASON_WRONG_ROLE,
    ROUTE_EMPLOYEE_DASHBOARD,
    ROUTE_HOME,
    ROUTE_LOGIN,
    ROUTE_LOGIN_PENDING,
)
from salesdesk.schemas.access import AccessRequirement, GuardDecision, GuardState
from salesdesk.schemas.principal import Principal
from salesdesk.schemas.profile import Profile, Role
from salesdesk.services.profile_sync import ProfileSynchronizer, Subscription
from salesdesk.services.session import SessionContext

logger = logging.getLogger("salesdesk.guard")


def evaluate(
    principal: Optional[Principal],
    profile: Optional[Profile],
    loading: bool,
    requirement: AccessRequirement,
    live_approved: Optional[bool] = None,
) -> Optional[GuardDecision]:
    """Returns the decision, or None while no decision can be made yet."""
    if loading:
        return None
    if principal is None:
        return GuardDecision.redirect(ROUTE_LOGIN, REASON_UNAUTHENTICATED)
    if profile is None or profile.uid != principal.uid:
        return None

    if requirement is AccessRequirement.admin:
        if profile.role != Role.admin:
            return GuardDecision.redirect(ROUTE_HOME, REASON_WRONG_ROLE)
        return GuardDecision.allow()

    if profile.role != Role.employee:
        return GuardDecision.redirect(ROUTE_HOME, REASON_WRONG_ROLE)
    if live_approved is None:
        return None
    if not live_approved:
        return GuardDecision.redirect(ROUTE_LOGIN_PENDING, REASON_PENDING_APPROVAL)
    return GuardDecision.redirect(ROUTE_EMPLOYEE_DASHBOARD, REASON_APPROVED)


def state_for(decision: Optional[GuardDecision], loading: bool) -> GuardState:
    if decision is None:
        return GuardState.initializing if loading else GuardState.deciding
    return GuardState.redirecting if decision.is_redirect else GuardState.allowed


class AccessGuard:
    """
    Level-triggered guard for one page and one session.

    A decision is issued (queued on `decisions()` and, for redirects, passed
    to `navigate`) only when it differs from the last one issued. Dropping
    back to "no decision yet" does not reset that: a re-login that ends on
    the same decision as before emits nothing new.
    """

    def __init__(
        self,
        session: SessionContext,
        synchronizer: ProfileSynchronizer,
        requirement: AccessRequirement,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.requirement = requirement
        self._synchronizer = synchronizer
        self._navigate = navigate

        self.state = GuardState.initializing
        self.decision: Optional[GuardDecision] = None
        self._last_issued: Optional[GuardDecision] = None

        self._approval_sub: Optional[Subscription] = None
        self._approval_uid: Optional[str] = None
        self._live_approved: Optional[bool] = None

        self._remove_listener: Optional[Callable[[], None]] = None
        self._queue: "asyncio.Queue[GuardDecision]" = asyncio.Queue()
        self.running = False

    def start(self) -> "AccessGuard":
        self.running = True
        self._remove_listener = self.session.add_listener(lambda _session: self.reevaluate())
        self.reevaluate()
        return self

    def stop(self) -> None:
        self.running = False
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self._close_approval_subscription()

    # ---- approval subscription ----

    def _close_approval_subscription(self) -> None:
        if self._approval_sub is not None:
            self._approval_sub.unsubscribe()
        self._approval_sub = None
        self._approval_uid = None
        self._live_approved = None

    def _sync_approval_subscription(self) -> None:
        principal, profile = self.session.principal, self.session.profile
        wanted_uid = None
        if (
            self.requirement is AccessRequirement.employee_approved
            and principal is not None
            and profile is not None
            and profile.uid == principal.uid
            and profile.role == Role.employee
        ):
            wanted_uid = principal.uid

        if wanted_uid == self._approval_uid:
            return
        self._close_approval_subscription()
        if wanted_uid is None:
            return
        # set before subscribing: the first delivery may re-enter reevaluate()
        self._approval_uid = wanted_uid
        try:
            self._approval_sub = self._synchronizer.subscribe(wanted_uid, self._on_approval)
        except Exception:
            logger.exception("Approval subscription failed for uid=%s; staying undecided", wanted_uid)
            self._approval_uid = None

    def _on_approval(self, profile: Profile) -> None:
        if profile.uid != self._approval_uid:
            return
        self._live_approved = profile.approved
        self.reevaluate()

    # ---- decision ----

    def reevaluate(self) -> Optional[GuardDecision]:
        if not self.running:
            return self.decision
        self._sync_approval_subscription()
        session = self.session
        decision = evaluate(
            session.principal, session.profile, session.loading, self.requirement, self._live_approved
        )
        self.decision = decision
        self.state = state_for(decision, session.loading)
        if decision is not None and decision != self._last_issued:
            self._last_issued = decision
            self._queue.put_nowait(decision)
            if decision.is_redirect:
                logger.info("Guard %s -> %s (%s)", self.requirement.value, decision.path, decision.reason)
                if self._navigate is not None:
                    self._navigate(decision.path)
        return decision

    async def decisions(self) -> AsyncIterator[GuardDecision]:
        """Distinct decisions, in the order they were reached."""
        while True:
            yield await self._queue.get()

    async def first_decision(self, timeout: float) -> Optional[GuardDecision]:
        """Waits up to `timeout` seconds for a decision; None if still undecided."""
        if self.decision is not None:
            return self.decision
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
