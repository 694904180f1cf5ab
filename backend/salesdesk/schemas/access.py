"""
salesdesk/schemas/access.py
Access requirements, guard decisions and navigation items.
"""
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from salesdesk.core.constants import REASON_APPROVED


class AccessRequirement(str, Enum):
    admin = "admin"
    employee_approved = "employeeApproved"


class GuardState(str, Enum):
    initializing = "initializing"
    deciding = "deciding"
    allowed = "allowed"
    redirecting = "redirecting"


class GuardDecision(BaseModel):
    """`Allow`, or `Redirect(path, reason)`. Value-comparable."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["allow", "redirect"]
    path: Optional[str] = None
    reason: Optional[str] = Field(None, description="Diagnostic tag, not user-facing text")

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(kind="allow")

    @classmethod
    def redirect(cls, path: str, reason: str) -> "GuardDecision":
        return cls(kind="redirect", path=path, reason=reason)

    @property
    def is_redirect(self) -> bool:
        return self.kind == "redirect"

    @property
    def grants_access(self) -> bool:
        # the approved-employee forward is a success even though it navigates
        return self.kind == "allow" or self.reason == REASON_APPROVED


class AccessOut(BaseModel):
    requirement: AccessRequirement
    state: GuardState
    decision: Optional[GuardDecision] = None


class NavItem(BaseModel):
    href: str
    label: str


class NavSection(BaseModel):
    title: str
    items: List[NavItem]
