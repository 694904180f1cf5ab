# salesdesk/core/errors.py
"""
Exception taxonomy shared by the identity adapter, the document store and the
profile synchronizer. Routers translate these into HTTP responses via the
handlers registered in `salesdesk.main`.
"""
from typing import Optional


class SalesDeskError(Exception):
    """Base class for every error raised on purpose by this package."""

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.code = code


class AuthTransient(SalesDeskError):
    """Benign identity-provider outcome; the login simply does not proceed."""


class UserCancelled(AuthTransient):
    """The user dismissed the interactive sign-in prompt."""


class AlreadyInProgress(AuthTransient):
    """Another interactive sign-in is already outstanding."""


class AuthFatal(SalesDeskError):
    """Any other identity-provider failure."""


class StoreUnavailable(SalesDeskError):
    """The document store failed, timed out or returned nothing usable."""


class ProfileNotFound(SalesDeskError):
    pass


class ProfileInvalid(SalesDeskError):
    """A stored profile document does not match the profile schema."""


class ApprovalConflict(SalesDeskError):
    """The requested approval change does not apply to this profile."""
