# salesdesk/core/constants.py
"""Route identifiers, redirect reasons and identity-provider error codes."""

# Page routes handed to the frontend as opaque navigation targets
ROUTE_LOGIN = "/login"
ROUTE_LOGIN_PENDING = "/login?status=pending"
ROUTE_HOME = "/"
ROUTE_EMPLOYEE_DASHBOARD = "/employee/dashboard"
ROUTE_ADMIN_DASHBOARD = "/admin/dashboard"

REASON_UNAUTHENTICATED = "unauthenticated"
REASON_WRONG_ROLE = "wrong-role"
REASON_PENDING_APPROVAL = "pending-approval"
REASON_APPROVED = "approved"

# Profile document fields written only when the document is first created
CREATE_ONLY_PROFILE_FIELDS = frozenset({"createdAt", "role", "approved"})

GOOGLE_PROVIDER_ID = "google.com"
IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

# Failure codes the login flow treats as "the user simply did not log in"
USER_CANCELLED_CODES = frozenset({
    "auth/popup-closed-by-user",
    "auth/user-cancelled",
    "access_denied",
    "USER_CANCELLED",
})
ALREADY_IN_PROGRESS_CODES = frozenset({
    "auth/cancelled-popup-request",
})
