# salesdesk/services/navigation.py
"""Sidebar menu per role."""
from typing import List, Optional

from salesdesk.core.constants import ROUTE_ADMIN_DASHBOARD, ROUTE_EMPLOYEE_DASHBOARD
from salesdesk.schemas.access import NavItem, NavSection
from salesdesk.schemas.profile import Profile, Role

ADMIN_PANEL = NavSection(title="Admin Panel", items=[
    NavItem(href=ROUTE_ADMIN_DASHBOARD, label="Dashboard"),
    NavItem(href="/admin/approvals", label="Approvals"),
    NavItem(href="/component/manageProjects", label="Project"),
    NavItem(href="/component/save-projects", label="Save Project"),
    NavItem(href="/component/quotation-list", label="Quotation List Page"),
    NavItem(href="/component/SupplierCustomer", label="Supplier And Customer List"),
])

EMPLOYEE_PANEL = NavSection(title="Employee Panel", items=[
    NavItem(href=ROUTE_EMPLOYEE_DASHBOARD, label="Dashboard"),
    NavItem(href="/component/manageProjects", label="Project"),
    NavItem(href="/component/project", label="New Project"),
    NavItem(href="/component/QuotationForm", label="New Quotation"),
    NavItem(href="/purchase-order", label="Project Order"),
])


def navigation_for(profile: Optional[Profile]) -> List[NavSection]:
    if profile is None:
        return []
    if profile.role == Role.admin:
        return [ADMIN_PANEL]
    # unapproved employees get bounced by the guard anyway; show nothing
    if profile.role == Role.employee and profile.approved:
        return [EMPLOYEE_PANEL]
    return []
