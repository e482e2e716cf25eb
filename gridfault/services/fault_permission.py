"""
Fault Permission Resolver: action predicates over (user, record).

Composes the role hierarchy with the scope matcher. Graduated authority:
broader roles need looser scope proof.

    can_view      view scope (technicians see their own district)
    can_resolve   active records only; >= district_engineer + scope
    can_edit      >= district_engineer + scope, any status
    can_delete    >= district_engineer + scope, any status

Menu visibility is separate from records and carries one named policy
exception: technicians get district-level menus but never analytics.

Usage:
    from gridfault.services.fault_permission import evaluate_permissions

    perms = evaluate_permissions(user, record, refs)
    # -> {"can_view": True, "can_edit": False, "can_resolve": False, "can_delete": False}
"""

from __future__ import annotations

from dataclasses import dataclass

from gridfault.core.domain import FaultRecord, FaultStatus, Role, User
from gridfault.services.role_hierarchy import dominates
from gridfault.services.scope_matcher import ReferenceIndex, scope_covers, view_scope_covers


# Minimum role for any record-management action.
RECORD_MANAGER_ROLE = Role.DISTRICT_ENGINEER

ANALYTICS_PATH_PREFIX = "/analytics"


def _is_record_manager(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    if user is None or user.role is None:
        return False
    if not dominates(user.role, RECORD_MANAGER_ROLE):
        return False
    return scope_covers(user, record, refs)


def can_view(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    if user is None or user.role is None:
        return False
    return view_scope_covers(user, record, refs)


def can_resolve(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    """Resolution is one-shot: never permitted on an already-resolved record."""
    if record.status == FaultStatus.RESOLVED:
        return False
    return _is_record_manager(user, record, refs)


def can_edit(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    return _is_record_manager(user, record, refs)


def can_delete(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    return _is_record_manager(user, record, refs)


def evaluate_permissions(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> dict:
    """Snapshot of the actions the caller may be offered for ``record``."""
    return {
        "can_view": can_view(user, record, refs),
        "can_edit": can_edit(user, record, refs),
        "can_resolve": can_resolve(user, record, refs),
        "can_delete": can_delete(user, record, refs),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Menu visibility
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TechnicianAnalyticsException:
    """Technicians see district-level menus except under the analytics subtree.

    Kept out of ``dominates`` so the hierarchy stays a clean total order.
    """

    granted_role: Role = Role.DISTRICT_ENGINEER
    restricted_prefix: str = ANALYTICS_PATH_PREFIX

    def allows(self, required_role: Role | None, current_path: str | None) -> bool:
        if required_role != self.granted_role:
            return False
        return not _path_under(current_path or "", self.restricted_prefix)


TECHNICIAN_ANALYTICS_EXCEPTION = TechnicianAnalyticsException()


def _path_under(path: str, prefix: str) -> bool:
    return path.startswith(prefix)


def can_access_menu(
    user: User | None,
    required_role: Role | str | None,
    current_path: str | None = "",
    *,
    technician_policy: TechnicianAnalyticsException = TECHNICIAN_ANALYTICS_EXCEPTION,
) -> bool:
    """Visibility of a non-record menu entry that requires ``required_role``."""
    if user is None or user.role is None:
        return False
    if user.role == Role.SYSTEM_ADMIN:
        return True
    required = Role.parse(required_role)
    if user.role == Role.TECHNICIAN:
        return technician_policy.allows(required, current_path)
    return dominates(user.role, required)


@dataclass(frozen=True)
class MenuItem:
    key: str
    label: str
    path: str
    required_role: Role

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "path": self.path,
            "required_role": self.required_role.value,
        }


MENU_ITEMS: list[MenuItem] = [
    MenuItem("analytics", "Analytics", "/analytics", Role.DISTRICT_ENGINEER),
    MenuItem("asset_management", "Asset Management", "/asset-management", Role.DISTRICT_ENGINEER),
    MenuItem("district_population", "District Population", "/district-population", Role.GLOBAL_ENGINEER),
    MenuItem("user_management", "User Management", "/user-management", Role.SYSTEM_ADMIN),
    MenuItem("permission_management", "Permission Management", "/system-admin/permissions", Role.SYSTEM_ADMIN),
]


def visible_menu_items(
    user: User | None,
    current_path: str | None = "",
    *,
    technician_policy: TechnicianAnalyticsException = TECHNICIAN_ANALYTICS_EXCEPTION,
) -> list[MenuItem]:
    """Menu entries ``user`` should see while on ``current_path``."""
    return [
        item for item in MENU_ITEMS
        if can_access_menu(user, item.required_role, current_path, technician_policy=technician_policy)
    ]
