"""Role-based permission checks."""

from family_ledger.errors import AccessDeniedError
from family_ledger.models.ledger import Role

PERMISSIONS: dict[str, tuple[Role, ...]] = {
    "view_account_dashboard": (Role.OWNER, Role.PARTNER),
    "view_all_profiles": (Role.OWNER, Role.PARTNER),
    "manage_requests": (Role.OWNER, Role.PARTNER),
    "grant_money": (Role.OWNER, Role.PARTNER),
    "edit_budget": (Role.OWNER,),
    "manage_profiles": (Role.OWNER,),
}


def has_permission(role: Role, permission: str) -> bool:
    return role in PERMISSIONS.get(permission, ())


def can_view_account_dashboard(role: Role) -> bool:
    return has_permission(role, "view_account_dashboard")


def can_edit_budget(role: Role) -> bool:
    return has_permission(role, "edit_budget")


def can_manage_requests(role: Role) -> bool:
    return has_permission(role, "manage_requests")


def can_view_profile(role: Role, profile_id: str, current_profile_id: str) -> bool:
    """Owner/Partner can view all profiles; everyone else only their own."""
    if has_permission(role, "view_all_profiles"):
        return True
    return profile_id == current_profile_id


def require(role: Role, permission: str) -> None:
    """Raise AccessDeniedError unless ``role`` holds ``permission``."""
    if not has_permission(role, permission):
        raise AccessDeniedError(
            f"{role.value} profiles cannot {permission.replace('_', ' ')}"
        )
