import enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from socialize.core.errors import ValidationError

ADMIN_ROLE = "admin"
USER_ROLE = "user"
SYSTEM_ROLE_SLUGS = frozenset({ADMIN_ROLE, USER_ROLE})


class Capability(str, enum.Enum):
    manage_tenants = "manage_tenants"
    manage_users = "manage_users"
    manage_roles = "manage_roles"
    manage_social_platforms = "manage_social_platforms"
    manage_content = "manage_content"


DEFAULT_ROLE_PERMISSIONS: Dict[str, Dict[str, bool]] = {
    ADMIN_ROLE: {capability.value: True for capability in Capability},
    USER_ROLE: {
        Capability.manage_social_platforms.value: False,
        Capability.manage_content.value: True,
    },
}


def validate_permissions(permissions: Optional[Mapping[str, Any]]) -> Dict[str, bool]:
    """
    Check a role permission map against the closed capability set.

    Unknown capability names and non-boolean values are rejected so that a
    typo never silently grants or hides a permission.
    """
    if not permissions:
        return {}

    known = {capability.value for capability in Capability}
    errors = {}
    for name, value in permissions.items():
        if name not in known:
            errors[f"permissions.{name}"] = [f"Unknown permission '{name}'"]
        elif not isinstance(value, bool):
            errors[f"permissions.{name}"] = ["Permission value must be a boolean"]

    if errors:
        raise ValidationError("Validation error", errors=errors)

    return dict(permissions)


def capabilities_for(permission_maps: Iterable[Mapping[str, bool]]) -> FrozenSet[Capability]:
    """Union of capabilities granted by a user's roles."""
    granted = set()
    for permissions in permission_maps:
        for name, allowed in (permissions or {}).items():
            if allowed:
                try:
                    granted.add(Capability(name))
                except ValueError:
                    # stale key in a role stored before the capability was removed
                    continue
    return frozenset(granted)
