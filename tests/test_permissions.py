"""
Capability and permission map tests
"""

import pytest

from socialize.core.errors import ValidationError
from socialize.core.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    Capability,
    capabilities_for,
    validate_permissions,
)


def test_empty_permissions():
    assert validate_permissions(None) == {}
    assert validate_permissions({}) == {}


def test_known_permissions_pass_through():
    permissions = {"manage_content": True, "manage_roles": False}
    assert validate_permissions(permissions) == permissions


def test_unknown_and_non_boolean_permissions_are_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_permissions({"manage_content": "yes", "launch_rockets": True})

    assert set(exc_info.value.errors) == {"permissions.manage_content", "permissions.launch_rockets"}


def test_capabilities_are_the_union_of_granted_flags():
    granted = capabilities_for([
        {"manage_content": True, "manage_roles": False},
        {"manage_roles": True},
        None,
    ])
    assert granted == frozenset({Capability.manage_content, Capability.manage_roles})


def test_stale_permission_names_are_ignored():
    assert capabilities_for([{"retired_capability": True}]) == frozenset()


def test_default_roles():
    assert capabilities_for([DEFAULT_ROLE_PERMISSIONS["admin"]]) == frozenset(Capability)
    assert capabilities_for([DEFAULT_ROLE_PERMISSIONS["user"]]) == frozenset({Capability.manage_content})
