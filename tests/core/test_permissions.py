"""
Unit tests for the role hierarchy and permission sets.
"""

import pytest

from sgms.core.enums import UserRole


class TestRoleLevels:
    def test_levels_follow_hierarchy(self):
        from sgms.core.permissions import get_role_level

        levels = [get_role_level(role) for role in UserRole]
        assert levels == [1, 2, 3, 4, 5, 6]

    def test_unknown_role_has_level_zero(self):
        from sgms.core.permissions import get_role_level

        assert get_role_level("janitor") == 0

    @pytest.mark.parametrize(
        "role,minimum,expected",
        [
            (UserRole.MANAGER, UserRole.MANAGER, True),
            (UserRole.ADMIN, UserRole.MANAGER, True),
            (UserRole.STAFF, UserRole.MANAGER, False),
            (UserRole.CUSTOMER, UserRole.CUSTOMER, True),
        ],
    )
    def test_is_role_at_least(self, role, minimum, expected):
        from sgms.core.permissions import is_role_at_least

        assert is_role_at_least(role, minimum) is expected


class TestPermissions:
    def test_customer_permissions(self):
        from sgms.core.permissions import get_role_permissions

        assert get_role_permissions(UserRole.CUSTOMER) == {
            "profile:read",
            "profile:update",
            "schedule:read",
            "booking:create",
            "booking:read",
            "booking:cancel",
        }

    def test_roles_inherit_lower_permissions(self):
        from sgms.core.permissions import get_role_permissions

        customer = get_role_permissions(UserRole.CUSTOMER)
        trainer = get_role_permissions(UserRole.TRAINER)
        staff = get_role_permissions(UserRole.STAFF)
        manager = get_role_permissions(UserRole.MANAGER)

        assert customer < trainer < staff < manager
        assert {"schedule:manage", "equipment:read"} <= trainer
        assert {"users:read", "booking:manage"} <= staff
        assert {"users:delete", "reports:export"} <= manager

    def test_staff_cannot_delete_users(self):
        from sgms.core.permissions import has_permission

        assert has_permission(UserRole.STAFF, "users:read") is True
        assert has_permission(UserRole.STAFF, "users:delete") is False

    @pytest.mark.parametrize("role", [UserRole.OWNER, UserRole.ADMIN])
    def test_wildcard_roles_pass_every_check(self, role):
        from sgms.core.permissions import has_permission, missing_permissions

        assert has_permission(role, "anything:at-all") is True
        assert missing_permissions(role, ["users:delete", "reports:view"]) == []

    def test_missing_permissions_lists_only_missing(self):
        from sgms.core.permissions import missing_permissions

        assert missing_permissions(
            UserRole.TRAINER, ["schedule:manage", "users:read", "reports:view"]
        ) == ["users:read", "reports:view"]

    def test_unknown_role_has_no_permissions(self):
        from sgms.core.permissions import has_permission

        assert has_permission("janitor", "profile:read") is False

    def test_elevated_roles(self):
        from sgms.core.permissions import is_elevated

        assert is_elevated(UserRole.OWNER) is True
        assert is_elevated(UserRole.ADMIN) is True
        assert is_elevated(UserRole.MANAGER) is False
        assert is_elevated("janitor") is False
