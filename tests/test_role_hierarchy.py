"""
Role hierarchy: total order and the ``dominates`` comparator.
"""

import pytest

from gridfault.core.domain import Role
from gridfault.services.role_hierarchy import ROLE_ORDER, UNRANKED, dominates, rank


class TestRank:
    def test_order_is_technician_to_system_admin(self):
        assert [r.value for r in ROLE_ORDER] == [
            "technician",
            "district_engineer",
            "regional_engineer",
            "global_engineer",
            "system_admin",
        ]

    def test_string_and_enum_rank_alike(self):
        assert rank("regional_engineer") == rank(Role.REGIONAL_ENGINEER) == 2

    def test_unknown_and_absent_roles_are_unranked(self):
        assert rank("janitor") == UNRANKED
        assert rank(None) == UNRANKED
        assert rank("") == UNRANKED


class TestDominates:
    @pytest.mark.parametrize("role", list(Role))
    def test_reflexive(self, role):
        assert dominates(role, role)

    def test_higher_dominates_lower_but_not_reverse(self):
        for i, higher in enumerate(ROLE_ORDER):
            for lower in ROLE_ORDER[:i]:
                assert dominates(higher, lower)
                assert not dominates(lower, higher)

    def test_system_admin_dominates_everything(self):
        assert all(dominates(Role.SYSTEM_ADMIN, r) for r in Role)

    def test_unknown_role_dominates_nothing(self):
        assert not dominates("janitor", Role.TECHNICIAN)
        assert not dominates(None, Role.TECHNICIAN)

    def test_unknown_requirement_cannot_be_met(self):
        assert not dominates(Role.SYSTEM_ADMIN, "janitor")


def test_role_parse_is_case_insensitive_and_fail_closed():
    assert Role.parse(" District_Engineer ") is Role.DISTRICT_ENGINEER
    assert Role.parse("superuser") is None
    assert Role.parse(None) is None
