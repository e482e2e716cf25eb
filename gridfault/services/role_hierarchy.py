"""
Role hierarchy: single total order over platform roles.

    technician < district_engineer < regional_engineer < global_engineer < system_admin

Absent or unknown roles rank below technician, so they dominate nothing.
"""

from __future__ import annotations

from gridfault.core.domain import Role

ROLE_ORDER: list[Role] = [
    Role.TECHNICIAN,
    Role.DISTRICT_ENGINEER,
    Role.REGIONAL_ENGINEER,
    Role.GLOBAL_ENGINEER,
    Role.SYSTEM_ADMIN,
]

_RANK: dict[Role, int] = {role: idx for idx, role in enumerate(ROLE_ORDER)}

UNRANKED = -1


def rank(role: Role | str | None) -> int:
    """Return the numeric rank of ``role``; UNRANKED for absent/unknown values."""
    parsed = Role.parse(role)
    if parsed is None:
        return UNRANKED
    return _RANK[parsed]


def dominates(a: Role | str | None, b: Role | str | None) -> bool:
    """True iff ``a`` is at least as senior as ``b``.

    An unknown ``b`` cannot be satisfied by anyone.
    """
    rank_b = rank(b)
    if rank_b == UNRANKED:
        return False
    return rank(a) >= rank_b
