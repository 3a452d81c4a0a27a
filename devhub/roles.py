"""
Role hierarchy used for authorization checks.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    ROOT = "ROOT"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: "Role | str") -> bool:
        """Return True when this role ranks the same as or above ``other``."""
        return self.rank >= Role(other).rank

    def can_assign(self, target: "Role | str") -> bool:
        """ROOT is never assignable; USER/ADMIN may be assigned by ADMIN or ROOT."""
        target = Role(target)
        if target is Role.ROOT:
            return False
        return self.at_least(Role.ADMIN)


_RANKS = {Role.USER: 1, Role.ADMIN: 2, Role.ROOT: 3}
