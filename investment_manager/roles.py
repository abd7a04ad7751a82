# investment_manager/roles.py
"""
Global role hierarchy.

    ROOT(0) > ADMIN(1) > SUPPORT(2) > INVESTOR(3) > GUEST(4)

A lower value means broader privilege. Code outside this module never compares
the raw integers; it asks ``role.is_at_least(threshold)`` instead.
"""
from __future__ import annotations

from enum import IntEnum

from investment_manager.errors import InvalidRole


class Role(IntEnum):
    ROOT = 0
    ADMIN = 1
    SUPPORT = 2
    INVESTOR = 3
    GUEST = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    def is_at_least(self, threshold: "Role") -> bool:
        """True when this role is as privileged as ``threshold`` or more."""
        return self.value <= Role(threshold).value

    @classmethod
    def parse(cls, value) -> "Role":
        """
        Accept a Role, an int 0-4, a numeric string or a role name
        ("admin", "ROOT", ...). Anything else raises InvalidRole.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool) or value is None:
            raise InvalidRole(f"Invalid role: {value!r}. Must be one of 0-4")
        if isinstance(value, str):
            raw = value.strip()
            if raw.lstrip("-").isdigit():
                value = int(raw)
            else:
                try:
                    return cls[raw.upper()]
                except KeyError:
                    raise InvalidRole(f"Invalid role: {value!r}") from None
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidRole(f"Invalid role: {value}. Must be one of 0-4") from None
        raise InvalidRole(f"Invalid role: {value!r}")


# Roles allowed to create structures and investments
MANAGER_ROLES = frozenset({Role.ROOT, Role.ADMIN})

# Roles a StructureAdmin grant may carry
GRANTABLE_ROLES = frozenset({Role.ADMIN, Role.SUPPORT})


def is_manager(role: Role) -> bool:
    return role in MANAGER_ROLES
