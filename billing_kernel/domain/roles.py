"""
Role hierarchy (``billing_kernel.domain.roles``).

Responsibility
--------------
Total order over the three console roles and the status-independent
capabilities that depend on role alone.  Foundation for every permission
check in ``billing_kernel.domain.permissions``.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.  The current role is
always passed in by the caller; nothing here reads session state.

Invariants enforced
-------------------
* Admin (3) > Manager (2) > Clerk (1) > unknown (0).
* ``role_level`` and ``at_least`` are total: unknown values rank 0 and never
  raise.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from billing_kernel.exceptions import UnknownRoleError


class Role(str, Enum):
    """Console user roles."""

    ADMIN = "Admin"
    MANAGER = "Manager"
    CLERK = "Clerk"


ROLE_LEVELS: dict[Role, int] = {
    Role.ADMIN: 3,
    Role.MANAGER: 2,
    Role.CLERK: 1,
}


def parse_role(value: Any) -> Role:
    """Parse a serialized role at the session boundary.

    Raises:
        UnknownRoleError: if ``value`` is not one of the three roles.
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise UnknownRoleError(value) from None


def role_level(role: Any) -> int:
    """Rank of ``role`` in the hierarchy; 0 for anything unrecognised."""
    try:
        return ROLE_LEVELS.get(Role(role), 0)
    except (ValueError, TypeError):
        return 0


def at_least(role: Any, required: Role) -> bool:
    """True when ``role`` ranks at or above ``required``."""
    return role_level(role) >= role_level(required)


def is_supervisor(role: Any) -> bool:
    """Manager or Admin."""
    return at_least(role, Role.MANAGER)


# ---------------------------------------------------------------------------
# Global capabilities (status-independent)
# ---------------------------------------------------------------------------


def can_create_invoice(role: Any) -> bool:
    return at_least(role, Role.CLERK)


def can_create_quote(role: Any) -> bool:
    return at_least(role, Role.CLERK)


def can_import_csv(role: Any) -> bool:
    return is_supervisor(role)


def can_access_credit_notes(role: Any) -> bool:
    return is_supervisor(role)


def can_create_credit_note(role: Any) -> bool:
    return is_supervisor(role)
