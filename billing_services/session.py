"""
Session context (``billing_services.session``).

Responsibility:
    Carries the authenticated role and bearer token explicitly from the
    session boundary into services.  Nothing in this project reads role or
    token from ambient global storage.

Invariants enforced:
    - The role is fixed for the lifetime of a SessionContext.
    - ``invalidate()`` clears the token irreversibly; every later API call
      fails fast with SessionExpiredError before touching the network.
"""

from __future__ import annotations

from typing import Any

from billing_kernel.domain.roles import Role, parse_role
from billing_kernel.exceptions import SessionExpiredError
from billing_kernel.logging_config import get_logger

logger = get_logger("services.session")


class SessionContext:
    """Role and token of the authenticated user."""

    def __init__(self, role: Role | str, token: str | None) -> None:
        self._role = parse_role(role)
        self._token = token or None

    @property
    def role(self) -> Role:
        return self._role

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_active(self) -> bool:
        return self._token is not None

    def require_active(self, url: str | None = None) -> str:
        """Return the token, or raise SessionExpiredError if cleared."""
        if self._token is None:
            raise SessionExpiredError(url)
        return self._token

    def invalidate(self, reason: str = "unauthorized") -> None:
        """Clear the token (HTTP 401 or explicit logout)."""
        if self._token is None:
            return
        self._token = None
        logger.warning(
            "session_invalidated",
            extra={"actor_role": self._role.value, "reason": reason},
        )

    def log_fields(self) -> dict[str, Any]:
        return {"actor_role": self._role.value}

    def __repr__(self) -> str:
        state = "active" if self.is_active else "expired"
        return f"SessionContext(role={self._role.value}, {state})"
