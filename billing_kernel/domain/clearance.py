"""
DGI clearance domain types (``billing_kernel.domain.clearance``).

Responsibility
--------------
Pure value objects for the clearance check cycle: the per-document check
state machine, the authority report parsed from the remote API, and the
reconciled outcome handed back to the UI.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  The one-shot
request/response driver is ``billing_services.clearance_poller``.

Invariants enforced
-------------------
* ``CLEARANCE_TRANSITIONS`` defines the only valid check-state moves:
  IDLE -> CHECKING -> (resolved | FAILED) -> IDLE.
* A rejection always carries a non-empty reason: joined error messages, or
  ``NO_REASON_PROVIDED`` when the authority sent none.
* Unknown authority statuses are never mapped by guesswork; parsing raises
  ``UnknownClearanceStatusError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Hashable, Iterable, Mapping

from billing_kernel.exceptions import UnknownClearanceStatusError

NO_REASON_PROVIDED = "No specific reason provided"
REJECTION_REASON_SEPARATOR = "; "


# =========================================================================
# Check state machine
# =========================================================================


class ClearanceState(str, Enum):
    """Per-document clearance check states."""

    IDLE = "idle"
    CHECKING = "checking"
    RESOLVED_VALIDATED = "resolved_validated"
    RESOLVED_REJECTED = "resolved_rejected"
    RESOLVED_STILL_PENDING = "resolved_still_pending"
    FAILED = "failed"


RESOLVED_CLEARANCE_STATES: frozenset[ClearanceState] = frozenset({
    ClearanceState.RESOLVED_VALIDATED,
    ClearanceState.RESOLVED_REJECTED,
    ClearanceState.RESOLVED_STILL_PENDING,
})

CLEARANCE_TRANSITIONS: dict[ClearanceState, frozenset[ClearanceState]] = {
    ClearanceState.IDLE: frozenset({ClearanceState.CHECKING}),
    ClearanceState.CHECKING: RESOLVED_CLEARANCE_STATES | {ClearanceState.FAILED},
    ClearanceState.RESOLVED_VALIDATED: frozenset({ClearanceState.IDLE}),
    ClearanceState.RESOLVED_REJECTED: frozenset({ClearanceState.IDLE}),
    ClearanceState.RESOLVED_STILL_PENDING: frozenset({ClearanceState.IDLE}),
    ClearanceState.FAILED: frozenset({ClearanceState.IDLE}),
}


def is_valid_clearance_transition(current: ClearanceState, target: ClearanceState) -> bool:
    return target in CLEARANCE_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Authority report
# =========================================================================


class AuthorityStatus(str, Enum):
    """Status values reported by ``GET .../dgi-status``."""

    PENDING_VALIDATION = "PendingValidation"
    VALIDATED = "Validated"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class AuthorityError:
    """One structured error entry from the authority."""

    error_message: str
    error_code: str | None = None


@dataclass(frozen=True)
class ClearanceReport:
    """Parsed authority response."""

    status: AuthorityStatus
    errors: tuple[AuthorityError, ...] = ()


def parse_clearance_report(data: Mapping[str, Any], document_id: Any = None) -> ClearanceReport:
    """Parse ``{status, errors: [{errorMessage}, ...]}``.

    Raises:
        UnknownClearanceStatusError: when ``status`` is missing or not one of
            the three authority values.
    """
    raw_status = data.get("status") if isinstance(data, Mapping) else None
    try:
        status = AuthorityStatus(raw_status)
    except ValueError:
        raise UnknownClearanceStatusError(raw_status, document_id) from None

    errors: list[AuthorityError] = []
    for entry in data.get("errors") or ():
        if isinstance(entry, Mapping):
            message = entry.get("errorMessage")
            if message:
                errors.append(
                    AuthorityError(
                        error_message=str(message),
                        error_code=entry.get("errorCode"),
                    )
                )
        elif entry:
            errors.append(AuthorityError(error_message=str(entry)))
    return ClearanceReport(status=status, errors=tuple(errors))


def build_rejection_reason(errors: Iterable[AuthorityError]) -> str:
    """Join authority error messages, or the fixed placeholder when none."""
    messages = [e.error_message for e in errors if e.error_message]
    if not messages:
        return NO_REASON_PROVIDED
    return REJECTION_REASON_SEPARATOR.join(messages)


# =========================================================================
# Check result
# =========================================================================


class ClearanceOutcome(str, Enum):
    """What a single check produced, from the caller's point of view."""

    STILL_PENDING = "still_pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    FAILED = "failed"
    UNKNOWN_STATUS = "unknown_status"
    IGNORED_IN_FLIGHT = "ignored_in_flight"


OUTCOME_TO_STATE: dict[ClearanceOutcome, ClearanceState] = {
    ClearanceOutcome.STILL_PENDING: ClearanceState.RESOLVED_STILL_PENDING,
    ClearanceOutcome.VALIDATED: ClearanceState.RESOLVED_VALIDATED,
    ClearanceOutcome.REJECTED: ClearanceState.RESOLVED_REJECTED,
    ClearanceOutcome.FAILED: ClearanceState.FAILED,
    ClearanceOutcome.UNKNOWN_STATUS: ClearanceState.FAILED,
}


@dataclass(frozen=True)
class ClearanceCheckResult:
    """Outcome of one on-demand clearance check.

    ``applied`` is True when the outcome was written to the local cache
    (False for pending, failures, ignored requests and stale responses).
    """

    document_id: Hashable
    outcome: ClearanceOutcome
    message: str
    rejection_reason: str | None = None
    applied: bool = False
    stale: bool = False
    checked_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome in (ClearanceOutcome.VALIDATED, ClearanceOutcome.REJECTED)
