"""
Document status model (``billing_kernel.domain.status``).

Responsibility
--------------
Closed status sets and role-aware transition tables for invoices, quotes
and credit notes.  Raw integers (invoices, credit notes) and strings
(quotes) only exist at the serialization boundary: ``*_status_from_wire``
converts them, and everything past that point works with the enums.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and lookup tables.  ZERO I/O.

Invariants enforced
-------------------
* ``*_transitions(role, current)`` always contains ``current`` (no-op is
  always a legal target).
* Clerks, and unrecognised roles, are offered ``{current}`` only.
* Managers and Admins move between the open statuses (Draft, Ready/Sent,
  Rejected) but never into or out of the authority-controlled statuses
  (AwaitingClearance, Validated / Accepted, Converted).  Those are reached
  through submit, clearance reconciliation and quote conversion only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Mapping

from billing_kernel.domain.roles import is_supervisor
from billing_kernel.exceptions import UnknownStatusValueError


# =========================================================================
# Status enumerations
# =========================================================================


class InvoiceStatus(IntEnum):
    """Invoice lifecycle states (wire values are integers)."""

    DRAFT = 0
    READY = 1
    AWAITING_CLEARANCE = 2
    VALIDATED = 3
    REJECTED = 4


class CreditNoteStatus(IntEnum):
    """Credit note lifecycle states; same clearance flow as invoices."""

    DRAFT = 0
    READY = 1
    AWAITING_CLEARANCE = 2
    VALIDATED = 3
    REJECTED = 4


class QuoteStatus(str, Enum):
    """Quote lifecycle states (wire values are strings)."""

    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    CONVERTED = "Converted"


OPEN_INVOICE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.DRAFT,
    InvoiceStatus.READY,
    InvoiceStatus.REJECTED,
})

AUTHORITY_CONTROLLED_INVOICE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.AWAITING_CLEARANCE,
    InvoiceStatus.VALIDATED,
})

# Statuses in which an invoice has been handed to the tax authority.
SUBMITTED_INVOICE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.AWAITING_CLEARANCE,
    InvoiceStatus.VALIDATED,
    InvoiceStatus.REJECTED,
})

OPEN_CREDIT_NOTE_STATUSES: frozenset[CreditNoteStatus] = frozenset({
    CreditNoteStatus.DRAFT,
    CreditNoteStatus.READY,
    CreditNoteStatus.REJECTED,
})

SUBMITTED_CREDIT_NOTE_STATUSES: frozenset[CreditNoteStatus] = frozenset({
    CreditNoteStatus.AWAITING_CLEARANCE,
    CreditNoteStatus.VALIDATED,
    CreditNoteStatus.REJECTED,
})

OPEN_QUOTE_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.DRAFT,
    QuoteStatus.SENT,
    QuoteStatus.REJECTED,
})

AUTHORITY_CONTROLLED_QUOTE_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.ACCEPTED,
    QuoteStatus.CONVERTED,
})


# =========================================================================
# Transition tables (Manager / Admin)
# =========================================================================

MANAGER_INVOICE_TRANSITIONS: Mapping[InvoiceStatus, frozenset[InvoiceStatus]] = MappingProxyType({
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.DRAFT, InvoiceStatus.READY}),
    InvoiceStatus.READY: frozenset({InvoiceStatus.DRAFT, InvoiceStatus.READY}),
    InvoiceStatus.AWAITING_CLEARANCE: frozenset({InvoiceStatus.AWAITING_CLEARANCE}),
    InvoiceStatus.VALIDATED: frozenset({InvoiceStatus.VALIDATED}),
    InvoiceStatus.REJECTED: frozenset({InvoiceStatus.DRAFT, InvoiceStatus.REJECTED}),
})

MANAGER_CREDIT_NOTE_TRANSITIONS: Mapping[CreditNoteStatus, frozenset[CreditNoteStatus]] = MappingProxyType({
    CreditNoteStatus.DRAFT: frozenset({CreditNoteStatus.DRAFT, CreditNoteStatus.READY}),
    CreditNoteStatus.READY: frozenset({CreditNoteStatus.DRAFT, CreditNoteStatus.READY}),
    CreditNoteStatus.AWAITING_CLEARANCE: frozenset({CreditNoteStatus.AWAITING_CLEARANCE}),
    CreditNoteStatus.VALIDATED: frozenset({CreditNoteStatus.VALIDATED}),
    CreditNoteStatus.REJECTED: frozenset({CreditNoteStatus.DRAFT, CreditNoteStatus.REJECTED}),
})

MANAGER_QUOTE_TRANSITIONS: Mapping[QuoteStatus, frozenset[QuoteStatus]] = MappingProxyType({
    QuoteStatus.DRAFT: frozenset({QuoteStatus.DRAFT, QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({QuoteStatus.DRAFT, QuoteStatus.SENT}),
    QuoteStatus.ACCEPTED: frozenset({QuoteStatus.ACCEPTED}),
    QuoteStatus.REJECTED: frozenset({QuoteStatus.DRAFT, QuoteStatus.REJECTED}),
    QuoteStatus.CONVERTED: frozenset({QuoteStatus.CONVERTED}),
})


def _transitions(table: Mapping[Any, frozenset], role: Any, current: Any) -> frozenset:
    if not is_supervisor(role):
        return frozenset({current})
    return table.get(current, frozenset({current}))


def invoice_transitions(role: Any, current: InvoiceStatus) -> frozenset[InvoiceStatus]:
    """Target statuses offered to ``role`` for an invoice in ``current``."""
    return _transitions(MANAGER_INVOICE_TRANSITIONS, role, current)


def credit_note_transitions(role: Any, current: CreditNoteStatus) -> frozenset[CreditNoteStatus]:
    """Target statuses offered to ``role`` for a credit note in ``current``."""
    return _transitions(MANAGER_CREDIT_NOTE_TRANSITIONS, role, current)


def quote_transitions(role: Any, current: QuoteStatus) -> frozenset[QuoteStatus]:
    """Target statuses offered to ``role`` for a quote in ``current``."""
    return _transitions(MANAGER_QUOTE_TRANSITIONS, role, current)


def can_transition_invoice(role: Any, current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in invoice_transitions(role, current)


def can_transition_credit_note(
    role: Any, current: CreditNoteStatus, target: CreditNoteStatus
) -> bool:
    return target in credit_note_transitions(role, current)


def can_transition_quote(role: Any, current: QuoteStatus, target: QuoteStatus) -> bool:
    return target in quote_transitions(role, current)


# =========================================================================
# Serialization boundary
# =========================================================================


def invoice_status_from_wire(value: Any) -> InvoiceStatus:
    """Parse an invoice status integer.

    Raises:
        UnknownStatusValueError: for values outside 0..4 (only ints and
            digit strings are accepted).
    """
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise UnknownStatusValueError("invoice", value)
    try:
        return InvoiceStatus(int(value))
    except (TypeError, ValueError):
        raise UnknownStatusValueError("invoice", value) from None


def credit_note_status_from_wire(value: Any) -> CreditNoteStatus:
    """Parse a credit note status integer."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise UnknownStatusValueError("credit_note", value)
    try:
        return CreditNoteStatus(int(value))
    except (TypeError, ValueError):
        raise UnknownStatusValueError("credit_note", value) from None


def quote_status_from_wire(value: Any) -> QuoteStatus:
    """Parse a quote status string (exact, case-sensitive)."""
    try:
        return QuoteStatus(value)
    except ValueError:
        raise UnknownStatusValueError("quote", value) from None


# =========================================================================
# Display metadata
# =========================================================================


@dataclass(frozen=True)
class StatusDisplay:
    """Badge metadata for a status: i18n key, colour, user-mutability."""

    key: str
    color: str
    mutable: bool


UNKNOWN_STATUS_DISPLAY = StatusDisplay(key="unknown", color="gray", mutable=False)

_CLEARANCE_FLOW_DISPLAY: dict[int, StatusDisplay] = {
    0: StatusDisplay(key="draft", color="gray", mutable=True),
    1: StatusDisplay(key="ready", color="blue", mutable=True),
    2: StatusDisplay(key="awaitingClearance", color="yellow", mutable=False),
    3: StatusDisplay(key="validated", color="green", mutable=False),
    4: StatusDisplay(key="rejected", color="red", mutable=True),
}

_QUOTE_DISPLAY: dict[QuoteStatus, StatusDisplay] = {
    QuoteStatus.DRAFT: StatusDisplay(key="draft", color="gray", mutable=True),
    QuoteStatus.SENT: StatusDisplay(key="sent", color="yellow", mutable=True),
    QuoteStatus.ACCEPTED: StatusDisplay(key="accepted", color="green", mutable=False),
    QuoteStatus.REJECTED: StatusDisplay(key="rejected", color="red", mutable=True),
    QuoteStatus.CONVERTED: StatusDisplay(key="converted", color="purple", mutable=False),
}


def status_display(status: Any) -> StatusDisplay:
    """Badge metadata for any document status; unknown values map to gray."""
    if isinstance(status, QuoteStatus):
        return _QUOTE_DISPLAY[status]
    if isinstance(status, (InvoiceStatus, CreditNoteStatus)):
        return _CLEARANCE_FLOW_DISPLAY[int(status)]
    return UNKNOWN_STATUS_DISPLAY
