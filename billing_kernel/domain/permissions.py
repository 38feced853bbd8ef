"""
Permission engine (``billing_kernel.domain.permissions``).

Responsibility
--------------
Answers "may role R do action A on a document in status S?" for invoices,
credit notes and quotes.  The aggregate ``*_action_permissions`` functions
bundle every per-row decision plus the offered transitions so that callers
never re-derive one flag independently of the others.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over ``(role, status)``.  ZERO I/O,
no caching: callers pass the most recently fetched status on every query.

Invariants enforced
-------------------
* Total: every function returns a bool (or a record) for any input, unknown
  roles included, and never raises.
* Clerks never submit, never change status, never check clearance.
* Rejection reasons are visible to every role, and only in Rejected.
* Delete shares eligibility with edit for invoices and quotes.  Credit
  notes reserve delete to Admin (exact-role gate, not an ordering).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from billing_kernel.domain.roles import Role, is_supervisor
from billing_kernel.domain.status import (
    OPEN_CREDIT_NOTE_STATUSES,
    OPEN_INVOICE_STATUSES,
    OPEN_QUOTE_STATUSES,
    CreditNoteStatus,
    InvoiceStatus,
    QuoteStatus,
    credit_note_transitions,
    invoice_transitions,
    quote_transitions,
)


# =========================================================================
# Permission records
# =========================================================================


@dataclass(frozen=True)
class ActionPermissions:
    """Per-row decisions for an invoice or credit note.  Derived, never stored."""

    can_edit: bool
    can_delete: bool
    can_submit: bool
    can_change_status: bool
    can_check_clearance_status: bool
    can_view_rejection_reason: bool
    valid_transitions: frozenset


@dataclass(frozen=True)
class QuoteActionPermissions:
    """Per-row decisions for a quote.  ``can_convert_to_invoice`` replaces submit."""

    can_edit: bool
    can_delete: bool
    can_send: bool
    can_change_status: bool
    can_convert_to_invoice: bool
    valid_transitions: frozenset


# =========================================================================
# Invoices
# =========================================================================


def can_modify_invoice(role: Any, status: InvoiceStatus) -> bool:
    if is_supervisor(role):
        return status in OPEN_INVOICE_STATUSES
    if role == Role.CLERK:
        return status == InvoiceStatus.DRAFT
    return False


def can_delete_invoice(role: Any, status: InvoiceStatus) -> bool:
    return can_modify_invoice(role, status)


def can_change_invoice_status(role: Any, status: InvoiceStatus) -> bool:
    return is_supervisor(role) and status in OPEN_INVOICE_STATUSES


def can_submit_invoice(role: Any, status: InvoiceStatus) -> bool:
    """Submission hands the invoice to the tax authority; irreversible."""
    return is_supervisor(role) and status == InvoiceStatus.READY


def can_check_invoice_clearance(role: Any, status: InvoiceStatus) -> bool:
    return is_supervisor(role) and status == InvoiceStatus.AWAITING_CLEARANCE


def can_view_invoice_rejection_reason(role: Any, status: InvoiceStatus) -> bool:
    return status == InvoiceStatus.REJECTED


def invoice_action_permissions(role: Any, status: InvoiceStatus) -> ActionPermissions:
    return ActionPermissions(
        can_edit=can_modify_invoice(role, status),
        can_delete=can_delete_invoice(role, status),
        can_submit=can_submit_invoice(role, status),
        can_change_status=can_change_invoice_status(role, status),
        can_check_clearance_status=can_check_invoice_clearance(role, status),
        can_view_rejection_reason=can_view_invoice_rejection_reason(role, status),
        valid_transitions=invoice_transitions(role, status),
    )


# =========================================================================
# Credit notes
# =========================================================================


def can_modify_credit_note(role: Any, status: CreditNoteStatus) -> bool:
    return is_supervisor(role) and status == CreditNoteStatus.DRAFT


def can_delete_credit_note(role: Any, status: CreditNoteStatus) -> bool:
    return role == Role.ADMIN and status == CreditNoteStatus.DRAFT


def can_change_credit_note_status(role: Any, status: CreditNoteStatus) -> bool:
    return is_supervisor(role) and status in OPEN_CREDIT_NOTE_STATUSES


def can_submit_credit_note(role: Any, status: CreditNoteStatus) -> bool:
    return is_supervisor(role) and status == CreditNoteStatus.READY


def can_check_credit_note_clearance(role: Any, status: CreditNoteStatus) -> bool:
    return is_supervisor(role) and status == CreditNoteStatus.AWAITING_CLEARANCE


def can_view_credit_note_rejection_reason(role: Any, status: CreditNoteStatus) -> bool:
    return status == CreditNoteStatus.REJECTED


def credit_note_action_permissions(role: Any, status: CreditNoteStatus) -> ActionPermissions:
    return ActionPermissions(
        can_edit=can_modify_credit_note(role, status),
        can_delete=can_delete_credit_note(role, status),
        can_submit=can_submit_credit_note(role, status),
        can_change_status=can_change_credit_note_status(role, status),
        can_check_clearance_status=can_check_credit_note_clearance(role, status),
        can_view_rejection_reason=can_view_credit_note_rejection_reason(role, status),
        valid_transitions=credit_note_transitions(role, status),
    )


# =========================================================================
# Quotes
# =========================================================================


def can_modify_quote(role: Any, status: QuoteStatus) -> bool:
    if is_supervisor(role):
        return status in OPEN_QUOTE_STATUSES
    if role == Role.CLERK:
        return status == QuoteStatus.DRAFT
    return False


def can_delete_quote(role: Any, status: QuoteStatus) -> bool:
    return can_modify_quote(role, status)


def can_change_quote_status(role: Any, status: QuoteStatus) -> bool:
    return is_supervisor(role) and status in OPEN_QUOTE_STATUSES


def can_send_quote(role: Any, status: QuoteStatus) -> bool:
    """Draft -> Sent, the quote counterpart of invoice submission."""
    return is_supervisor(role) and status == QuoteStatus.DRAFT


def can_convert_quote_to_invoice(role: Any, status: QuoteStatus) -> bool:
    """Accepted -> Converted.  One-way."""
    return is_supervisor(role) and status == QuoteStatus.ACCEPTED


def quote_action_permissions(role: Any, status: QuoteStatus) -> QuoteActionPermissions:
    return QuoteActionPermissions(
        can_edit=can_modify_quote(role, status),
        can_delete=can_delete_quote(role, status),
        can_send=can_send_quote(role, status),
        can_change_status=can_change_quote_status(role, status),
        can_convert_to_invoice=can_convert_quote_to_invoice(role, status),
        valid_transitions=quote_transitions(role, status),
    )
