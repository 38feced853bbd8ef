"""
Pure domain layer.

This package contains value objects and rules with NO dependencies on:
- HTTP clients
- Session or token storage
- Configuration files
- I/O

All domain objects are immutable and deterministic.
"""

from billing_kernel.domain.bulk import (
    BulkOperation,
    BulkPlan,
    BulkSelection,
    filter_for_bulk,
    is_bulk_eligible,
    plan_bulk,
    selectable_ids,
)
from billing_kernel.domain.clearance import (
    NO_REASON_PROVIDED,
    AuthorityStatus,
    ClearanceCheckResult,
    ClearanceOutcome,
    ClearanceReport,
    ClearanceState,
    build_rejection_reason,
    parse_clearance_report,
)
from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.documents import (
    CreditNote,
    Document,
    DocumentType,
    Invoice,
    Quote,
    clearance_field_violations,
)
from billing_kernel.domain.permissions import (
    ActionPermissions,
    QuoteActionPermissions,
    credit_note_action_permissions,
    invoice_action_permissions,
    quote_action_permissions,
)
from billing_kernel.domain.roles import Role, at_least, parse_role, role_level
from billing_kernel.domain.status import (
    CreditNoteStatus,
    InvoiceStatus,
    QuoteStatus,
    StatusDisplay,
    credit_note_transitions,
    invoice_transitions,
    quote_transitions,
    status_display,
)

__all__ = [
    "ActionPermissions",
    "AuthorityStatus",
    "BulkOperation",
    "BulkPlan",
    "BulkSelection",
    "ClearanceCheckResult",
    "ClearanceOutcome",
    "ClearanceReport",
    "ClearanceState",
    "Clock",
    "CreditNote",
    "CreditNoteStatus",
    "DeterministicClock",
    "Document",
    "DocumentType",
    "Invoice",
    "InvoiceStatus",
    "NO_REASON_PROVIDED",
    "Quote",
    "QuoteActionPermissions",
    "QuoteStatus",
    "Role",
    "StatusDisplay",
    "SystemClock",
    "at_least",
    "build_rejection_reason",
    "clearance_field_violations",
    "credit_note_action_permissions",
    "credit_note_transitions",
    "filter_for_bulk",
    "invoice_action_permissions",
    "invoice_transitions",
    "is_bulk_eligible",
    "parse_clearance_report",
    "parse_role",
    "plan_bulk",
    "quote_action_permissions",
    "quote_transitions",
    "role_level",
    "selectable_ids",
    "status_display",
]
