"""
Document value objects (``billing_kernel.domain.documents``).

Responsibility
--------------
Immutable snapshots of the documents the console manages, as last fetched
from the remote API (or as optimistically updated since).  Only the fields
the lifecycle engine reads are modelled; totals are carried, never
recomputed.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants reported (not enforced)
----------------------------------
* ``dgi_submission_id`` is present only once the document has reached
  AwaitingClearance, Validated or Rejected.
* ``dgi_rejection_reason`` is meaningful only in Rejected.

The remote copy is authoritative, so violations are surfaced by
``clearance_field_violations`` rather than rejected at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Union

from billing_kernel.domain.status import (
    SUBMITTED_CREDIT_NOTE_STATUSES,
    SUBMITTED_INVOICE_STATUSES,
    CreditNoteStatus,
    InvoiceStatus,
    QuoteStatus,
)


class DocumentType(str, Enum):
    """Kinds of lifecycle-managed documents."""

    INVOICE = "invoice"
    QUOTE = "quote"
    CREDIT_NOTE = "credit_note"


@dataclass(frozen=True)
class Invoice:
    """Invoice snapshot."""

    document_type: ClassVar[DocumentType] = DocumentType.INVOICE

    id: int
    status: InvoiceStatus
    number: str | None = None
    total: Decimal | None = None
    dgi_submission_id: str | None = None
    dgi_rejection_reason: str | None = None


@dataclass(frozen=True)
class CreditNote:
    """Credit note snapshot; cleared by the tax authority like an invoice."""

    document_type: ClassVar[DocumentType] = DocumentType.CREDIT_NOTE

    id: int
    status: CreditNoteStatus
    number: str | None = None
    total: Decimal | None = None
    dgi_submission_id: str | None = None
    dgi_rejection_reason: str | None = None


@dataclass(frozen=True)
class Quote:
    """Quote snapshot.  No clearance sub-state."""

    document_type: ClassVar[DocumentType] = DocumentType.QUOTE

    id: int
    status: QuoteStatus
    number: str | None = None
    total: Decimal | None = None


Document = Union[Invoice, CreditNote, Quote]

# Documents that go through DGI clearance.
ClearableDocument = Union[Invoice, CreditNote]


def clearance_field_violations(document: Document) -> list[str]:
    """Describe breaches of the clearance-field invariants (empty when clean)."""
    if isinstance(document, Quote):
        return []

    submitted = (
        SUBMITTED_INVOICE_STATUSES
        if isinstance(document, Invoice)
        else SUBMITTED_CREDIT_NOTE_STATUSES
    )
    violations: list[str] = []
    if document.dgi_submission_id and document.status not in submitted:
        violations.append(
            f"dgi_submission_id present in status {document.status.name}"
        )
    if document.dgi_rejection_reason and document.status.name != "REJECTED":
        violations.append(
            f"dgi_rejection_reason present in status {document.status.name}"
        )
    return violations
