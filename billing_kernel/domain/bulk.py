"""
Bulk selection validator (``billing_kernel.domain.bulk``).

Responsibility
--------------
Reduces a candidate set of documents to the subset eligible for a bulk
operation under the current role, and keeps multi-select state from ever
holding a document that no bulk operation could act on.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Execution (fan-out, confirmation,
aggregation) lives in ``billing_services.bulk_executor``.

Invariants enforced
-------------------
* ``filter_for_bulk`` is exactly ``{d.id : eligible(role, d, op)}``; no
  false inclusions, no false exclusions.
* Select-all selects ``selectable_ids`` only, never the full visible list.
* A plan with zero eligible ids is empty and must not reach the API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Iterable

from billing_kernel.domain.documents import Document, DocumentType
from billing_kernel.domain.permissions import (
    can_delete_credit_note,
    can_delete_invoice,
    can_delete_quote,
    can_send_quote,
    can_submit_credit_note,
    can_submit_invoice,
)


class BulkOperation(str, Enum):
    """Operations offered on a multi-selection."""

    DELETE = "delete"
    SUBMIT = "submit"


_ELIGIBILITY: dict[tuple[DocumentType, BulkOperation], Callable[[Any, Any], bool]] = {
    (DocumentType.INVOICE, BulkOperation.DELETE): can_delete_invoice,
    (DocumentType.INVOICE, BulkOperation.SUBMIT): can_submit_invoice,
    (DocumentType.CREDIT_NOTE, BulkOperation.DELETE): can_delete_credit_note,
    (DocumentType.CREDIT_NOTE, BulkOperation.SUBMIT): can_submit_credit_note,
    (DocumentType.QUOTE, BulkOperation.DELETE): can_delete_quote,
    (DocumentType.QUOTE, BulkOperation.SUBMIT): can_send_quote,
}


def is_bulk_eligible(role: Any, document: Document, operation: BulkOperation) -> bool:
    check = _ELIGIBILITY.get((document.document_type, operation))
    return check is not None and check(role, document.status)


def filter_for_bulk(
    role: Any,
    documents: Iterable[Document],
    operation: BulkOperation,
) -> frozenset[Hashable]:
    """Ids of ``documents`` eligible for ``operation`` under ``role``."""
    return frozenset(
        d.id for d in documents if is_bulk_eligible(role, d, operation)
    )


def selectable_ids(role: Any, documents: Iterable[Document]) -> frozenset[Hashable]:
    """Ids eligible for at least one bulk operation."""
    docs = list(documents)
    ids: set[Hashable] = set()
    for operation in BulkOperation:
        ids |= filter_for_bulk(role, docs, operation)
    return frozenset(ids)


@dataclass(frozen=True)
class BulkPlan:
    """Eligible subset of a selection for one operation.

    ``count`` is what the confirmation prompt shows.  ``excluded_ids`` are
    dropped silently (not reported as errors).
    """

    operation: BulkOperation
    document_type: DocumentType | None
    eligible_ids: tuple[Hashable, ...]
    excluded_ids: tuple[Hashable, ...] = ()

    @property
    def count(self) -> int:
        return len(self.eligible_ids)

    @property
    def is_empty(self) -> bool:
        return not self.eligible_ids


def plan_bulk(
    role: Any,
    documents: Iterable[Document],
    operation: BulkOperation,
) -> BulkPlan:
    """Split ``documents`` into eligible and excluded ids, preserving order."""
    docs = list(documents)
    types = {d.document_type for d in docs}
    if len(types) > 1:
        raise ValueError(
            f"Bulk {operation.value} over mixed document types: "
            f"{sorted(t.value for t in types)}"
        )
    eligible: list[Hashable] = []
    excluded: list[Hashable] = []
    for d in docs:
        (eligible if is_bulk_eligible(role, d, operation) else excluded).append(d.id)
    return BulkPlan(
        operation=operation,
        document_type=next(iter(types)) if types else None,
        eligible_ids=tuple(eligible),
        excluded_ids=tuple(excluded),
    )


@dataclass
class BulkSelection:
    """Multi-select state bound to one role.

    Only documents eligible for at least one bulk operation can be selected;
    ``toggle`` returns False and leaves the selection unchanged otherwise.
    """

    role: Any
    selected: set[Hashable] = field(default_factory=set)

    def toggle(self, document: Document) -> bool:
        if document.id in self.selected:
            self.selected.discard(document.id)
            return True
        if not any(is_bulk_eligible(self.role, document, op) for op in BulkOperation):
            return False
        self.selected.add(document.id)
        return True

    def select_all(self, documents: Iterable[Document]) -> frozenset[Hashable]:
        ids = selectable_ids(self.role, documents)
        self.selected = set(ids)
        return ids

    def clear(self) -> None:
        self.selected.clear()

    def plan(self, operation: BulkOperation, documents: Iterable[Document]) -> BulkPlan:
        """Plan ``operation`` over the selected members of ``documents``.

        ``documents`` must carry freshly fetched statuses; eligibility is
        re-evaluated here, not remembered from selection time.
        """
        chosen = [d for d in documents if d.id in self.selected]
        return plan_bulk(self.role, chosen, operation)
