"""
Local document cache (``billing_services.document_cache``).

Responsibility:
    Holds the console's copy of one document list, keyed by id.  Entries
    carry a dirty flag: an optimistic update marks the entry dirty, and the
    next full refresh from the server overwrites it and clears the flag.

Invariants enforced:
    - The remote API is the source of truth: ``replace_all`` discards every
      local value, dirty or not.
    - ``generation`` increases on ``reset()``; work started under an older
      generation must not write into the cache.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Hashable, Iterable

from billing_kernel.domain.documents import Document, DocumentType, clearance_field_violations
from billing_kernel.exceptions import DocumentNotFoundError
from billing_kernel.logging_config import get_logger

logger = get_logger("services.document_cache")


@dataclass
class _Entry:
    document: Document
    dirty: bool = False


class DocumentCache:
    """Ordered local copy of one document type."""

    def __init__(self, document_type: DocumentType) -> None:
        self.document_type = document_type
        self._entries: dict[Hashable, _Entry] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._entries

    def documents(self) -> list[Document]:
        return [e.document for e in self._entries.values()]

    def get(self, document_id: Hashable) -> Document | None:
        entry = self._entries.get(document_id)
        return entry.document if entry else None

    def require(self, document_id: Hashable) -> Document:
        """Return the cached document or raise DocumentNotFoundError."""
        entry = self._entries.get(document_id)
        if entry is None:
            raise DocumentNotFoundError(self.document_type.value, document_id)
        return entry.document

    def status_of(self, document_id: Hashable) -> Any:
        return self.require(document_id).status

    def is_dirty(self, document_id: Hashable) -> bool:
        entry = self._entries.get(document_id)
        return bool(entry and entry.dirty)

    def dirty_ids(self) -> frozenset[Hashable]:
        return frozenset(i for i, e in self._entries.items() if e.dirty)

    def apply_optimistic(self, document_id: Hashable, **changes: Any) -> Document:
        """Replace fields of a cached document locally and mark it dirty."""
        entry = self._entries.get(document_id)
        if entry is None:
            raise DocumentNotFoundError(self.document_type.value, document_id)
        entry.document = dataclasses.replace(entry.document, **changes)
        entry.dirty = True
        logger.debug(
            "document_optimistic_update",
            extra={
                "document_type": self.document_type.value,
                "document_id": str(document_id),
                "fields": sorted(changes),
            },
        )
        return entry.document

    def replace_all(self, documents: Iterable[Document]) -> None:
        """Full refresh: overwrite every entry with server values."""
        docs = list(documents)
        overwritten = len(self.dirty_ids())
        self._entries = {d.id: _Entry(d) for d in docs}
        for d in docs:
            violations = clearance_field_violations(d)
            if violations:
                logger.warning(
                    "document_field_invariant_violated",
                    extra={
                        "document_type": self.document_type.value,
                        "document_id": str(d.id),
                        "violations": violations,
                    },
                )
        logger.info(
            "document_cache_refreshed",
            extra={
                "document_type": self.document_type.value,
                "document_count": len(docs),
                "dirty_overwritten": overwritten,
            },
        )

    def remove(self, document_id: Hashable) -> None:
        self._entries.pop(document_id, None)

    def reset(self) -> None:
        """Drop all entries (view left) and start a new generation."""
        self._entries.clear()
        self._generation += 1
