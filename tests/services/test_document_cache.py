"""
Tests for DocumentCache (``billing_services.document_cache``).

Invariants tested:
- An optimistic update marks the entry dirty.
- The next full refresh overwrites the optimistic value with the server's
  and clears the dirty flag; the local value is never trusted over it.
- reset() starts a new generation.
"""

import pytest

from billing_kernel.domain.documents import DocumentType, Invoice
from billing_kernel.domain.status import InvoiceStatus
from billing_kernel.exceptions import DocumentNotFoundError
from billing_services.document_cache import DocumentCache


@pytest.fixture
def cache() -> DocumentCache:
    c = DocumentCache(DocumentType.INVOICE)
    c.replace_all(
        [
            Invoice(id=1, status=InvoiceStatus.READY),
            Invoice(id=2, status=InvoiceStatus.DRAFT),
        ]
    )
    return c


class TestOptimisticUpdates:
    """Dirty-until-refresh semantics."""

    def test_apply_optimistic_marks_dirty(self, cache):
        updated = cache.apply_optimistic(
            1, status=InvoiceStatus.AWAITING_CLEARANCE, dgi_submission_id="SUB-1"
        )
        assert updated.status is InvoiceStatus.AWAITING_CLEARANCE
        assert cache.is_dirty(1)
        assert not cache.is_dirty(2)
        assert cache.dirty_ids() == {1}

    def test_full_refresh_overwrites_optimistic_value(self, cache):
        """The server's answer wins even when it disagrees with the local guess."""
        cache.apply_optimistic(1, status=InvoiceStatus.VALIDATED)

        cache.replace_all(
            [
                Invoice(id=1, status=InvoiceStatus.REJECTED, dgi_rejection_reason="Invalid tax ID"),
                Invoice(id=2, status=InvoiceStatus.DRAFT),
            ]
        )

        assert cache.status_of(1) is InvoiceStatus.REJECTED
        assert cache.require(1).dgi_rejection_reason == "Invalid tax ID"
        assert cache.dirty_ids() == frozenset()

    def test_refresh_log_reports_overwritten_entries(self, cache, captured_logs):
        cache.apply_optimistic(2, status=InvoiceStatus.READY)
        cache.replace_all([Invoice(id=2, status=InvoiceStatus.DRAFT)])

        event = [r for r in captured_logs() if r["message"] == "document_cache_refreshed"][-1]
        assert event["dirty_overwritten"] == 1
        assert event["document_count"] == 1

    def test_optimistic_update_of_missing_document(self, cache):
        with pytest.raises(DocumentNotFoundError):
            cache.apply_optimistic(99, status=InvoiceStatus.DRAFT)


class TestCacheLookups:
    """Lookup, removal and reset."""

    def test_require_missing_raises(self, cache):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            cache.require(5)
        assert exc_info.value.document_type == "invoice"

    def test_remove(self, cache):
        cache.remove(1)
        assert 1 not in cache
        assert len(cache) == 1
        cache.remove(1)

    def test_documents_keep_server_order(self, cache):
        assert [d.id for d in cache.documents()] == [1, 2]

    def test_reset_bumps_generation(self, cache):
        generation = cache.generation
        cache.reset()
        assert cache.generation == generation + 1
        assert len(cache) == 0

    def test_invariant_violation_logged_not_rejected(self, captured_logs):
        cache = DocumentCache(DocumentType.INVOICE)
        cache.replace_all([Invoice(id=3, status=InvoiceStatus.DRAFT, dgi_submission_id="SUB-3")])

        assert cache.get(3) is not None
        assert any(
            r["message"] == "document_field_invariant_violated" and r["document_id"] == "3"
            for r in captured_logs()
        )
