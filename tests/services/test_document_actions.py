"""
Tests for DocumentActionService (``billing_services.document_actions``).

Invariants tested:
- A denied action raises AuthorizationDeniedError and sends no request.
- Permission checks read the cached status at call time.
- Submit shows AwaitingClearance optimistically, then refreshes from the
  server, which has the final word.
- A status change to the current status is a no-op.
- Failed remote calls leave the cache untouched.
- A result that arrives after the view was left is not applied.
- A failed follow-up refresh never turns a successful write into an error,
  except when the session expired.
"""

import asyncio

import httpx
import pytest

from billing_kernel.domain.documents import CreditNote, DocumentType, Invoice, Quote
from billing_kernel.domain.status import CreditNoteStatus, InvoiceStatus, QuoteStatus
from billing_kernel.exceptions import (
    AuthorizationDeniedError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    RemoteOperationError,
    SessionExpiredError,
    TransportFailureError,
)


# =========================================================================
# Authorization gate
# =========================================================================


class TestAuthorizationGate:
    """Denied actions never reach the network."""

    def test_clerk_cannot_submit(self, harness, captured_logs):
        h = harness("Clerk")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))

        with pytest.raises(AuthorizationDeniedError) as exc_info:
            asyncio.run(h.actions.submit_invoice(1))

        assert exc_info.value.role == "Clerk"
        assert exc_info.value.status == "READY"
        assert h.server.requests == []
        denied = [r for r in captured_logs() if r["message"] == "authorization_denied"]
        assert denied and denied[0]["action"] == "submit"

    def test_manager_cannot_delete_awaiting_clearance(self, harness):
        h = harness("Manager")
        h.seed(Invoice(id=2, status=InvoiceStatus.AWAITING_CLEARANCE))

        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.delete_invoice(2))
        assert h.server.requests == []

    def test_status_read_at_call_time(self, harness):
        """A Ready invoice that became AwaitingClearance can no longer be submitted."""
        h = harness("Admin")
        h.seed(Invoice(id=3, status=InvoiceStatus.READY))
        h.actions.cache(DocumentType.INVOICE).apply_optimistic(
            3, status=InvoiceStatus.AWAITING_CLEARANCE
        )

        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.submit_invoice(3))

    def test_unknown_document(self, harness):
        h = harness()
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(h.actions.delete_quote(404))

    def test_manager_cannot_delete_credit_note(self, harness):
        h = harness("Manager")
        h.seed(CreditNote(id=5, status=CreditNoteStatus.DRAFT))
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.delete_credit_note(5))


# =========================================================================
# Submit
# =========================================================================


class TestSubmit:
    """Submission to the tax authority."""

    def test_submit_optimistic_then_refresh(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope({"dgiSubmissionId": "SUB-1"}))
        h.server.on(
            "GET",
            "/invoices",
            envelope([{"id": 1, "status": 2, "dgiSubmissionId": "SUB-1-SERVER"}]),
        )

        invoice = asyncio.run(h.actions.submit_invoice(1))

        cache = h.actions.cache(DocumentType.INVOICE)
        assert invoice.status is InvoiceStatus.AWAITING_CLEARANCE
        assert invoice.dgi_submission_id == "SUB-1-SERVER"
        assert not cache.is_dirty(1)

    def test_submit_and_its_refresh_share_correlation_id(self, harness, envelope, captured_logs):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY), Invoice(id=2, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope())
        h.server.on("POST", "/invoices/2/submit", envelope())
        h.server.on("GET", "/invoices", envelope([{"id": 1, "status": 2}, {"id": 2, "status": 2}]))

        asyncio.run(h.actions.submit_invoice(1))
        asyncio.run(h.actions.submit_invoice(2))

        logs = captured_logs()
        submitted = [r for r in logs if r["message"] == "document_submitted"]
        refreshed = [
            r for r in logs
            if r["message"] == "document_cache_refreshed" and "correlation_id" in r
        ]
        assert len(refreshed) == 2
        assert submitted[0]["correlation_id"] == refreshed[0]["correlation_id"]
        assert submitted[0]["correlation_id"] != submitted[1]["correlation_id"]

    def test_submit_without_refresh_stays_dirty(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope({"dgiSubmissionId": "SUB-1"}))

        invoice = asyncio.run(h.actions.submit_invoice(1, refresh=False))

        assert invoice.status is InvoiceStatus.AWAITING_CLEARANCE
        assert invoice.dgi_submission_id == "SUB-1"
        assert h.actions.cache(DocumentType.INVOICE).is_dirty(1)
        assert h.server.calls("GET") == []

    def test_refresh_failure_after_submit_keeps_optimistic_value(self, harness, envelope, captured_logs):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope({"dgiSubmissionId": "SUB-1"}))
        h.server.on("GET", "/invoices", envelope(succeeded=False, message="Busy"), status_code=503)

        invoice = asyncio.run(h.actions.submit_invoice(1))

        assert invoice.status is InvoiceStatus.AWAITING_CLEARANCE
        assert any(r["message"] == "document_refresh_failed" for r in captured_logs())

    def test_failed_submit_leaves_cache_unchanged(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on(
            "POST",
            "/invoices/1/submit",
            envelope(succeeded=False, message="Rejected", errors=["Missing ICE"]),
            status_code=400,
        )

        with pytest.raises(RemoteOperationError):
            asyncio.run(h.actions.submit_invoice(1))

        cache = h.actions.cache(DocumentType.INVOICE)
        assert cache.status_of(1) is InvoiceStatus.READY
        assert not cache.is_dirty(1)

    def test_submit_credit_note(self, harness, envelope):
        h = harness("Admin")
        h.seed(CreditNote(id=8, status=CreditNoteStatus.READY))
        h.server.on("POST", "/creditNotes/8/submit", envelope())

        note = asyncio.run(h.actions.submit_credit_note(8, refresh=False))

        assert note.status is CreditNoteStatus.AWAITING_CLEARANCE

    def test_quotes_cannot_be_submitted_for_clearance(self, harness):
        h = harness("Admin")
        h.seed(Quote(id=1, status=QuoteStatus.DRAFT))
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.submit(DocumentType.QUOTE, 1))


# =========================================================================
# Delete
# =========================================================================


class TestDelete:
    """Deletion."""

    def test_clerk_deletes_draft(self, harness, envelope):
        h = harness("Clerk")
        h.seed(Invoice(id=1, status=InvoiceStatus.DRAFT))
        h.server.on("DELETE", "/invoices/1", envelope())

        asyncio.run(h.actions.delete_invoice(1))

        assert 1 not in h.actions.cache(DocumentType.INVOICE)

    def test_transport_failure_keeps_document(self, harness):
        h = harness("Clerk")
        h.seed(Quote(id=4, status=QuoteStatus.DRAFT))

        def fail(request):
            raise httpx.ReadTimeout("timed out", request=request)

        h.server.on("DELETE", "/quotes/4", handler=fail)

        with pytest.raises(TransportFailureError):
            asyncio.run(h.actions.delete_quote(4))
        assert 4 in h.actions.cache(DocumentType.QUOTE)


# =========================================================================
# Status changes
# =========================================================================


class TestStatusChanges:
    """Transition-table-gated status changes."""

    def test_manager_moves_draft_to_ready(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.DRAFT))
        h.server.on("PUT", "/invoices/1", envelope())

        invoice = asyncio.run(h.actions.change_invoice_status(1, InvoiceStatus.READY))

        assert invoice.status is InvoiceStatus.READY
        assert h.actions.cache(DocumentType.INVOICE).is_dirty(1)

    def test_same_status_is_noop(self, harness):
        h = harness("Clerk")
        h.seed(Invoice(id=1, status=InvoiceStatus.DRAFT))

        invoice = asyncio.run(h.actions.change_invoice_status(1, InvoiceStatus.DRAFT))

        assert invoice.status is InvoiceStatus.DRAFT
        assert h.server.requests == []

    def test_clerk_cannot_change_status(self, harness):
        h = harness("Clerk")
        h.seed(Invoice(id=1, status=InvoiceStatus.DRAFT))
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.change_invoice_status(1, InvoiceStatus.READY))

    def test_rejected_cannot_jump_to_ready(self, harness):
        h = harness("Admin")
        h.seed(Invoice(id=1, status=InvoiceStatus.REJECTED))
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            asyncio.run(h.actions.change_invoice_status(1, InvoiceStatus.READY))
        assert exc_info.value.target == "READY"
        assert h.server.requests == []

    def test_cannot_force_validated(self, harness):
        h = harness("Admin")
        h.seed(Invoice(id=1, status=InvoiceStatus.AWAITING_CLEARANCE))
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.change_invoice_status(1, InvoiceStatus.VALIDATED))

    def test_revert_rejected_to_draft_clears_clearance_fields(self, harness, envelope):
        h = harness("Manager")
        h.seed(
            Invoice(
                id=1,
                status=InvoiceStatus.REJECTED,
                dgi_submission_id="SUB-1",
                dgi_rejection_reason="Invalid tax ID",
            )
        )
        h.server.on("PUT", "/invoices/1", envelope())

        invoice = asyncio.run(h.actions.revert_invoice_to_draft(1))

        assert invoice.status is InvoiceStatus.DRAFT
        assert invoice.dgi_submission_id is None
        assert invoice.dgi_rejection_reason is None

    def test_quote_status_change(self, harness, envelope):
        h = harness("Manager")
        h.seed(Quote(id=2, status=QuoteStatus.SENT))
        h.server.on("PUT", "/quotes/2/status", envelope())

        quote = asyncio.run(h.actions.change_quote_status(2, QuoteStatus.DRAFT))

        assert quote.status is QuoteStatus.DRAFT


# =========================================================================
# Quotes
# =========================================================================


class TestQuoteActions:
    """Send and convert."""

    def test_send_quote(self, harness, envelope):
        h = harness("Manager")
        h.seed(Quote(id=1, status=QuoteStatus.DRAFT))
        h.server.on("POST", "/quotes/1/submit", envelope())

        quote = asyncio.run(h.actions.send_quote(1))

        assert quote.status is QuoteStatus.SENT

    def test_convert_accepted_quote(self, harness, envelope):
        h = harness("Admin")
        h.seed(Quote(id=1, status=QuoteStatus.ACCEPTED))
        h.server.on("POST", "/quotes/1/convert", envelope({"invoiceId": 501}))

        invoice_id = asyncio.run(h.actions.convert_quote_to_invoice(1))

        assert invoice_id == 501
        assert h.actions.cache(DocumentType.QUOTE).status_of(1) is QuoteStatus.CONVERTED

    def test_cannot_convert_sent_quote(self, harness):
        h = harness("Admin")
        h.seed(Quote(id=1, status=QuoteStatus.SENT))
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(h.actions.convert_quote_to_invoice(1))


class TestRefresh:
    """Full list refresh."""

    def test_refresh_credit_notes(self, harness, envelope):
        h = harness("Manager")
        h.server.on(
            "GET",
            "/creditNotes",
            envelope({"creditNotes": [{"id": 1, "status": 1, "creditNoteNumber": "AV-1"}]}),
        )

        notes = asyncio.run(h.actions.refresh_credit_notes())

        assert notes[0].number == "AV-1"
        assert h.actions.cache(DocumentType.CREDIT_NOTE).status_of(1) is CreditNoteStatus.READY

    def test_malformed_list_payload_is_remote_error(self, harness, envelope):
        h = harness("Manager")
        h.server.on("GET", "/invoices", envelope([{"status": 1}]))

        with pytest.raises(RemoteOperationError, match="Malformed invoice list payload"):
            asyncio.run(h.actions.refresh_invoices())


# =========================================================================
# Follow-up refresh failures
# =========================================================================


class TestRefreshAfterWrite:
    """The write succeeded; the re-fetch must not turn it into an error."""

    def test_unknown_status_in_refreshed_list_is_logged(self, harness, envelope, captured_logs):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope({"dgiSubmissionId": "SUB-1"}))
        h.server.on(
            "GET",
            "/invoices",
            envelope([{"id": 1, "status": 2}, {"id": 2, "status": 9}]),
        )

        invoice = asyncio.run(h.actions.submit_invoice(1))

        assert invoice.status is InvoiceStatus.AWAITING_CLEARANCE
        assert h.actions.cache(DocumentType.INVOICE).is_dirty(1)
        failures = [r for r in captured_logs() if r["message"] == "document_refresh_failed"]
        assert failures and failures[0]["error_code"] == "UNKNOWN_STATUS_VALUE"

    def test_missing_id_in_refreshed_list_is_logged(self, harness, envelope, captured_logs):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope())
        h.server.on("GET", "/invoices", envelope([{"status": 2}]))

        invoice = asyncio.run(h.actions.submit_invoice(1))

        assert invoice.status is InvoiceStatus.AWAITING_CLEARANCE
        failures = [r for r in captured_logs() if r["message"] == "document_refresh_failed"]
        assert failures and failures[0]["error_code"] == "REMOTE_OPERATION_FAILED"

    def test_session_expiry_during_refresh_propagates(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        h.server.on("POST", "/invoices/1/submit", envelope())
        h.server.on("GET", "/invoices", handler=lambda request: httpx.Response(401))

        with pytest.raises(SessionExpiredError):
            asyncio.run(h.actions.submit_invoice(1))
        assert not h.session.is_active


# =========================================================================
# Results arriving after the view was left
# =========================================================================


class TestLateResults:
    """A write that completes after ``cache.reset()`` changes no local state."""

    def test_submit_after_reset_is_not_applied(self, harness, envelope, captured_logs):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        cache = h.actions.cache(DocumentType.INVOICE)

        def leave_view_then_answer(request):
            cache.reset()
            return httpx.Response(200, json=envelope({"dgiSubmissionId": "SUB-1"}))

        h.server.on("POST", "/invoices/1/submit", handler=leave_view_then_answer)

        invoice = asyncio.run(h.actions.submit_invoice(1, refresh=False))

        assert invoice.status is InvoiceStatus.READY
        assert 1 not in cache
        assert any(r["message"] == "document_result_stale" for r in captured_logs())

    def test_submit_after_reset_and_reload_keeps_fresh_data(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.READY))
        cache = h.actions.cache(DocumentType.INVOICE)

        def leave_and_return_then_answer(request):
            cache.reset()
            cache.replace_all([Invoice(id=1, status=InvoiceStatus.DRAFT)])
            return httpx.Response(200, json=envelope())

        h.server.on("POST", "/invoices/1/submit", handler=leave_and_return_then_answer)

        asyncio.run(h.actions.submit_invoice(1))

        assert cache.status_of(1) is InvoiceStatus.DRAFT
        assert not cache.is_dirty(1)
        assert h.server.calls("GET", "/invoices") == []

    def test_status_change_after_reset_is_not_applied(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.DRAFT))
        cache = h.actions.cache(DocumentType.INVOICE)

        def leave_and_return_then_answer(request):
            cache.reset()
            cache.replace_all([Invoice(id=1, status=InvoiceStatus.DRAFT)])
            return httpx.Response(200, json=envelope())

        h.server.on("PUT", "/invoices/1", handler=leave_and_return_then_answer)

        asyncio.run(h.actions.change_invoice_status(1, InvoiceStatus.READY))

        assert cache.status_of(1) is InvoiceStatus.DRAFT
        assert not cache.is_dirty(1)

    def test_send_and_convert_after_reset_are_not_applied(self, harness, envelope):
        h = harness("Admin")
        h.seed(Quote(id=1, status=QuoteStatus.DRAFT), Quote(id=2, status=QuoteStatus.ACCEPTED))
        cache = h.actions.cache(DocumentType.QUOTE)

        def leave_then_answer(body):
            def _answer(request):
                cache.reset()
                return httpx.Response(200, json=envelope(body))
            return _answer

        h.server.on("POST", "/quotes/1/submit", handler=leave_then_answer(None))
        h.server.on("POST", "/quotes/2/convert", handler=leave_then_answer({"invoiceId": 9}))

        sent = asyncio.run(h.actions.send_quote(1))
        assert sent.status is QuoteStatus.DRAFT

        h.seed(Quote(id=2, status=QuoteStatus.ACCEPTED))
        invoice_id = asyncio.run(h.actions.convert_quote_to_invoice(2))
        assert invoice_id == 9
        assert 2 not in cache

    def test_delete_after_reset_leaves_reloaded_cache_alone(self, harness, envelope):
        h = harness("Manager")
        h.seed(Invoice(id=1, status=InvoiceStatus.DRAFT))
        cache = h.actions.cache(DocumentType.INVOICE)

        def leave_and_return_then_answer(request):
            cache.reset()
            cache.replace_all([Invoice(id=1, status=InvoiceStatus.DRAFT)])
            return httpx.Response(200, json=envelope())

        h.server.on("DELETE", "/invoices/1", handler=leave_and_return_then_answer)

        asyncio.run(h.actions.delete_invoice(1))

        assert 1 in cache
