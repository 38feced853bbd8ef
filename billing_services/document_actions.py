"""
DocumentActionService -- Permission-gated single-document actions.

Responsibility:
    Runs every user-initiated action on one document: re-reads the current
    status from the local cache, asks the permission engine, calls the
    remote API and reconciles the cache.  A denied action raises before any
    network call is made.

Architecture position:
    Services layer -- imperative shell over the pure kernel permission
    engine.  All HTTP goes through ``BillingApiClient``.

Invariants enforced:
    - Permission checks read the status at call time, never a value
      captured when the view was rendered.
    - Submit, delete and status changes for authority-controlled statuses
      are refused locally; the server remains the final authority.
    - A status change to the current status is a no-op and sends nothing.
    - A result that arrives after the cache was reset (view left) is not
      applied: no optimistic update, no refresh.
    - After a successful submit the document is optimistically shown as
      AwaitingClearance, then the list is refreshed from the server.

Failure modes:
    - AuthorizationDeniedError: role/status does not permit the action.
    - InvalidStatusTransitionError: target not offered by the transition table.
    - DocumentNotFoundError: id not in the local cache.
    - TransportFailureError / RemoteOperationError / SessionExpiredError:
      propagated from the API client; the cache is left unchanged.
    - Failures of the follow-up refresh after a successful write are logged,
      never raised, except SessionExpiredError.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable
from uuid import uuid4

from billing_kernel.domain.documents import Document, DocumentType
from billing_kernel.domain.permissions import (
    can_change_credit_note_status,
    can_change_invoice_status,
    can_change_quote_status,
    can_convert_quote_to_invoice,
    can_delete_credit_note,
    can_delete_invoice,
    can_delete_quote,
    can_send_quote,
    can_submit_credit_note,
    can_submit_invoice,
)
from billing_kernel.domain.status import (
    CreditNoteStatus,
    InvoiceStatus,
    QuoteStatus,
    credit_note_transitions,
    invoice_transitions,
    quote_transitions,
)
from billing_kernel.exceptions import (
    AuthorizationDeniedError,
    BillingKernelError,
    InvalidStatusTransitionError,
    SessionExpiredError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_services.api_client import BillingApiClient
from billing_services.document_cache import DocumentCache
from billing_services.observability import log_authorization_denied
from billing_services.session import SessionContext

logger = get_logger("services.document_actions")

_Check = Callable[[Any, Any], bool]

_CAN_DELETE: dict[DocumentType, _Check] = {
    DocumentType.INVOICE: can_delete_invoice,
    DocumentType.QUOTE: can_delete_quote,
    DocumentType.CREDIT_NOTE: can_delete_credit_note,
}

_CAN_SUBMIT: dict[DocumentType, _Check] = {
    DocumentType.INVOICE: can_submit_invoice,
    DocumentType.CREDIT_NOTE: can_submit_credit_note,
}

_CAN_CHANGE_STATUS: dict[DocumentType, _Check] = {
    DocumentType.INVOICE: can_change_invoice_status,
    DocumentType.QUOTE: can_change_quote_status,
    DocumentType.CREDIT_NOTE: can_change_credit_note_status,
}

_TRANSITIONS: dict[DocumentType, Callable[[Any, Any], frozenset]] = {
    DocumentType.INVOICE: invoice_transitions,
    DocumentType.QUOTE: quote_transitions,
    DocumentType.CREDIT_NOTE: credit_note_transitions,
}

_AWAITING_CLEARANCE = {
    DocumentType.INVOICE: InvoiceStatus.AWAITING_CLEARANCE,
    DocumentType.CREDIT_NOTE: CreditNoteStatus.AWAITING_CLEARANCE,
}

_DRAFT = {
    DocumentType.INVOICE: InvoiceStatus.DRAFT,
    DocumentType.QUOTE: QuoteStatus.DRAFT,
    DocumentType.CREDIT_NOTE: CreditNoteStatus.DRAFT,
}


class DocumentActionService:
    """Permission-gated actions over the three document caches."""

    def __init__(
        self,
        session: SessionContext,
        api: BillingApiClient,
        invoices: DocumentCache | None = None,
        quotes: DocumentCache | None = None,
        credit_notes: DocumentCache | None = None,
    ) -> None:
        self._session = session
        self._api = api
        self._caches = {
            DocumentType.INVOICE: invoices or DocumentCache(DocumentType.INVOICE),
            DocumentType.QUOTE: quotes or DocumentCache(DocumentType.QUOTE),
            DocumentType.CREDIT_NOTE: credit_notes or DocumentCache(DocumentType.CREDIT_NOTE),
        }

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def api(self) -> BillingApiClient:
        return self._api

    def cache(self, document_type: DocumentType) -> DocumentCache:
        return self._caches[document_type]

    # -- guards ------------------------------------------------------------

    def _authorize(
        self,
        action: str,
        document_type: DocumentType,
        document_id: Hashable,
        check: _Check | None,
    ) -> Document:
        document = self._caches[document_type].require(document_id)
        role = self._session.role
        if check is None or not check(role, document.status):
            log_authorization_denied(
                action=action,
                role=role.value,
                status=document.status.name,
                document_type=document_type.value,
                document_id=str(document_id),
            )
            raise AuthorizationDeniedError(
                action, role, document.status, document_type.value, document_id
            )
        return document

    def _bind(self, operation: str, document_type: DocumentType, document_id: Any = None):
        return LogContext.bind(
            correlation_id=LogContext.get("correlation_id") or uuid4().hex,
            actor_role=self._session.role.value,
            operation=operation,
            document_type=document_type.value,
            document_id=document_id,
        )

    def _is_current(
        self, document_type: DocumentType, document_id: Hashable, generation: int
    ) -> bool:
        """False when the cache was reset, or the document dropped, mid-request."""
        cache = self._caches[document_type]
        if cache.generation == generation and document_id in cache:
            return True
        logger.info(
            "document_result_stale",
            extra={"started_generation": generation, "current_generation": cache.generation},
        )
        return False

    # -- refresh -----------------------------------------------------------

    async def refresh(self, document_type: DocumentType) -> list[Document]:
        """Re-fetch the full list; overwrites every optimistic value."""
        documents = await self._api.list_documents(document_type)
        self._caches[document_type].replace_all(documents)
        return documents

    async def refresh_invoices(self) -> list[Document]:
        return await self.refresh(DocumentType.INVOICE)

    async def refresh_quotes(self) -> list[Document]:
        return await self.refresh(DocumentType.QUOTE)

    async def refresh_credit_notes(self) -> list[Document]:
        return await self.refresh(DocumentType.CREDIT_NOTE)

    async def refresh_after_write(self, document_type: DocumentType) -> None:
        """Refresh following a successful write; re-fetch failures are logged."""
        # The write already succeeded; a failed re-fetch leaves the dirty
        # optimistic entry in place until the next refresh.
        try:
            await self.refresh(document_type)
        except SessionExpiredError:
            raise
        except BillingKernelError as exc:
            logger.warning(
                "document_refresh_failed",
                extra={
                    "document_type": document_type.value,
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )

    # -- submit ------------------------------------------------------------

    async def submit(
        self,
        document_type: DocumentType,
        document_id: Hashable,
        *,
        refresh: bool = True,
    ) -> Document:
        """Submit an invoice or credit note for clearance (Ready -> AwaitingClearance).

        Returns the updated local copy, or the pre-submit copy when the view
        was left before the server answered.
        """
        with self._bind("submit", document_type, document_id):
            document = self._authorize(
                "submit", document_type, document_id, _CAN_SUBMIT.get(document_type)
            )
            cache = self._caches[document_type]
            generation = cache.generation
            submission_id = await self._api.submit_document(document_type, document_id)
            logger.info(
                "document_submitted",
                extra={"has_submission_id": submission_id is not None},
            )
            if not self._is_current(document_type, document_id, generation):
                return document
            cache.apply_optimistic(
                document_id,
                status=_AWAITING_CLEARANCE[document_type],
                dgi_submission_id=submission_id or document.dgi_submission_id,
                dgi_rejection_reason=None,
            )
            if refresh:
                await self.refresh_after_write(document_type)
            return cache.get(document_id) or document

    async def submit_invoice(self, invoice_id: Hashable, *, refresh: bool = True) -> Document:
        return await self.submit(DocumentType.INVOICE, invoice_id, refresh=refresh)

    async def submit_credit_note(self, credit_note_id: Hashable, *, refresh: bool = True) -> Document:
        return await self.submit(DocumentType.CREDIT_NOTE, credit_note_id, refresh=refresh)

    async def send_quote(self, quote_id: Hashable) -> Document:
        """Draft -> Sent."""
        with self._bind("send", DocumentType.QUOTE, quote_id):
            document = self._authorize("send", DocumentType.QUOTE, quote_id, can_send_quote)
            generation = self._caches[DocumentType.QUOTE].generation
            await self._api.submit_document(DocumentType.QUOTE, quote_id)
            logger.info("quote_sent")
            if not self._is_current(DocumentType.QUOTE, quote_id, generation):
                return document
            return self._caches[DocumentType.QUOTE].apply_optimistic(
                quote_id, status=QuoteStatus.SENT
            )

    # -- delete ------------------------------------------------------------

    async def delete(self, document_type: DocumentType, document_id: Hashable) -> None:
        with self._bind("delete", document_type, document_id):
            self._authorize("delete", document_type, document_id, _CAN_DELETE[document_type])
            generation = self._caches[document_type].generation
            await self._api.delete_document(document_type, document_id)
            logger.info("document_deleted")
            if self._is_current(document_type, document_id, generation):
                self._caches[document_type].remove(document_id)

    async def delete_invoice(self, invoice_id: Hashable) -> None:
        await self.delete(DocumentType.INVOICE, invoice_id)

    async def delete_quote(self, quote_id: Hashable) -> None:
        await self.delete(DocumentType.QUOTE, quote_id)

    async def delete_credit_note(self, credit_note_id: Hashable) -> None:
        await self.delete(DocumentType.CREDIT_NOTE, credit_note_id)

    # -- status changes ----------------------------------------------------

    async def change_status(
        self,
        document_type: DocumentType,
        document_id: Hashable,
        target: Any,
    ) -> Document:
        """Move a document to ``target`` through the transition table."""
        with self._bind("change_status", document_type, document_id):
            cache = self._caches[document_type]
            document = cache.require(document_id)
            if target == document.status:
                return document

            self._authorize(
                "change status of",
                document_type,
                document_id,
                _CAN_CHANGE_STATUS[document_type],
            )
            role = self._session.role
            if target not in _TRANSITIONS[document_type](role, document.status):
                raise InvalidStatusTransitionError(
                    document_type.value, document.status, target, role
                )

            generation = cache.generation
            await self._api.update_status(document_type, document_id, target)
            logger.info(
                "document_status_changed",
                extra={"from_status": document.status.name, "to_status": target.name},
            )
            if not self._is_current(document_type, document_id, generation):
                return document
            changes: dict[str, Any] = {"status": target}
            if document_type is not DocumentType.QUOTE and target == _DRAFT[document_type]:
                changes.update(dgi_submission_id=None, dgi_rejection_reason=None)
            return cache.apply_optimistic(document_id, **changes)

    async def change_invoice_status(self, invoice_id: Hashable, target: InvoiceStatus) -> Document:
        return await self.change_status(DocumentType.INVOICE, invoice_id, target)

    async def change_quote_status(self, quote_id: Hashable, target: QuoteStatus) -> Document:
        return await self.change_status(DocumentType.QUOTE, quote_id, target)

    async def change_credit_note_status(
        self, credit_note_id: Hashable, target: CreditNoteStatus
    ) -> Document:
        return await self.change_status(DocumentType.CREDIT_NOTE, credit_note_id, target)

    async def revert_invoice_to_draft(self, invoice_id: Hashable) -> Document:
        """Recovery path for a Rejected invoice: back to Draft for correction."""
        return await self.change_status(DocumentType.INVOICE, invoice_id, InvoiceStatus.DRAFT)

    # -- quote conversion --------------------------------------------------

    async def convert_quote_to_invoice(self, quote_id: Hashable) -> Any:
        """Accepted -> Converted.  Returns the new invoice id when provided."""
        with self._bind("convert", DocumentType.QUOTE, quote_id):
            self._authorize(
                "convert", DocumentType.QUOTE, quote_id, can_convert_quote_to_invoice
            )
            generation = self._caches[DocumentType.QUOTE].generation
            invoice_id = await self._api.convert_quote_to_invoice(quote_id)
            logger.info(
                "quote_converted",
                extra={"invoice_id": str(invoice_id) if invoice_id is not None else None},
            )
            if self._is_current(DocumentType.QUOTE, quote_id, generation):
                self._caches[DocumentType.QUOTE].apply_optimistic(
                    quote_id, status=QuoteStatus.CONVERTED
                )
            return invoice_id
