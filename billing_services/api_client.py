"""
billing_services.api_client -- Remote billing API client.

Responsibility:
    Thin async client over the remote REST API.  Renders endpoint paths from
    configuration, attaches the session's bearer token, unwraps the
    ``{succeeded, message, errors, data}`` envelope and converts wire
    payloads into kernel value objects at the serialization boundary.

Architecture position:
    Services layer -- the only module that performs HTTP I/O.  Uses
    ``httpx.AsyncClient``; tests inject ``httpx.MockTransport``.

Invariants enforced:
    - Raw status integers/strings are parsed into status enums here and
      nowhere else.
    - HTTP 401 invalidates the session and raises SessionExpiredError; the
      call is never retried.
    - No permission logic: callers gate actions before calling.

Failure modes:
    - SessionExpiredError: 401, or the session was already invalidated (no
      request is sent).
    - TransportFailureError: connection errors and timeouts.
    - RemoteOperationError: non-2xx status or ``succeeded: false``.
    - UnknownStatusValueError / UnknownClearanceStatusError: payload carries
      a status outside the closed sets.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

import httpx

from billing_config.schema import ClientConfig
from billing_kernel.domain.clearance import ClearanceReport, parse_clearance_report
from billing_kernel.domain.documents import (
    CreditNote,
    Document,
    DocumentType,
    Invoice,
    Quote,
)
from billing_kernel.domain.status import (
    CreditNoteStatus,
    InvoiceStatus,
    QuoteStatus,
    credit_note_status_from_wire,
    invoice_status_from_wire,
    quote_status_from_wire,
)
from billing_kernel.exceptions import (
    RemoteOperationError,
    SessionExpiredError,
    TransportFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_services.session import SessionContext

logger = get_logger("services.api_client")

GENERIC_FAILURE_MESSAGE = "An error occurred"

# Endpoint-name prefix per document type (see billing_config.schema).
_ENDPOINT_PREFIX: dict[DocumentType, str] = {
    DocumentType.INVOICE: "invoices",
    DocumentType.QUOTE: "quotes",
    DocumentType.CREDIT_NOTE: "credit_notes",
}

_STATUS_ENDPOINT: dict[DocumentType, str] = {
    DocumentType.INVOICE: "invoices.update",
    DocumentType.QUOTE: "quotes.update_status",
    DocumentType.CREDIT_NOTE: "credit_notes.update",
}

# Keys under which list endpoints may nest their items.
_LIST_KEYS: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.INVOICE: ("invoices", "items"),
    DocumentType.QUOTE: ("quotes", "items"),
    DocumentType.CREDIT_NOTE: ("creditNotes", "items"),
}


# ---------------------------------------------------------------------------
# Payload conversion
# ---------------------------------------------------------------------------


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def invoice_from_payload(payload: Mapping[str, Any]) -> Invoice:
    return Invoice(
        id=payload["id"],
        status=invoice_status_from_wire(payload.get("status")),
        number=payload.get("invoiceNumber"),
        total=_decimal_or_none(payload.get("total")),
        dgi_submission_id=payload.get("dgiSubmissionId") or None,
        dgi_rejection_reason=payload.get("dgiRejectionReason") or None,
    )


def credit_note_from_payload(payload: Mapping[str, Any]) -> CreditNote:
    return CreditNote(
        id=payload["id"],
        status=credit_note_status_from_wire(payload.get("status")),
        number=payload.get("creditNoteNumber"),
        total=_decimal_or_none(payload.get("total")),
        dgi_submission_id=payload.get("dgiSubmissionId") or None,
        dgi_rejection_reason=payload.get("dgiRejectionReason") or None,
    )


def quote_from_payload(payload: Mapping[str, Any]) -> Quote:
    return Quote(
        id=payload["id"],
        status=quote_status_from_wire(payload.get("status")),
        number=payload.get("quoteNumber"),
        total=_decimal_or_none(payload.get("total")),
    )


_FROM_PAYLOAD = {
    DocumentType.INVOICE: invoice_from_payload,
    DocumentType.QUOTE: quote_from_payload,
    DocumentType.CREDIT_NOTE: credit_note_from_payload,
}


def status_to_wire(status: Any) -> int | str:
    """Serialize a status enum for a request body."""
    if isinstance(status, QuoteStatus):
        return status.value
    return int(status)


def _error_strings(errors: Any) -> list[str]:
    if not errors:
        return []
    if isinstance(errors, (str, bytes)):
        return [str(errors)]
    out: list[str] = []
    for e in errors:
        if isinstance(e, Mapping):
            msg = e.get("errorMessage") or e.get("message")
            out.append(str(msg) if msg else str(dict(e)))
        else:
            out.append(str(e))
    return out


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class BillingApiClient:
    """Async client for the billing REST API."""

    def __init__(
        self,
        session: SessionContext,
        config: ClientConfig,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = session
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=config.api.base_url,
            timeout=config.api.timeout_seconds,
            transport=transport,
        )

    @property
    def session(self) -> SessionContext:
        return self._session

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "BillingApiClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # -- transport ---------------------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        document_id: Any = None,
        json: Any = None,
    ) -> Any:
        """Send one request and return the envelope's ``data``."""
        path = self._config.endpoints.path(endpoint, document_id)
        token = self._session.require_active(path)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept-Language": self._config.api.accept_language,
        }
        try:
            response = await self._http.request(method, path, json=json, headers=headers)
        except httpx.TransportError as exc:
            detail = str(exc) or type(exc).__name__
            logger.warning(
                "api_transport_failure",
                extra={"method": method, "path": path, "detail": detail},
            )
            raise TransportFailureError(method, path, detail) from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            self._session.invalidate(reason=f"401 from {method} {path}")
            raise SessionExpiredError(path)

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None

        if isinstance(body, Mapping) and "succeeded" in body:
            succeeded = bool(body.get("succeeded")) and response.is_success
            data = body.get("data")
        else:
            succeeded = response.is_success and (body is not None or not response.content)
            data = body

        if not succeeded:
            message = GENERIC_FAILURE_MESSAGE
            errors: list[str] = []
            if isinstance(body, Mapping):
                message = str(body.get("message") or body.get("title") or message)
                errors = _error_strings(body.get("errors"))
            logger.info(
                "api_operation_failed",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "error_count": len(errors),
                },
            )
            raise RemoteOperationError(message, errors, response.status_code)

        logger.debug(
            "api_request_succeeded",
            extra={"method": method, "path": path, "status_code": response.status_code},
        )
        return data

    # -- documents ---------------------------------------------------------

    async def list_documents(self, document_type: DocumentType) -> list[Document]:
        """Fetch the full list (authoritative statuses)."""
        data = await self._request("GET", f"{_ENDPOINT_PREFIX[document_type]}.list")
        items: Any = data
        if isinstance(data, Mapping):
            items = next(
                (data[k] for k in _LIST_KEYS[document_type] if k in data),
                [],
            )
        convert = _FROM_PAYLOAD[document_type]
        try:
            return [convert(item) for item in items or []]
        except (KeyError, TypeError) as exc:
            raise RemoteOperationError(
                f"Malformed {document_type.value} list payload: {exc!r}"
            ) from exc

    async def delete_document(self, document_type: DocumentType, document_id: Any) -> None:
        await self._request(
            "DELETE", f"{_ENDPOINT_PREFIX[document_type]}.delete", document_id
        )

    async def update_status(
        self, document_type: DocumentType, document_id: Any, status: Any
    ) -> None:
        await self._request(
            "PUT",
            _STATUS_ENDPOINT[document_type],
            document_id,
            json={"status": status_to_wire(status)},
        )

    async def submit_document(self, document_type: DocumentType, document_id: Any) -> str | None:
        """Submit an invoice/credit note to the authority, or send a quote.

        Returns the authority submission id when the API provides one.
        """
        data = await self._request(
            "POST", f"{_ENDPOINT_PREFIX[document_type]}.submit", document_id
        )
        if isinstance(data, Mapping):
            return data.get("dgiSubmissionId") or None
        return None

    async def get_clearance_report(
        self, document_type: DocumentType, document_id: Any
    ) -> ClearanceReport:
        """``GET .../dgi-status`` parsed into a ClearanceReport."""
        if document_type is DocumentType.QUOTE:
            raise ValueError("Quotes have no clearance status")
        data = await self._request(
            "GET", f"{_ENDPOINT_PREFIX[document_type]}.dgi_status", document_id
        )
        return parse_clearance_report(data if isinstance(data, Mapping) else {}, document_id)

    async def convert_quote_to_invoice(self, quote_id: Any) -> Any:
        """Convert an accepted quote.  Returns the new invoice id if provided."""
        data = await self._request("POST", "quotes.convert", quote_id)
        if isinstance(data, Mapping):
            return data.get("invoiceId")
        return None

    # -- named endpoints ---------------------------------------------------

    async def list_invoices(self) -> list[Invoice]:
        return await self.list_documents(DocumentType.INVOICE)  # type: ignore[return-value]

    async def list_quotes(self) -> list[Quote]:
        return await self.list_documents(DocumentType.QUOTE)  # type: ignore[return-value]

    async def list_credit_notes(self) -> list[CreditNote]:
        return await self.list_documents(DocumentType.CREDIT_NOTE)  # type: ignore[return-value]

    async def submit_invoice(self, invoice_id: Any) -> str | None:
        return await self.submit_document(DocumentType.INVOICE, invoice_id)

    async def submit_credit_note(self, credit_note_id: Any) -> str | None:
        return await self.submit_document(DocumentType.CREDIT_NOTE, credit_note_id)

    async def send_quote(self, quote_id: Any) -> None:
        await self.submit_document(DocumentType.QUOTE, quote_id)

    async def get_invoice_clearance_status(self, invoice_id: Any) -> ClearanceReport:
        return await self.get_clearance_report(DocumentType.INVOICE, invoice_id)

    async def get_credit_note_clearance_status(self, credit_note_id: Any) -> ClearanceReport:
        return await self.get_clearance_report(DocumentType.CREDIT_NOTE, credit_note_id)

    async def delete_invoice(self, invoice_id: Any) -> None:
        await self.delete_document(DocumentType.INVOICE, invoice_id)

    async def delete_quote(self, quote_id: Any) -> None:
        await self.delete_document(DocumentType.QUOTE, quote_id)

    async def delete_credit_note(self, credit_note_id: Any) -> None:
        await self.delete_document(DocumentType.CREDIT_NOTE, credit_note_id)

    async def update_invoice_status(self, invoice_id: Any, status: InvoiceStatus) -> None:
        await self.update_status(DocumentType.INVOICE, invoice_id, status)

    async def update_quote_status(self, quote_id: Any, status: QuoteStatus) -> None:
        await self.update_status(DocumentType.QUOTE, quote_id, status)

    async def update_credit_note_status(self, credit_note_id: Any, status: CreditNoteStatus) -> None:
        await self.update_status(DocumentType.CREDIT_NOTE, credit_note_id, status)
