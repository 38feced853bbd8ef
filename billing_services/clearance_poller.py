"""
ClearancePoller -- On-demand tax-authority clearance checks.

Responsibility:
    Runs one user-triggered ``GET .../dgi-status`` for a document in
    AwaitingClearance, reconciles the local copy on a terminal answer and
    reports the outcome.  There is no background loop: each call to
    ``check()`` makes at most one request.

Architecture position:
    Services layer.  Parsing and the per-document check state machine live
    in ``billing_kernel.domain.clearance``; this module drives them.

Invariants enforced:
    - At most one check per document is in flight.  A second request for
      the same document while one is pending is ignored and reported as
      ``ClearanceOutcome.IGNORED_IN_FLIGHT``; it sends nothing.
    - Only Validated and Rejected answers touch the cache.  A rejection is
      applied with a non-empty reason.
    - A response that arrives after the cache was reset (view left) is
      reported as stale and not applied.
    - State moves follow ``CLEARANCE_TRANSITIONS``; every move is recorded.
      Each check records its resolved or failed state and then returns to
      IDLE, so ``state_of`` reports IDLE once ``check()`` has returned.

Failure modes:
    - AuthorizationDeniedError: role/status does not permit a check.
    - DocumentNotFoundError: id not in the cache.
    - SessionExpiredError: propagated after FAILED is recorded and the
      state is back at IDLE.
    - Transport failures, remote failures and unknown status values are
      returned as FAILED / UNKNOWN_STATUS results, not raised.  A
      transport or remote failure carries the generic ``MESSAGE_CHECK_FAILED``;
      the detail goes to the log.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Hashable
from uuid import uuid4

from billing_kernel.domain.clearance import (
    OUTCOME_TO_STATE,
    AuthorityStatus,
    ClearanceCheckResult,
    ClearanceOutcome,
    ClearanceReport,
    ClearanceState,
    build_rejection_reason,
    is_valid_clearance_transition,
)
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.documents import DocumentType
from billing_kernel.domain.permissions import (
    can_check_credit_note_clearance,
    can_check_invoice_clearance,
)
from billing_kernel.domain.status import CreditNoteStatus, InvoiceStatus
from billing_kernel.exceptions import (
    AuthorizationDeniedError,
    RemoteOperationError,
    SessionExpiredError,
    TransportFailureError,
    UnknownClearanceStatusError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_services.api_client import BillingApiClient
from billing_services.document_cache import DocumentCache
from billing_services.observability import (
    log_authorization_denied,
    log_clearance_checked,
)
from billing_services.session import SessionContext

logger = get_logger("services.clearance_poller")

MESSAGE_IN_FLIGHT = "Clearance check already in progress"
MESSAGE_STILL_PENDING = "Still pending validation"
MESSAGE_VALIDATED = "Validated"
MESSAGE_REJECTED = "Rejected"
MESSAGE_CHECK_FAILED = "Error checking clearance status"

_CAN_CHECK: dict[DocumentType, Callable[[Any, Any], bool]] = {
    DocumentType.INVOICE: can_check_invoice_clearance,
    DocumentType.CREDIT_NOTE: can_check_credit_note_clearance,
}

_VALIDATED = {
    DocumentType.INVOICE: InvoiceStatus.VALIDATED,
    DocumentType.CREDIT_NOTE: CreditNoteStatus.VALIDATED,
}

_REJECTED = {
    DocumentType.INVOICE: InvoiceStatus.REJECTED,
    DocumentType.CREDIT_NOTE: CreditNoteStatus.REJECTED,
}


@dataclass(frozen=True)
class ClearanceTransition:
    """One recorded move of the per-document check state."""

    document_id: Hashable
    from_state: ClearanceState
    to_state: ClearanceState
    at: datetime


class ClearancePoller:
    """One-shot clearance checks for invoices or credit notes."""

    def __init__(
        self,
        session: SessionContext,
        api: BillingApiClient,
        cache: DocumentCache,
        clock: Clock | None = None,
    ) -> None:
        if cache.document_type not in _CAN_CHECK:
            raise ValueError(
                f"{cache.document_type.value} documents are not cleared by the tax authority"
            )
        self._session = session
        self._api = api
        self._cache = cache
        self._clock = clock or SystemClock()
        self._states: dict[Hashable, ClearanceState] = {}
        self._in_flight: set[Hashable] = set()
        self._history: list[ClearanceTransition] = []

    @property
    def document_type(self) -> DocumentType:
        return self._cache.document_type

    @property
    def history(self) -> list[ClearanceTransition]:
        return list(self._history)

    def state_of(self, document_id: Hashable) -> ClearanceState:
        return self._states.get(document_id, ClearanceState.IDLE)

    def is_checking(self, document_id: Hashable) -> bool:
        return document_id in self._in_flight

    def _move(self, document_id: Hashable, target: ClearanceState) -> None:
        current = self.state_of(document_id)
        if not is_valid_clearance_transition(current, target):
            raise ValueError(
                f"Invalid clearance state transition {current.value} -> {target.value}"
            )
        self._states[document_id] = target
        self._history.append(
            ClearanceTransition(document_id, current, target, self._clock.now())
        )

    def _authorize(self, document_id: Hashable) -> None:
        document = self._cache.require(document_id)
        role = self._session.role
        if not _CAN_CHECK[self.document_type](role, document.status):
            log_authorization_denied(
                action="check clearance of",
                role=role.value,
                status=document.status.name,
                document_type=self.document_type.value,
                document_id=str(document_id),
            )
            raise AuthorizationDeniedError(
                "check clearance of",
                role,
                document.status,
                self.document_type.value,
                document_id,
            )

    @staticmethod
    def _interpret(report: ClearanceReport) -> tuple[ClearanceOutcome, str, str | None]:
        if report.status is AuthorityStatus.VALIDATED:
            return ClearanceOutcome.VALIDATED, MESSAGE_VALIDATED, None
        if report.status is AuthorityStatus.REJECTED:
            return (
                ClearanceOutcome.REJECTED,
                MESSAGE_REJECTED,
                build_rejection_reason(report.errors),
            )
        return ClearanceOutcome.STILL_PENDING, MESSAGE_STILL_PENDING, None

    def _settle(self, document_id: Hashable, resolved: ClearanceState) -> None:
        """Record the resolved/failed state, then return to IDLE."""
        self._move(document_id, resolved)
        self._move(document_id, ClearanceState.IDLE)

    async def check(self, document_id: Hashable) -> ClearanceCheckResult:
        """Check the authority status of one document once."""
        if document_id in self._in_flight:
            logger.info(
                "clearance_check_ignored",
                extra={"document_type": self.document_type.value, "document_id": str(document_id)},
            )
            return ClearanceCheckResult(
                document_id=document_id,
                outcome=ClearanceOutcome.IGNORED_IN_FLIGHT,
                message=MESSAGE_IN_FLIGHT,
            )

        self._authorize(document_id)

        with LogContext.bind(
            correlation_id=LogContext.get("correlation_id") or uuid4().hex,
            actor_role=self._session.role.value,
            operation="check_clearance",
            document_type=self.document_type.value,
            document_id=document_id,
        ):
            generation = self._cache.generation
            self._move(document_id, ClearanceState.CHECKING)
            self._in_flight.add(document_id)
            started = time.perf_counter()
            reason: str | None = None
            try:
                try:
                    report = await self._api.get_clearance_report(self.document_type, document_id)
                except UnknownClearanceStatusError as exc:
                    outcome, message = ClearanceOutcome.UNKNOWN_STATUS, str(exc)
                except (TransportFailureError, RemoteOperationError) as exc:
                    outcome, message = ClearanceOutcome.FAILED, MESSAGE_CHECK_FAILED
                    logger.warning(
                        "clearance_check_failed",
                        extra={"error_code": exc.code, "error": str(exc)},
                    )
                except SessionExpiredError:
                    self._settle(document_id, ClearanceState.FAILED)
                    raise
                else:
                    outcome, message, reason = self._interpret(report)
            finally:
                self._in_flight.discard(document_id)

            stale = self._cache.generation != generation or document_id not in self._cache
            applied = False
            if not stale and outcome is ClearanceOutcome.VALIDATED:
                self._cache.apply_optimistic(
                    document_id,
                    status=_VALIDATED[self.document_type],
                    dgi_rejection_reason=None,
                )
                applied = True
            elif not stale and outcome is ClearanceOutcome.REJECTED:
                self._cache.apply_optimistic(
                    document_id,
                    status=_REJECTED[self.document_type],
                    dgi_rejection_reason=reason,
                )
                applied = True

            self._settle(document_id, OUTCOME_TO_STATE[outcome])
            if stale:
                self._states.pop(document_id, None)

            result = ClearanceCheckResult(
                document_id=document_id,
                outcome=outcome,
                message=message,
                rejection_reason=reason,
                applied=applied,
                stale=stale,
                checked_at=self._clock.now(),
            )
            log_clearance_checked(
                document_type=self.document_type.value,
                document_id=str(document_id),
                outcome=outcome.value,
                applied=applied,
                stale=stale,
                duration_ms=(time.perf_counter() - started) * 1000,
            )
            return result
