"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI components, bulk executors, the clearance poller) must react to
failures by category, not by parsing messages:
  - an authorization denial is resolved locally and never reaches the API
  - a transport failure is retryable and leaves status unchanged
  - a session expiry clears the session and aborts, never retries

Every exception carries a CODE class attribute (machine-readable) and
structured attributes (not just a message string).

Example:
    try:
        await actions.submit_invoice(invoice_id)
    except AuthorizationDeniedError as e:
        disable_button(e.action)
    except SessionExpiredError:
        redirect_to_login()
    except TransportFailureError as e:
        show_retry(e.detail)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- AuthorizationError
    |   +-- AuthorizationDeniedError
    |   +-- UnknownRoleError
    |
    +-- StatusError
    |   +-- UnknownStatusValueError
    |   +-- InvalidStatusTransitionError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |
    +-- RemoteError
    |   +-- TransportFailureError
    |   +-- RemoteOperationError
    |   +-- SessionExpiredError
    |   +-- UnknownClearanceStatusError
    |
    +-- BulkError
        +-- BulkOperationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Authorization   | AUTHORIZATION_DENIED        | (role, status) does not permit action
                | UNKNOWN_ROLE                | Role value outside Admin/Manager/Clerk
----------------|-----------------------------|-----------------------------------------
Status          | UNKNOWN_STATUS_VALUE        | Wire status outside the closed set
                | INVALID_STATUS_TRANSITION   | Target not offered for (role, current)
----------------|-----------------------------|-----------------------------------------
Document        | DOCUMENT_NOT_FOUND          | Id not present in the local cache
----------------|-----------------------------|-----------------------------------------
Remote          | TRANSPORT_FAILURE           | Request could not complete
                | REMOTE_OPERATION_FAILED     | API answered with a failure envelope
                | SESSION_EXPIRED             | HTTP 401 or session already cleared
                | UNKNOWN_CLEARANCE_STATUS    | Authority status not recognised
----------------|-----------------------------|-----------------------------------------
Bulk            | BULK_OPERATION_FAILED       | One or more fan-out calls failed

A DGI rejection is NOT an error: it is a terminal business outcome and is
modelled as a successful clearance result carrying a reason string.
"""

from __future__ import annotations

from typing import Any


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Authorization


class AuthorizationError(BillingKernelError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class AuthorizationDeniedError(AuthorizationError):
    """The current role may not perform the action on a document in this status."""

    code: str = "AUTHORIZATION_DENIED"

    def __init__(
        self,
        action: str,
        role: Any,
        status: Any,
        document_type: str | None = None,
        document_id: Any = None,
    ):
        self.action = action
        self.role = str(getattr(role, "value", role))
        self.status = getattr(status, "name", str(status))
        self.document_type = document_type
        self.document_id = document_id
        target = f"{document_type} {document_id}" if document_type else "document"
        super().__init__(
            f"Role {self.role} may not {action} {target} in status {self.status}"
        )


class UnknownRoleError(AuthorizationError):
    """Role value received at the session boundary is not recognised."""

    code: str = "UNKNOWN_ROLE"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Unknown role: {value!r}")


# Status


class StatusError(BillingKernelError):
    """Base exception for status model errors."""

    code: str = "STATUS_ERROR"


class UnknownStatusValueError(StatusError):
    """Serialized status value is outside the closed status set."""

    code: str = "UNKNOWN_STATUS_VALUE"

    def __init__(self, document_type: str, value: Any):
        self.document_type = document_type
        self.value = value
        super().__init__(f"Unknown {document_type} status value: {value!r}")


class InvalidStatusTransitionError(StatusError):
    """Requested target status is not offered for (role, current status)."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, document_type: str, current: Any, target: Any, role: Any):
        self.document_type = document_type
        self.current = getattr(current, "name", str(current))
        self.target = getattr(target, "name", str(target))
        self.role = str(getattr(role, "value", role))
        super().__init__(
            f"Role {self.role} may not move {document_type} "
            f"from {self.current} to {self.target}"
        )


# Documents


class DocumentError(BillingKernelError):
    """Base exception for document lookup errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document id is not present in the local cache."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: Any):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type} not found: {document_id}")


# Remote API


class RemoteError(BillingKernelError):
    """Base exception for failures talking to the remote API."""

    code: str = "REMOTE_ERROR"


class TransportFailureError(RemoteError):
    """The request could not complete (network, timeout, bad payload).

    Retryable. Local status is left unchanged.
    """

    code: str = "TRANSPORT_FAILURE"

    def __init__(self, method: str, url: str, detail: str):
        self.method = method
        self.url = url
        self.detail = detail
        super().__init__(f"{method} {url} failed: {detail}")


class RemoteOperationError(RemoteError):
    """The API answered but reported the operation as failed."""

    code: str = "REMOTE_OPERATION_FAILED"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.status_code = status_code
        body = message
        if self.errors:
            body = "; ".join(self.errors)
        super().__init__(body)


class SessionExpiredError(RemoteError):
    """The session is no longer valid (HTTP 401). Never retried."""

    code: str = "SESSION_EXPIRED"

    def __init__(self, url: str | None = None):
        self.url = url
        if url:
            super().__init__(f"Session expired while calling {url}")
        else:
            super().__init__("Session expired")


class UnknownClearanceStatusError(RemoteError):
    """The tax authority reported a status this client does not recognise."""

    code: str = "UNKNOWN_CLEARANCE_STATUS"

    def __init__(self, status: Any, document_id: Any = None):
        self.status = status
        self.document_id = document_id
        super().__init__(f"Unknown DGI status received: {status}")


# Bulk operations


class BulkError(BillingKernelError):
    """Base exception for bulk operation errors."""

    code: str = "BULK_ERROR"


class BulkOperationError(BulkError):
    """One or more per-document calls of a bulk operation failed.

    Carries the first failure as the representative error and the number
    of affected documents.
    """

    code: str = "BULK_OPERATION_FAILED"

    def __init__(
        self,
        operation: str,
        representative_error: BaseException,
        failed_count: int,
        attempted_count: int,
    ):
        self.operation = operation
        self.representative_error = representative_error
        self.failed_count = failed_count
        self.attempted_count = attempted_count
        super().__init__(
            f"Bulk {operation} failed for {failed_count} of {attempted_count} "
            f"document(s): {representative_error}"
        )
