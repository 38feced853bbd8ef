"""
billing_services -- Package init and public API.

Responsibility:
    Imperative shell around the pure billing kernel: the session context,
    the HTTP client for the remote billing API, the local document caches,
    and the services that gate, execute and reconcile user actions.  This
    is the **only** layer that performs network I/O.

Architecture position:
    Services -- stateful orchestration over config + kernel.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        billing_services/ -> billing_config/  (allowed)
        billing_services/ -> billing_kernel/  (allowed)
        billing_kernel/   -> billing_services/ (FORBIDDEN)
        billing_kernel/   -> billing_config/   (FORBIDDEN)

Invariants enforced:
    - Role and token travel in an explicit SessionContext; nothing reads
      them from ambient global state.
    - Every action is checked by the kernel permission engine before any
      request is sent.

Failure modes:
    - SessionExpiredError whenever the remote API answers 401; callers must
      re-authenticate.
"""

from billing_services.api_client import BillingApiClient
from billing_services.bulk_executor import BulkActionExecutor, BulkResult
from billing_services.clearance_poller import ClearancePoller, ClearanceTransition
from billing_services.document_actions import DocumentActionService
from billing_services.document_cache import DocumentCache
from billing_services.session import SessionContext

__all__ = [
    "BillingApiClient",
    "BulkActionExecutor",
    "BulkResult",
    "ClearancePoller",
    "ClearanceTransition",
    "DocumentActionService",
    "DocumentCache",
    "SessionContext",
]
