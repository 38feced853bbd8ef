"""
Observability hooks for document actions, clearance checks and bulk runs.

Emits structured log events for metrics and dashboards:
- Clearance: clearance_checked (one per completed check, with outcome).
- Bulk: bulk_completed (attempted / succeeded / failed counts).
- Guards: authorization_denied (action refused before any network call).

All events use a consistent ``observability_event`` field and stable extra
fields so log aggregators can parse them and build metrics.

Usage:
    from billing_services.observability import (
        log_clearance_checked,
        log_bulk_completed,
        log_authorization_denied,
    )
    log_clearance_checked(document_type="invoice", document_id="42", outcome="validated")
    log_bulk_completed(operation="delete", document_type="quote", attempted=3, succeeded=3, failed=0)
    log_authorization_denied(action="submit", role="Clerk", status="READY")
"""

from __future__ import annotations

from typing import Any

from billing_kernel.logging_config import get_logger

logger = get_logger("services.observability")

# Standard event names for filtering in log pipelines
EVENT_CLEARANCE_CHECKED = "clearance_checked"
EVENT_BULK_COMPLETED = "bulk_completed"
EVENT_AUTHORIZATION_DENIED = "authorization_denied"


def log_clearance_checked(
    *,
    document_type: str,
    document_id: str,
    outcome: str,
    applied: bool = False,
    stale: bool = False,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """
    Log when an on-demand clearance check finished.

    ``outcome`` is a ClearanceOutcome value; ``applied`` tells whether the
    local copy was updated.
    """
    payload: dict[str, Any] = {
        "observability_event": EVENT_CLEARANCE_CHECKED,
        "document_type": document_type,
        "document_id": document_id,
        "outcome": outcome,
        "applied": applied,
        **extra,
    }
    if stale:
        payload["stale"] = True
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    logger.info("clearance_checked", extra=payload)


def log_bulk_completed(
    *,
    operation: str,
    document_type: str | None,
    attempted: int,
    succeeded: int,
    failed: int,
    aborted: int = 0,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Log the aggregate result of a confirmed bulk operation."""
    payload: dict[str, Any] = {
        "observability_event": EVENT_BULK_COMPLETED,
        "operation": operation,
        "document_type": document_type,
        "attempted": attempted,
        "succeeded": succeeded,
        "failed": failed,
        **extra,
    }
    if aborted:
        payload["aborted"] = aborted
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    level = logger.warning if failed or aborted else logger.info
    level("bulk_completed", extra=payload)


def log_authorization_denied(
    *,
    action: str,
    role: str,
    status: str,
    document_type: str | None = None,
    document_id: str | None = None,
    **extra: Any,
) -> None:
    """
    Log when the permission engine refused an action.

    Nothing was sent to the remote API.
    """
    payload: dict[str, Any] = {
        "observability_event": EVENT_AUTHORIZATION_DENIED,
        "action": action,
        "role": role,
        "status": status,
        **extra,
    }
    if document_type is not None:
        payload["document_type"] = document_type
    if document_id is not None:
        payload["document_id"] = document_id
    logger.warning("authorization_denied", extra=payload)
