"""
BulkActionExecutor -- Confirmed fan-out of one operation over a selection.

Responsibility:
    Turns a multi-selection into a ``BulkPlan`` using fresh statuses, asks
    the caller to confirm the eligible count, issues one API call per
    eligible document and aggregates the outcome.

Architecture position:
    Services layer.  Eligibility comes from ``billing_kernel.domain.bulk``;
    each per-document call goes through ``DocumentActionService`` so the
    permission engine is consulted again at call time.

Invariants enforced:
    - An empty plan never calls ``confirm`` and never reaches the network.
    - A declined confirmation sends nothing.
    - Concurrency is bounded by ``BulkConfig.max_concurrency``.
    - Once the session expires the remaining documents are aborted, not
      retried.
    - The single post-batch refresh is skipped when the view was left
      (cache reset) while the batch ran.

Failure modes:
    - Per-document failures are collected in ``BulkResult.failed``;
      ``raise_for_failures()`` turns them into BulkOperationError.
    - Session expiry mid-batch is reported via ``BulkResult.aborted`` and
      re-raised as SessionExpiredError by ``raise_for_failures()``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Hashable, Iterable
from uuid import uuid4

from billing_config.schema import ClientConfig
from billing_kernel.domain.bulk import BulkOperation, BulkPlan, BulkSelection, plan_bulk
from billing_kernel.domain.documents import Document, DocumentType
from billing_kernel.exceptions import (
    BillingKernelError,
    BulkOperationError,
    SessionExpiredError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_services.document_actions import DocumentActionService
from billing_services.observability import log_bulk_completed

logger = get_logger("services.bulk_executor")


@dataclass(frozen=True)
class BulkResult:
    """Aggregate outcome of one bulk run."""

    operation: BulkOperation
    document_type: DocumentType | None
    succeeded: tuple[Hashable, ...] = ()
    failed: dict[Hashable, BillingKernelError] = field(default_factory=dict)
    aborted: tuple[Hashable, ...] = ()
    cancelled: bool = False
    session_error: SessionExpiredError | None = None

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.aborted)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.aborted

    def raise_for_failures(self) -> None:
        """Raise the aggregate error, if any.

        Raises:
            SessionExpiredError: the session expired mid-batch.
            BulkOperationError: one or more documents failed; carries the
                first failure as the representative error.
        """
        if self.session_error is not None:
            raise self.session_error
        if self.failed:
            representative = next(iter(self.failed.values()))
            raise BulkOperationError(
                self.operation.value,
                representative,
                len(self.failed),
                self.attempted,
            )


class BulkActionExecutor:
    """Runs bulk delete / submit over the eligible subset of a selection."""

    def __init__(self, actions: DocumentActionService, config: ClientConfig) -> None:
        self._actions = actions
        self._max_concurrency = config.bulk.max_concurrency

    def prepare(self, documents: Iterable[Document], operation: BulkOperation) -> BulkPlan:
        """Plan ``operation`` for the current role over ``documents``."""
        return plan_bulk(self._actions.session.role, documents, operation)

    def prepare_selection(
        self,
        selection: BulkSelection,
        document_type: DocumentType,
        operation: BulkOperation,
    ) -> BulkPlan:
        """Plan ``operation`` over a selection using the cached statuses."""
        return selection.plan(operation, self._actions.cache(document_type).documents())

    async def _run_one(self, plan: BulkPlan, document_id: Hashable) -> None:
        document_type = plan.document_type
        if plan.operation is BulkOperation.DELETE:
            await self._actions.delete(document_type, document_id)
        elif document_type is DocumentType.QUOTE:
            await self._actions.send_quote(document_id)
        else:
            await self._actions.submit(document_type, document_id, refresh=False)

    async def execute(
        self,
        plan: BulkPlan,
        confirm: Callable[[int], bool],
    ) -> BulkResult:
        """Confirm and execute ``plan``.

        ``confirm`` receives the eligible count and returns whether to
        proceed.
        """
        if plan.is_empty:
            logger.info(
                "bulk_nothing_eligible",
                extra={"operation": plan.operation.value, "excluded": len(plan.excluded_ids)},
            )
            return BulkResult(operation=plan.operation, document_type=plan.document_type)

        if not confirm(plan.count):
            logger.info(
                "bulk_cancelled",
                extra={"operation": plan.operation.value, "eligible": plan.count},
            )
            return BulkResult(
                operation=plan.operation,
                document_type=plan.document_type,
                cancelled=True,
            )

        semaphore = asyncio.Semaphore(self._max_concurrency)
        succeeded: list[Hashable] = []
        failed: dict[Hashable, BillingKernelError] = {}
        aborted: list[Hashable] = []
        session_error: list[SessionExpiredError] = []

        async def guarded(document_id: Hashable) -> None:
            async with semaphore:
                if session_error:
                    aborted.append(document_id)
                    return
                try:
                    await self._run_one(plan, document_id)
                except SessionExpiredError as exc:
                    session_error.append(exc)
                    aborted.append(document_id)
                except BillingKernelError as exc:
                    failed[document_id] = exc
                else:
                    succeeded.append(document_id)

        # One correlation id for the whole run; per-document actions inherit it.
        with LogContext.bind(correlation_id=uuid4().hex):
            cache = self._actions.cache(plan.document_type) if plan.document_type else None
            generation = cache.generation if cache is not None else None
            started = time.perf_counter()
            await asyncio.gather(*(guarded(i) for i in plan.eligible_ids))

            if (
                succeeded
                and not session_error
                and cache is not None
                and cache.generation == generation
            ):
                await self._actions.refresh_after_write(plan.document_type)

            order = {i: n for n, i in enumerate(plan.eligible_ids)}
            result = BulkResult(
                operation=plan.operation,
                document_type=plan.document_type,
                succeeded=tuple(sorted(succeeded, key=order.__getitem__)),
                failed={i: failed[i] for i in sorted(failed, key=order.__getitem__)},
                aborted=tuple(sorted(aborted, key=order.__getitem__)),
                session_error=session_error[0] if session_error else None,
            )
            log_bulk_completed(
                operation=plan.operation.value,
                document_type=plan.document_type.value if plan.document_type else None,
                attempted=result.attempted,
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                aborted=len(result.aborted),
                duration_ms=(time.perf_counter() - started) * 1000,
            )
            return result
