"""
Reconciliation of desired state against the machine.

For a list of desired items and a mode, queries each item's actual state
through a backend and applies only the operations needed to close the gap.
Items are processed one at a time in list order. A failing operation is
recorded on its item and reconciliation moves on to the next item; only a
failed precondition aborts the whole run, before anything is changed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable

from .common import vlog
from .items import ABSENT, MODES, PRESENT, REFRESH, DesiredItem, Operation
from .logging_config import get_logger


# Outcome statuses
APPLIED = "applied"
SKIPPED = "skipped"
FAILED = "failed"
PLANNED = "planned"


class ReconcileError(Exception):
    """
    Base exception for reconciliation errors.

    Attributes:
        message: Human-readable error message
        remediation: Suggested fix for the error
    """
    def __init__(self, message: str, remediation: str | None = None):
        self.message = message
        self.remediation = remediation
        super().__init__(message)


class PreconditionError(ReconcileError):
    """Required state is missing; nothing was changed."""


class OperationError(ReconcileError):
    """
    An operation failed to apply.

    Attributes:
        result: StepResult of the failing command, if a command was run
    """
    def __init__(self, message: str, result=None, remediation: str | None = None):
        super().__init__(message, remediation)
        self.result = result


@dataclass(frozen=True)
class ItemOutcome:
    """
    Outcome for a single desired item.

    Attributes:
        item: The desired item
        status: 'applied', 'skipped', 'failed' or 'planned'
        operation: Operation that was (or would be) applied, if any
        reason: Why the item was skipped or failed
        duration_seconds: Time spent on the item
    """
    item: DesiredItem
    status: str
    operation: Operation | None = None
    reason: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "item": self.item.to_dict(),
            "status": self.status,
            "operation": self.operation.kind if self.operation else None,
            "reason": self.reason,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class Report:
    """
    Result of one reconciliation call.

    Attributes:
        backend: Name of the backend that was used
        mode: Reconciliation mode
        outcomes: One outcome per item, in input order
        dry_run: Whether operations were only planned
        duration_seconds: Total execution time
    """
    backend: str
    mode: str
    outcomes: tuple[ItemOutcome, ...]
    dry_run: bool = False
    duration_seconds: float = 0.0

    def _with_status(self, status: str) -> tuple[ItemOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status == status)

    @property
    def applied(self) -> tuple[ItemOutcome, ...]:
        return self._with_status(APPLIED)

    @property
    def skipped(self) -> tuple[ItemOutcome, ...]:
        return self._with_status(SKIPPED)

    @property
    def failed(self) -> tuple[ItemOutcome, ...]:
        return self._with_status(FAILED)

    @property
    def planned(self) -> tuple[ItemOutcome, ...]:
        return self._with_status(PLANNED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "backend": self.backend,
            "mode": self.mode,
            "dry_run": self.dry_run,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "duration_seconds": self.duration_seconds,
        }

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"{self.backend} ({self.mode}): "
            f"{len(self.applied)} applied, {len(self.skipped)} skipped, "
            f"{len(self.failed)} failed"
            + (f", {len(self.planned)} planned" if self.dry_run else "")
        )


def _skip_reason(mode: str, present: bool) -> str:
    if mode == PRESENT:
        return "already present"
    if not present:
        return "not present"
    return "nothing to refresh"


def _reconcile_item(
    item: DesiredItem,
    mode: str,
    backend,
    dry_run: bool,
    verbose: bool,
) -> ItemOutcome:
    logger = get_logger()
    start_time = time.time()

    try:
        present = backend.is_present(item, mode)
    except Exception as e:
        logger.warning(f"Could not determine state of {item}: {e}")
        return ItemOutcome(
            item=item,
            status=FAILED,
            reason=f"state query failed: {e}",
            duration_seconds=time.time() - start_time,
        )

    operation = None
    if mode == PRESENT and not present:
        operation = backend.operation_for(item, PRESENT)
    elif mode == ABSENT and present:
        operation = backend.operation_for(item, ABSENT)
    elif mode == REFRESH and present:
        operation = backend.operation_for(item, REFRESH)

    if operation is None:
        reason = _skip_reason(mode, present)
        vlog(f"{item.kind.capitalize()}: {item.identifier} {reason}", verbose)
        return ItemOutcome(
            item=item,
            status=SKIPPED,
            reason=reason,
            duration_seconds=time.time() - start_time,
        )

    if dry_run:
        vlog(f"Would {operation}", verbose)
        return ItemOutcome(item=item, status=PLANNED, operation=operation)

    vlog(f"{operation.kind.capitalize()}: {item.identifier}", verbose)
    try:
        backend.apply(operation)
    except Exception as e:
        logger.warning(f"{operation} failed: {e}")
        return ItemOutcome(
            item=item,
            status=FAILED,
            operation=operation,
            reason=str(e),
            duration_seconds=time.time() - start_time,
        )

    logger.debug(f"Applied {operation}")
    return ItemOutcome(
        item=item,
        status=APPLIED,
        operation=operation,
        duration_seconds=time.time() - start_time,
    )


def reconcile(
    items: Iterable[DesiredItem],
    mode: str,
    backend,
    dry_run: bool = False,
    verbose: bool = False,
) -> Report:
    """
    Bring the items into the requested state.

    Args:
        items: Desired items, processed in order
        mode: 'present', 'absent' or 'refresh'
        backend: Backend that queries and mutates the items
        dry_run: Only plan operations, do not apply them
        verbose: Enable verbose logging

    Returns:
        Report with one outcome per item

    Raises:
        ValueError: If the mode is unknown or an item kind is not handled by the backend
        PreconditionError: If required state is missing (no operation was applied)
    """
    if mode not in MODES:
        raise ValueError(f"Invalid mode: {mode}. Must be one of: {', '.join(MODES)}")

    items = list(items)
    for item in items:
        if item.kind not in backend.kinds:
            raise ValueError(f"Backend {backend.name} cannot handle {item.kind} items ({item.identifier})")

    start_time = time.time()
    backend.check_preconditions(items, mode)

    outcomes = tuple(
        _reconcile_item(item, mode, backend, dry_run, verbose)
        for item in items
    )

    report = Report(
        backend=backend.name,
        mode=mode,
        outcomes=outcomes,
        dry_run=dry_run,
        duration_seconds=time.time() - start_time,
    )
    vlog(report.summary(), verbose)
    return report


def plan_operations(
    items: Iterable[DesiredItem],
    mode: str,
    backend,
    verbose: bool = False,
) -> list[Operation]:
    """
    Compute the operations `reconcile` would apply, without applying them.

    Raises:
        ValueError: If the mode is unknown or an item kind is not handled by the backend
        PreconditionError: If required state is missing
    """
    report = reconcile(items, mode, backend, dry_run=True, verbose=verbose)
    return [o.operation for o in report.planned if o.operation is not None]
