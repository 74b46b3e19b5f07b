"""Workflow domain exceptions.

Raised by the Service Layer when a transition request cannot proceed.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.  Per-item failures inside a bulk request are
never raised: they are reported as ``SkippedItem`` values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from modules.workflow.dtos import SkippedItem
    from modules.workflow.validator import DenialReason


class WorkflowError(Exception):
    """Base class; ``code`` is the machine-readable error kind."""

    code = "workflow_error"


class Forbidden(WorkflowError):
    """The actor lacks the base or super-action permission."""

    code = "forbidden"


class UnknownStatus(WorkflowError):
    """The target status key does not exist or is inactive."""

    code = "unknown_status"


class ItemNotFound(WorkflowError):
    """The order item does not exist."""

    code = "item_not_found"


class NoValidItems(WorkflowError):
    """None of the requested ids refer to an existing item."""

    code = "no_valid_items"


class NoItemsTransitionable(WorkflowError):
    """Every requested item was skipped; nothing was written."""

    code = "no_items_transitionable"

    def __init__(self, message: str, skipped: Sequence[SkippedItem]) -> None:
        super().__init__(message)
        self.skipped: List[SkippedItem] = list(skipped)


class InvalidTransition(WorkflowError):
    """The validator denied the move for this item."""

    code = "invalid_transition"

    def __init__(self, message: str, reason: Optional[DenialReason] = None) -> None:
        super().__init__(message)
        self.reason = reason


class MissingTrackingIdentifier(WorkflowError):
    """The rule requires a tracking number and none is available."""

    code = "missing_tracking_identifier"


class ConcurrentModification(WorkflowError):
    """The item's status changed between read and write."""

    code = "concurrent_modification"


class PersistenceFailure(WorkflowError):
    """Unexpected storage error; the whole write was rolled back."""

    code = "persistence_failure"
