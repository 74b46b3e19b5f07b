"""Workflow DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``ItemTransitionDTO``: input for a single-item transition.
- ``BulkTransitionDTO``: input for a bulk transition (deduplicated ids).
- ``SkippedItem``: one item a bulk transition left untouched, and why.
- ``ItemTransitionResult`` / ``BulkTransitionResult``: service outputs.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationInfo,
    field_validator,
    model_validator,
)

from modules.workflow.constants import MAX_BATCH_SIZE
from modules.workflow.deriver import DerivedStatus


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


def _require_status_key(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("to_status_key is required.")
    return v


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class ItemTransitionDTO(BaseModel):
    """Immutable DTO for a single-item transition request.

    An explicit blank or null ``tracking_number`` sets ``clear_tracking``:
    the stored tracking number is removed instead of kept.
    """

    model_config = ConfigDict(frozen=True)

    item_id: int
    to_status_key: str
    tracking_number: Optional[str] = None
    clear_tracking: bool = False
    note: str = ""

    @model_validator(mode="before")
    @classmethod
    def detect_tracking_clear(cls, data):
        if isinstance(data, dict) and "tracking_number" in data:
            value = data["tracking_number"]
            if value is None or (isinstance(value, str) and not value.strip()):
                data = {**data, "clear_tracking": True}
        return data

    @field_validator("item_id")
    @classmethod
    def item_id_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("item_id must be a positive integer.")
        return v

    @field_validator("to_status_key")
    @classmethod
    def status_key_must_not_be_blank(cls, v: str) -> str:
        return _require_status_key(v)

    @field_validator("tracking_number")
    @classmethod
    def normalize_tracking_number(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @field_validator("note", mode="before")
    @classmethod
    def normalize_note(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class BulkTransitionDTO(BaseModel):
    """Immutable DTO for bulk transition requests.

    Validates:
    - ``item_ids`` must contain at least one id.
    - Duplicates are dropped, keeping the first-seen order.
    - At most ``max_batch_size`` distinct ids (validation context,
      ``MAX_BATCH_SIZE`` by default).
    """

    model_config = ConfigDict(frozen=True)

    item_ids: List[int]
    to_status_key: str
    tracking_number: Optional[str] = None

    @field_validator("item_ids")
    @classmethod
    def deduplicate_and_bound(cls, v: List[int], info: ValidationInfo) -> List[int]:
        if not v:
            raise ValueError("item_ids must be a non-empty list.")
        unique = list(dict.fromkeys(v))
        limit = (info.context or {}).get("max_batch_size", MAX_BATCH_SIZE)
        if len(unique) > limit:
            raise ValueError(f"Maximum {limit} items per batch.")
        return unique

    @field_validator("to_status_key")
    @classmethod
    def status_key_must_not_be_blank(cls, v: str) -> str:
        return _require_status_key(v)

    @field_validator("tracking_number")
    @classmethod
    def normalize_tracking_number(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class SkipReason(str, Enum):
    NO_RULE = "NO_RULE"
    SOURCE_TERMINAL = "SOURCE_TERMINAL"
    UNKNOWN_TARGET = "UNKNOWN_TARGET"
    MISSING_TRACKING = "MISSING_TRACKING"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"


class BulkOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"


class SkippedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: int
    reason: SkipReason
    message: str


class StatusRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str


class ItemTransitionResult(BaseModel):
    """Outcome of a successful single-item transition."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    item_id: int
    order_id: int
    status_key: str
    status_label: str
    is_terminal: bool
    tracking_number: Optional[str]
    order_status: DerivedStatus
    order_status_changed: bool


class BulkTransitionResult(BaseModel):
    """Outcome of a bulk transition that wrote at least one item."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    updated_count: int
    skipped: List[SkippedItem]
    target_status: StatusRef
    order_status_changes: Dict[int, DerivedStatus]

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def outcome(self) -> BulkOutcome:
        return BulkOutcome.PARTIAL if self.skipped else BulkOutcome.SUCCEEDED
