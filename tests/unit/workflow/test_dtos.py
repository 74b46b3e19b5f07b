"""Unit tests for workflow DTOs (Pydantic v2)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from modules.workflow.deriver import DerivedStatus
from modules.workflow.dtos import (
    BulkOutcome,
    BulkTransitionDTO,
    BulkTransitionResult,
    ItemTransitionDTO,
    SkippedItem,
    SkipReason,
    StatusRef,
)

pytestmark = pytest.mark.unit


class TestItemTransitionDTO:
    def test_valid(self):
        dto = ItemTransitionDTO(item_id=3, to_status_key=" ordered ", note=" ok ")
        assert dto.to_status_key == "ordered"
        assert dto.note == "ok"
        assert dto.tracking_number is None

    def test_blank_tracking_becomes_none(self):
        dto = ItemTransitionDTO(item_id=3, to_status_key="ordered", tracking_number="  ")
        assert dto.tracking_number is None

    @pytest.mark.parametrize("tracking", ["", "  ", None])
    def test_explicit_blank_tracking_asks_for_clear(self, tracking):
        dto = ItemTransitionDTO(item_id=3, to_status_key="ordered", tracking_number=tracking)
        assert dto.clear_tracking is True

    def test_absent_tracking_keeps_stored_value(self):
        assert ItemTransitionDTO(item_id=3, to_status_key="ordered").clear_tracking is False

    def test_real_tracking_does_not_clear(self):
        dto = ItemTransitionDTO(item_id=3, to_status_key="ordered", tracking_number="CN-1")
        assert dto.tracking_number == "CN-1"
        assert dto.clear_tracking is False

    def test_null_note_becomes_empty(self):
        assert ItemTransitionDTO(item_id=3, to_status_key="ordered", note=None).note == ""

    @pytest.mark.parametrize("item_id", [0, -4])
    def test_non_positive_item_id_rejected(self, item_id):
        with pytest.raises(ValidationError, match="positive"):
            ItemTransitionDTO(item_id=item_id, to_status_key="ordered")

    def test_blank_target_rejected(self):
        with pytest.raises(ValidationError, match="to_status_key is required"):
            ItemTransitionDTO(item_id=1, to_status_key="   ")

    def test_frozen(self):
        dto = ItemTransitionDTO(item_id=1, to_status_key="ordered")
        with pytest.raises(ValidationError):
            dto.item_id = 2


class TestBulkTransitionDTO:
    def test_duplicates_dropped_keeping_first_seen_order(self):
        dto = BulkTransitionDTO(item_ids=[5, 3, 5, 1, 3], to_status_key="ordered")
        assert dto.item_ids == [5, 3, 1]

    def test_empty_ids_rejected(self):
        with pytest.raises(ValidationError, match="non-empty"):
            BulkTransitionDTO(item_ids=[], to_status_key="ordered")

    def test_two_hundred_ids_accepted(self):
        dto = BulkTransitionDTO(item_ids=list(range(1, 201)), to_status_key="ordered")
        assert len(dto.item_ids) == 200

    def test_two_hundred_and_one_ids_rejected(self):
        with pytest.raises(ValidationError, match="Maximum 200 items per batch"):
            BulkTransitionDTO(item_ids=list(range(1, 202)), to_status_key="ordered")

    def test_limit_applies_to_distinct_ids(self):
        ids = list(range(1, 201)) + list(range(1, 51))
        dto = BulkTransitionDTO(item_ids=ids, to_status_key="ordered")
        assert len(dto.item_ids) == 200

    def test_limit_from_validation_context(self):
        with pytest.raises(ValidationError, match="Maximum 2 items per batch"):
            BulkTransitionDTO.model_validate(
                {"item_ids": [1, 2, 3], "to_status_key": "ordered"},
                context={"max_batch_size": 2},
            )

    def test_blank_target_rejected(self):
        with pytest.raises(ValidationError):
            BulkTransitionDTO(item_ids=[1], to_status_key="")

    def test_blank_tracking_becomes_none(self):
        dto = BulkTransitionDTO(item_ids=[1], to_status_key="ordered", tracking_number="")
        assert dto.tracking_number is None


class TestBulkTransitionResult:
    def _result(self, skipped):
        return BulkTransitionResult(
            updated_count=2,
            skipped=skipped,
            target_status=StatusRef(key="ordered", label="Ordered"),
            order_status_changes={10: DerivedStatus(key="ordered", label="Ordered")},
        )

    def test_succeeded_without_skips(self):
        result = self._result([])
        assert result.outcome is BulkOutcome.SUCCEEDED
        assert result.skipped_count == 0

    def test_partial_with_skips(self):
        skipped = [
            SkippedItem(item_id=4, reason=SkipReason.NO_RULE, message="nope"),
        ]
        result = self._result(skipped)
        assert result.outcome is BulkOutcome.PARTIAL
        assert result.skipped_count == 1

    def test_skipped_item_serializes_reason_value(self):
        skipped = SkippedItem(
            item_id=4, reason=SkipReason.MISSING_TRACKING, message="Tracking"
        )
        assert skipped.model_dump(mode="json") == {
            "item_id": 4,
            "reason": "MISSING_TRACKING",
            "message": "Tracking",
        }
