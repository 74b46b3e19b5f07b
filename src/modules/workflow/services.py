"""Workflow service layer (Use Cases).

Orchestrates item status transitions.  All write operations are atomic:
the service defines the unit-of-work boundary.

Business rules enforced:
- The status-change grant is required for any move; cancel and refund
  need their own super-action grant (checked for the whole request).
- Every move is validated against the role's transition registry.
- Hand-offs that require tracking need a supplied or stored tracking number.
- Status writes are conditional on the status that was read (CAS);
  a row that moved concurrently is never overwritten.
- Exactly one history row per successful item transition.
- The owning order's derived status is recomputed once per order per
  request, and an ``OrderStatusChanged`` outbox event is recorded when it
  changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence

import structlog
from celery.exceptions import OperationalError as BrokerUnavailable
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.orders.events import OrderStatusChanged
from modules.workflow.constants import BULK_HISTORY_NOTE, LEGACY_TERMINAL_CODES
from modules.workflow.deriver import OrderStatusChange, OrderStatusDeriver
from modules.workflow.dtos import (
    BulkTransitionResult,
    ItemTransitionResult,
    SkippedItem,
    SkipReason,
    StatusRef,
)
from modules.workflow.exceptions import (
    ConcurrentModification,
    InvalidTransition,
    ItemNotFound,
    MissingTrackingIdentifier,
    NoItemsTransitionable,
    NoValidItems,
    PersistenceFailure,
    UnknownStatus,
)
from modules.workflow.permissions import ensure_can_transition
from modules.workflow.repositories.interfaces import HistoryEntry, StatusUpdate
from modules.workflow.tasks import rederive_order_status
from modules.workflow.validator import (
    DENIAL_MESSAGES,
    AllowedTransition,
    Denied,
    DenialReason,
    TransitionValidator,
)
from modules.workflow.visibility import RoleVisibilityFilter
from shared.infrastructure.outbox import record_events

if TYPE_CHECKING:
    from modules.core.actors import ActorContext
    from modules.orders.models import OrderItem
    from modules.workflow.catalog import StatusCatalog, StatusDefinition
    from modules.workflow.dtos import BulkTransitionDTO, ItemTransitionDTO
    from modules.workflow.registry import TransitionRegistry
    from modules.workflow.repositories.interfaces import IWorkflowRepository
    from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

ORDER_EVENTS_TOPIC = "orders"
MISSING_TRACKING_MESSAGE = "Tracking number is required for this transition"
CONCURRENT_MODIFICATION_MESSAGE = "Status changed concurrently"

EventRecorder = Callable[[Iterable["DomainEvent"], str], object]


class _WorkflowService:
    """Shared wiring: repository, configuration snapshots and outbox."""

    def __init__(
        self,
        repository: IWorkflowRepository,
        catalog: StatusCatalog,
        registry: TransitionRegistry,
        event_recorder: EventRecorder = record_events,
    ) -> None:
        self._repo = repository
        self._catalog = catalog
        self._validator = TransitionValidator(catalog, registry)
        self._deriver = OrderStatusDeriver(repository, catalog)
        self._record_events = event_recorder

    @classmethod
    def from_repository(cls, repository: IWorkflowRepository, **kwargs):
        """Build the service with freshly loaded configuration snapshots."""
        catalog = repository.load_catalog()
        registry = repository.load_registry(catalog)
        return cls(repository, catalog, registry, **kwargs)

    def _resolve_target(self, to_status_key: str) -> StatusDefinition:
        target = self._catalog.get_active(to_status_key)
        if target is None:
            raise UnknownStatus(f"Unknown status: {to_status_key}")
        return target

    def _source_key(self, status_id: Optional[int]) -> Optional[str]:
        """Status key for a stored status id.

        Raises ``KeyError`` for an id outside the catalog, which only happens
        with a stale snapshot and must never be mistaken for "unset".
        """
        if status_id is None:
            return None
        definition = self._catalog.by_id(status_id)
        if definition is None:
            raise KeyError(status_id)
        return definition.key

    def _refresh_order(self, order_id: int) -> OrderStatusChange:
        """Recompute the order's derived status; record an event if it moved."""
        change = self._deriver.recompute(order_id)
        if change.changed:
            event = OrderStatusChanged(
                aggregate_id=order_id,
                old_status_key=change.previous_key,
                new_status_key=change.derived.key,
                new_status_label=change.derived.label,
            )
            self._record_events([event], ORDER_EVENTS_TOPIC)
        return change


class ItemTransitionService(_WorkflowService):
    """Applies one validated transition to one order item."""

    def apply(self, actor: ActorContext, dto: ItemTransitionDTO) -> ItemTransitionResult:
        """Move one item to ``dto.to_status_key``.

        Steps:
        1. Permission gate (base grant plus super-action grant).
        2. Resolve the target status (must exist and be active).
        3. In one transaction: lock the item, validate, check tracking,
           conditionally update, append one history row and recompute the
           owning order.

        Raises:
            Forbidden: missing base or super-action permission.
            UnknownStatus: target status unknown or inactive.
            ItemNotFound: item does not exist.
            InvalidTransition: the validator denied the move.
            MissingTrackingIdentifier: tracking required and unavailable.
            ConcurrentModification: the item moved while being updated.
            PersistenceFailure: storage error, nothing was written.
        """
        log = logger.bind(
            item_id=dto.item_id,
            actor_id=actor.actor_id,
            role=actor.role,
            to_status=dto.to_status_key,
        )

        ensure_can_transition(actor, dto.to_status_key)
        target = self._resolve_target(dto.to_status_key)

        try:
            with transaction.atomic():
                result = self._apply_locked(actor, dto, target, log)
        except DatabaseError as exc:
            log.exception("workflow.persistence_failed")
            raise PersistenceFailure("Failed to update workflow status.") from exc

        log.info(
            "workflow.item_transitioned",
            order_id=result.order_id,
            order_status=result.order_status.key,
            order_status_changed=result.order_status_changed,
        )
        return result

    def _apply_locked(
        self,
        actor: ActorContext,
        dto: ItemTransitionDTO,
        target: StatusDefinition,
        log,
    ) -> ItemTransitionResult:
        item = self._repo.get_for_update(dto.item_id)
        if item is None:
            raise ItemNotFound(f"Order item {dto.item_id} not found.")

        try:
            from_key = self._source_key(item.current_status_id)
        except KeyError:
            log.warning("workflow.unknown_source_status", status_id=item.current_status_id)
            raise InvalidTransition(
                DENIAL_MESSAGES[DenialReason.NO_RULE], DenialReason.NO_RULE
            ) from None

        decision = self._validator.validate(from_key, actor.role, target.key)
        if isinstance(decision, Denied):
            log.warning(
                "workflow.transition_denied",
                from_status=from_key,
                reason=decision.reason.value,
            )
            raise InvalidTransition(decision.message, decision.reason)

        if dto.clear_tracking:
            tracking_number = None
        else:
            tracking_number = dto.tracking_number or item.tracking_number
        if decision.requires_tracking and not tracking_number:
            log.warning("workflow.tracking_missing", from_status=from_key)
            raise MissingTrackingIdentifier(f"{MISSING_TRACKING_MESSAGE}.")

        changed_at = timezone.now()
        moved = self._repo.update_status_if_current(
            [item.id],
            item.current_status_id,
            StatusUpdate(
                to_status_id=target.id,
                changed_at=changed_at,
                changed_by=actor.actor_id,
                tracking_number=dto.tracking_number,
                clear_tracking=dto.clear_tracking,
                legacy_status=LEGACY_TERMINAL_CODES.get(target.key),
            ),
        )
        if item.id not in moved:
            log.warning("workflow.concurrent_modification", from_status=from_key)
            raise ConcurrentModification(
                f"Order item {item.id} changed status concurrently; reload and retry."
            )

        self._repo.add_history(
            [
                HistoryEntry(
                    order_item_id=item.id,
                    order_id=item.order_id,
                    from_status_id=item.current_status_id,
                    to_status_id=target.id,
                    changed_by=actor.actor_id,
                    tracking_number_snapshot=tracking_number,
                    note=dto.note,
                    changed_at=changed_at,
                )
            ]
        )

        change = self._refresh_order(item.order_id)
        return ItemTransitionResult(
            item_id=item.id,
            order_id=item.order_id,
            status_key=target.key,
            status_label=target.label,
            is_terminal=target.is_terminal,
            tracking_number=tracking_number,
            order_status=change.derived,
            order_status_changed=change.changed,
        )


class BulkTransitionService(_WorkflowService):
    """Applies one target status to a heterogeneous set of items."""

    def apply_bulk(
        self, actor: ActorContext, dto: BulkTransitionDTO
    ) -> BulkTransitionResult:
        """Move every eligible item of ``dto.item_ids`` to ``dto.to_status_key``.

        Items are grouped by current status and validated once per group.
        Ineligible items are reported in ``skipped``; they never block or
        roll back the eligible ones.  Eligible items are written in one
        transaction (one conditional update per status group plus one
        batched history insert), then each distinct affected order is
        recomputed once.

        Raises:
            Forbidden: missing base or super-action permission.
            UnknownStatus: target status unknown or inactive.
            NoValidItems: none of the ids refer to an existing item.
            NoItemsTransitionable: every item was skipped (carries the list).
            PersistenceFailure: storage error, nothing was written.
        """
        log = logger.bind(
            actor_id=actor.actor_id,
            role=actor.role,
            to_status=dto.to_status_key,
            requested=len(dto.item_ids),
        )

        ensure_can_transition(actor, dto.to_status_key)
        target = self._resolve_target(dto.to_status_key)

        ids = [item_id for item_id in dto.item_ids if item_id > 0]
        items = self._repo.get_many(ids)
        if not items:
            log.warning("workflow.bulk_no_valid_items")
            raise NoValidItems("No valid items found.")

        position = {item_id: index for index, item_id in enumerate(ids)}
        items.sort(key=lambda item: position[item.id])

        eligible, skipped = self._partition(items, actor, target, dto.tracking_number)
        skipped.sort(key=lambda entry: position[entry.item_id])
        if not eligible:
            log.warning("workflow.bulk_nothing_transitionable", skipped=len(skipped))
            raise NoItemsTransitionable("No items could be transitioned.", skipped)

        try:
            with transaction.atomic():
                moved, lost = self._write(eligible, actor, target, dto.tracking_number)
        except DatabaseError as exc:
            log.exception("workflow.persistence_failed")
            raise PersistenceFailure("Failed to perform bulk status update.") from exc

        skipped.extend(
            SkippedItem(
                item_id=item.id,
                reason=SkipReason.CONCURRENT_MODIFICATION,
                message=CONCURRENT_MODIFICATION_MESSAGE,
            )
            for item in lost
        )
        skipped.sort(key=lambda entry: position[entry.item_id])

        if not moved:
            log.warning("workflow.bulk_nothing_transitionable", skipped=len(skipped))
            raise NoItemsTransitionable("No items could be transitioned.", skipped)

        order_status_changes = {}
        for order_id in dict.fromkeys(item.order_id for item in moved):
            change = self._refresh_order_after_commit(order_id, log)
            if change is not None and change.changed:
                order_status_changes[order_id] = change.derived

        result = BulkTransitionResult(
            updated_count=len(moved),
            skipped=skipped,
            target_status=StatusRef(key=target.key, label=target.label),
            order_status_changes=order_status_changes,
        )
        log.info(
            "workflow.bulk_transition_completed",
            updated=result.updated_count,
            skipped=result.skipped_count,
            orders=len(order_status_changes),
            outcome=result.outcome.value,
        )
        return result

    def _partition(
        self,
        items: Sequence[OrderItem],
        actor: ActorContext,
        target: StatusDefinition,
        tracking_number: Optional[str],
    ):
        """Split *items* into ``{status_id: [eligible items]}`` and skips.

        The validator runs once per distinct current status.
        """
        groups: Dict[Optional[int], List[OrderItem]] = {}
        for item in items:
            groups.setdefault(item.current_status_id, []).append(item)

        eligible: Dict[Optional[int], List[OrderItem]] = {}
        skipped: List[SkippedItem] = []

        for status_id, group in groups.items():
            try:
                from_key = self._source_key(status_id)
            except KeyError:
                decision = Denied.because(DenialReason.NO_RULE)
            else:
                decision = self._validator.validate(from_key, actor.role, target.key)

            if isinstance(decision, Denied):
                skipped.extend(
                    SkippedItem(
                        item_id=item.id,
                        reason=SkipReason(decision.reason.value),
                        message=decision.message,
                    )
                    for item in group
                )
                continue

            for item in group:
                if decision.requires_tracking and not (
                    tracking_number or item.tracking_number
                ):
                    skipped.append(
                        SkippedItem(
                            item_id=item.id,
                            reason=SkipReason.MISSING_TRACKING,
                            message=MISSING_TRACKING_MESSAGE,
                        )
                    )
                else:
                    eligible.setdefault(status_id, []).append(item)

        return eligible, skipped

    def _write(
        self,
        eligible: Dict[Optional[int], List[OrderItem]],
        actor: ActorContext,
        target: StatusDefinition,
        tracking_number: Optional[str],
    ):
        """Conditional update per status group plus one history insert.

        Every row shares the same ``changed_at`` and actor.  Returns the
        moved items and the items whose status changed under us.
        """
        changed_at = timezone.now()
        update = StatusUpdate(
            to_status_id=target.id,
            changed_at=changed_at,
            changed_by=actor.actor_id,
            tracking_number=tracking_number,
            legacy_status=LEGACY_TERMINAL_CODES.get(target.key),
        )

        moved: List[OrderItem] = []
        lost: List[OrderItem] = []
        for status_id, group in eligible.items():
            moved_ids = self._repo.update_status_if_current(
                [item.id for item in group], status_id, update
            )
            for item in group:
                (moved if item.id in moved_ids else lost).append(item)

        self._repo.add_history(
            [
                HistoryEntry(
                    order_item_id=item.id,
                    order_id=item.order_id,
                    from_status_id=item.current_status_id,
                    to_status_id=target.id,
                    changed_by=actor.actor_id,
                    tracking_number_snapshot=tracking_number or item.tracking_number,
                    note=BULK_HISTORY_NOTE,
                    changed_at=changed_at,
                )
                for item in moved
            ]
        )
        return moved, lost

    def _refresh_order_after_commit(
        self, order_id: int, log
    ) -> Optional[OrderStatusChange]:
        """Recompute one order once the item writes are committed.

        The item transitions already stand at this point; a storage error
        here leaves a stale display cache, which is handed to the
        ``rederive_order_status`` task instead of failing the request.  If
        the broker is unreachable too, the order stays stale until the next
        transition or a manual ``rederive``.
        """
        try:
            with transaction.atomic():
                return self._refresh_order(order_id)
        except DatabaseError:
            log.exception("workflow.order_rederive_deferred", order_id=order_id)

        try:
            rederive_order_status.delay(order_id)
        except BrokerUnavailable:
            log.exception("workflow.order_rederive_enqueue_failed", order_id=order_id)
        return None


class OrderStatusService(_WorkflowService):
    """On-demand recomputation of one order's derived status."""

    @transaction.atomic
    def refresh(self, order_id: int) -> OrderStatusChange:
        change = self._refresh_order(order_id)
        logger.info(
            "workflow.order_refreshed",
            order_id=order_id,
            derived_status=change.derived.key,
            changed=change.changed,
        )
        return change


class WorkflowQueryService(_WorkflowService):
    """Read-side use cases: legal moves, previews, history, visibility."""

    def __init__(self, *args, visibility_table=None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._visibility = RoleVisibilityFilter(self._catalog, visibility_table)

    @property
    def catalog(self) -> StatusCatalog:
        return self._catalog

    def get_item(self, item_id: int) -> OrderItem:
        item = self._repo.get_by_id(item_id)
        if item is None:
            raise ItemNotFound(f"Order item {item_id} not found.")
        return item

    def allowed_transitions(
        self, actor: ActorContext, item_id: int
    ) -> tuple[OrderItem, List[AllowedTransition]]:
        item = self.get_item(item_id)
        try:
            from_key = self._source_key(item.current_status_id)
        except KeyError:
            return item, []
        return item, self._validator.allowed_transitions(from_key, actor.role)

    def common_transitions(
        self, actor: ActorContext, item_ids: Sequence[int]
    ) -> tuple[List[OrderItem], List[AllowedTransition]]:
        """Moves applicable to every distinct status of a selection."""
        items = self._repo.get_many([i for i in item_ids if i > 0])
        if not items:
            raise NoValidItems("No valid items found.")
        try:
            from_keys = [self._source_key(item.current_status_id) for item in items]
        except KeyError:
            return items, []
        return items, self._validator.common_transitions(from_keys, actor.role)

    def history(self, item_id: int):
        self.get_item(item_id)
        return self._repo.history_for(item_id)

    def visible_items(self, actor: ActorContext):
        """Items the actor's role may enumerate."""
        keys = self._visibility.visible_status_keys(actor.role)
        return self._repo.visible_items(keys, self._visibility.includes_unset(keys))
