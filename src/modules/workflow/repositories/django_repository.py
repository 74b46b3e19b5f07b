"""Django ORM implementation of the Workflow repository.

Satisfies ``IWorkflowRepository`` using Django's QuerySet API.  The
callers (services) own the transaction boundary: ``get_for_update`` and
``update_status_if_current`` must run inside ``transaction.atomic()``.

Concurrency control on status updates combines ``select_for_update()``
with a compare-and-swap filter on the expected current status, so a row
that moved since it was read is reported instead of overwritten.
"""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

import structlog
from django.conf import settings
from django.core.cache import cache
from django.db.models import Q, QuerySet
from django.utils import timezone

from modules.orders.models import Order, OrderItem, OrderItemStatusHistory
from modules.workflow.catalog import StatusCatalog, StatusDefinition
from modules.workflow.deriver import DerivedStatus, ItemState
from modules.workflow.models import ItemStatus, TransitionRule
from modules.workflow.registry import RuleSpec, TransitionRegistry
from modules.workflow.repositories.interfaces import (
    HistoryEntry,
    IWorkflowRepository,
    StatusUpdate,
)

logger = structlog.get_logger(__name__)

CATALOG_CACHE_KEY = "workflow:catalog"
RULES_CACHE_KEY = "workflow:rules"


def invalidate_workflow_config() -> None:
    """Drop the cached catalog and rules (after administrative edits)."""
    cache.delete_many([CATALOG_CACHE_KEY, RULES_CACHE_KEY])
    logger.info("workflow.config_cache_invalidated")


class WorkflowDjangoRepository(IWorkflowRepository):
    """Concrete Workflow repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Configuration snapshots
    # ------------------------------------------------------------------

    def load_catalog(self) -> StatusCatalog:
        definitions = cache.get_or_set(
            CATALOG_CACHE_KEY,
            self._fetch_definitions,
            timeout=settings.WORKFLOW_CONFIG_CACHE_TIMEOUT,
        )
        return StatusCatalog.from_definitions(definitions)

    def load_registry(self, catalog: StatusCatalog) -> TransitionRegistry:
        rules = cache.get_or_set(
            RULES_CACHE_KEY,
            self._fetch_rules,
            timeout=settings.WORKFLOW_CONFIG_CACHE_TIMEOUT,
        )
        usable = []
        for rule in rules:
            if catalog.is_terminal(rule.from_key):
                logger.warning(
                    "workflow.rule_from_terminal_ignored",
                    role=rule.role,
                    from_status=rule.from_key,
                    to_status=rule.to_key,
                )
                continue
            usable.append(rule)
        return TransitionRegistry(usable, catalog=catalog)

    @staticmethod
    def _fetch_definitions() -> Tuple[StatusDefinition, ...]:
        return tuple(StatusDefinition.from_entity(s) for s in ItemStatus.objects.all())

    @staticmethod
    def _fetch_rules() -> Tuple[RuleSpec, ...]:
        rules = TransitionRule.objects.filter(can_transition=True).select_related(
            "from_status", "to_status"
        )
        return tuple(
            RuleSpec(
                role=rule.role,
                from_key=rule.from_status.key if rule.from_status_id else None,
                to_key=rule.to_status.key,
                requires_tracking=rule.requires_tracking,
                is_terminal_target=rule.to_status.is_terminal,
            )
            for rule in rules
        )

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def get_by_id(self, id: int) -> Optional[OrderItem]:
        return self.list().filter(id=id).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = OrderItem.objects.select_related("current_status", "order").order_by(
            "id"
        )
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_for_update(self, id: int) -> Optional[OrderItem]:
        return OrderItem.objects.select_for_update().filter(id=id).first()

    def get_many(self, ids: Sequence[int]) -> List[OrderItem]:
        if not ids:
            return []
        return list(
            OrderItem.objects.select_related("current_status")
            .filter(id__in=ids)
            .order_by("id")
        )

    def update_status_if_current(
        self,
        ids: Sequence[int],
        expected_status_id: Optional[int],
        update: StatusUpdate,
    ) -> Set[int]:
        if not ids:
            return set()

        if expected_status_id is None:
            expected = Q(current_status__isnull=True)
        else:
            expected = Q(current_status_id=expected_status_id)

        matched = set(
            OrderItem.objects.select_for_update()
            .filter(expected, id__in=ids)
            .values_list("id", flat=True)
        )
        if not matched:
            return matched

        fields: Dict[str, Any] = {
            "current_status_id": update.to_status_id,
            "status_updated_at": update.changed_at,
            "status_updated_by": update.changed_by,
            "updated_at": update.changed_at,
        }
        if update.tracking_number is not None:
            fields["tracking_number"] = update.tracking_number
        elif update.clear_tracking:
            fields["tracking_number"] = None
        if update.legacy_status is not None:
            fields["legacy_status"] = update.legacy_status

        updated = OrderItem.objects.filter(expected, id__in=matched).update(**fields)
        logger.info(
            "workflow.items_updated",
            expected_status_id=expected_status_id,
            to_status_id=update.to_status_id,
            requested=len(ids),
            updated=updated,
        )
        if updated == len(matched):
            return matched

        # Without row locks (SQLite) a writer may slip in between the read
        # and the UPDATE: report only the rows carrying our stamp.
        moved = set(
            OrderItem.objects.filter(
                id__in=matched,
                current_status_id=update.to_status_id,
                status_updated_at=update.changed_at,
                status_updated_by=update.changed_by,
            ).values_list("id", flat=True)
        )
        logger.warning(
            "workflow.items_update_reconciled",
            expected_status_id=expected_status_id,
            matched=len(matched),
            moved=len(moved),
        )
        return moved

    def visible_items(
        self, visible_keys: Optional[FrozenSet[str]], include_unset: bool
    ) -> QuerySet:
        queryset = self.list()
        if visible_keys is None:
            return queryset
        condition = Q(current_status__key__in=visible_keys)
        if include_unset:
            condition |= Q(current_status__isnull=True)
        return queryset.filter(condition)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(self, entries: Sequence[HistoryEntry]) -> int:
        rows = [
            OrderItemStatusHistory(
                order_item_id=entry.order_item_id,
                order_id=entry.order_id,
                from_status_id=entry.from_status_id,
                to_status_id=entry.to_status_id,
                changed_by=entry.changed_by,
                tracking_number_snapshot=entry.tracking_number_snapshot,
                note=entry.note,
                changed_at=entry.changed_at,
            )
            for entry in entries
        ]
        if not rows:
            return 0
        created = OrderItemStatusHistory.objects.bulk_create(rows)
        logger.info("workflow.history_added", row_count=len(created))
        return len(created)

    def history_for(self, item_id: int) -> QuerySet:
        return OrderItemStatusHistory.objects.select_related(
            "from_status", "to_status"
        ).filter(order_item_id=item_id)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def get_item_states(self, order_id: int) -> List[ItemState]:
        rows = OrderItem.objects.filter(order_id=order_id).values_list(
            "id", "current_status__key", "status_updated_at"
        )
        return [
            ItemState(item_id=item_id, status_key=key, status_updated_at=updated_at)
            for item_id, key, updated_at in rows
        ]

    def get_derived_status_key(self, order_id: int) -> str:
        key = (
            Order.objects.filter(id=order_id)
            .values_list("derived_status_key", flat=True)
            .first()
        )
        return key or ""

    def save_derived_status(
        self,
        order_id: int,
        derived: DerivedStatus,
        legacy_status: Optional[int] = None,
    ) -> None:
        now = timezone.now()
        fields: Dict[str, Any] = {
            "derived_status_key": derived.key,
            "derived_status_label": derived.label,
            "derived_status_color": derived.color,
            "derived_at": now,
            "updated_at": now,
        }
        if legacy_status is not None:
            fields["legacy_status"] = legacy_status
        Order.objects.filter(id=order_id).update(**fields)
