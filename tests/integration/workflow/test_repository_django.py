"""Integration tests for ``WorkflowDjangoRepository``."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.core.cache import cache
from django.db.models.query import QuerySet
from django.test import override_settings
from django.utils import timezone

from modules.orders.models import Order, OrderItem, OrderItemStatusHistory
from modules.workflow.constants import ActorRole
from modules.workflow.deriver import DerivedStatus
from modules.workflow.models import ItemStatus, TransitionRule
from modules.workflow.repositories import (
    HistoryEntry,
    StatusUpdate,
    WorkflowDjangoRepository,
)
from modules.workflow.repositories.django_repository import (
    CATALOG_CACHE_KEY,
    RULES_CACHE_KEY,
    invalidate_workflow_config,
)

pytestmark = pytest.mark.integration


@pytest.fixture()
def repo():
    return WorkflowDjangoRepository()


class TestConfigurationSnapshots:
    def test_catalog_reflects_seeded_statuses(self, repo, statuses):
        catalog = repo.load_catalog()
        assert set(catalog.keys()) == set(statuses)
        assert catalog.initial.key == "processing"
        assert catalog.get("ordered").id == statuses["ordered"].id

    def test_registry_reflects_seeded_rules(self, repo, statuses):
        registry = repo.load_registry(repo.load_catalog())
        rule = registry.find("ordered", ActorRole.BUYER, "shipped_to_wh")
        assert rule is not None
        assert rule.requires_tracking is True
        assert registry.find(None, ActorRole.BUYER, "processing") is not None

    def test_disabled_rules_are_not_loaded(self, repo, statuses):
        TransitionRule.objects.filter(
            role=ActorRole.BUYER,
            from_status=statuses["processing"],
            to_status=statuses["ordered"],
        ).update(can_transition=False)

        registry = repo.load_registry(repo.load_catalog())

        assert registry.find("processing", ActorRole.BUYER, "ordered") is None

    def test_rule_leaving_terminal_status_is_ignored(self, repo, statuses):
        TransitionRule.objects.create(
            role=ActorRole.SUPER_ADMIN,
            from_status=statuses["cancelled"],
            to_status=statuses["processing"],
        )

        registry = repo.load_registry(repo.load_catalog())

        assert registry.rules_for("cancelled", ActorRole.SUPER_ADMIN) == frozenset()

    @override_settings(WORKFLOW_CONFIG_CACHE_TIMEOUT=300)
    def test_catalog_is_cached_until_invalidated(self, repo, statuses):
        repo.load_catalog()
        assert cache.get(CATALOG_CACHE_KEY) is not None

        ItemStatus.objects.filter(key="ordered").update(label="Purchased")
        assert repo.load_catalog().get("ordered").label == "Ordered"

        invalidate_workflow_config()
        assert cache.get(CATALOG_CACHE_KEY) is None
        assert cache.get(RULES_CACHE_KEY) is None
        assert repo.load_catalog().get("ordered").label == "Purchased"


class TestStatusUpdates:
    def test_update_if_current_moves_matching_rows(self, repo, statuses, make_order):
        order = make_order("processing", "processing", "ordered")
        ids = list(order.items.values_list("id", flat=True))
        now = timezone.now()

        moved = repo.update_status_if_current(
            ids,
            statuses["processing"].id,
            StatusUpdate(
                to_status_id=statuses["ordered"].id,
                changed_at=now,
                changed_by=7,
                tracking_number="TRK-1",
            ),
        )

        assert moved == set(ids[:2])
        first = OrderItem.objects.get(id=ids[0])
        assert first.current_status_id == statuses["ordered"].id
        assert first.status_updated_at == now
        assert first.status_updated_by == 7
        assert first.tracking_number == "TRK-1"
        untouched = OrderItem.objects.get(id=ids[2])
        assert untouched.tracking_number is None

    def test_update_from_unset(self, repo, statuses, make_order):
        order = make_order(None, "processing")
        unset_id, set_id = order.items.values_list("id", flat=True)

        moved = repo.update_status_if_current(
            [unset_id, set_id],
            None,
            StatusUpdate(
                to_status_id=statuses["processing"].id,
                changed_at=timezone.now(),
                changed_by=7,
            ),
        )

        assert moved == {unset_id}

    def test_update_keeps_existing_tracking_when_none_supplied(
        self, repo, statuses, make_order
    ):
        order = make_order("ordered", tracking_number="KEEP-ME")
        item = order.items.get()

        repo.update_status_if_current(
            [item.id],
            statuses["ordered"].id,
            StatusUpdate(
                to_status_id=statuses["shipped_to_wh"].id,
                changed_at=timezone.now(),
                changed_by=7,
            ),
        )

        item.refresh_from_db()
        assert item.tracking_number == "KEEP-ME"

    def test_update_mirrors_legacy_code(self, repo, statuses, make_order):
        order = make_order("processing")
        item = order.items.get()

        repo.update_status_if_current(
            [item.id],
            statuses["processing"].id,
            StatusUpdate(
                to_status_id=statuses["cancelled"].id,
                changed_at=timezone.now(),
                changed_by=7,
                legacy_status=5,
            ),
        )

        item.refresh_from_db()
        assert item.legacy_status == 5

    def test_row_moved_between_read_and_update_is_not_reported(
        self, repo, statuses, make_order
    ):
        order = make_order("processing", "processing")
        calm, racing = order.items.values_list("id", flat=True)
        original = QuerySet.values_list
        raced = []

        def values_then_race(qs, *fields, **kwargs):
            rows = list(original(qs, *fields, **kwargs))
            if not raced:
                raced.append(racing)
                OrderItem.objects.filter(id=racing).update(
                    current_status=statuses["cancelled"]
                )
            return rows

        with patch.object(QuerySet, "values_list", new=values_then_race):
            moved = repo.update_status_if_current(
                [calm, racing],
                statuses["processing"].id,
                StatusUpdate(
                    to_status_id=statuses["ordered"].id,
                    changed_at=timezone.now(),
                    changed_by=7,
                ),
            )

        assert moved == {calm}
        assert OrderItem.objects.get(id=calm).current_status_id == statuses["ordered"].id
        assert (
            OrderItem.objects.get(id=racing).current_status_id
            == statuses["cancelled"].id
        )

    def test_update_clears_tracking_when_asked(self, repo, statuses, make_order):
        order = make_order("processing", tracking_number="CN-OLD")
        item = order.items.get()

        repo.update_status_if_current(
            [item.id],
            statuses["processing"].id,
            StatusUpdate(
                to_status_id=statuses["ordered"].id,
                changed_at=timezone.now(),
                changed_by=7,
                clear_tracking=True,
            ),
        )

        item.refresh_from_db()
        assert item.tracking_number is None

    def test_update_with_no_ids(self, repo, statuses):
        update = StatusUpdate(
            to_status_id=statuses["ordered"].id, changed_at=timezone.now(), changed_by=1
        )
        assert repo.update_status_if_current([], None, update) == set()


class TestQueries:
    def test_get_many_skips_unknown_ids(self, repo, make_order):
        order = make_order("processing", "ordered")
        ids = list(order.items.values_list("id", flat=True))

        items = repo.get_many(ids + [999_999])

        assert [item.id for item in items] == ids

    def test_visible_items_by_key_set(self, repo, make_order):
        make_order(None, "processing", "shipped_to_wh", "cancelled")

        buyer = repo.visible_items(frozenset({"processing", "ordered"}), True)
        warehouse = repo.visible_items(frozenset({"shipped_to_wh"}), False)
        admin = repo.visible_items(None, True)

        assert buyer.count() == 2
        assert [i.current_status.key for i in warehouse] == ["shipped_to_wh"]
        assert admin.count() == 4

    def test_visible_items_empty_set_sees_nothing(self, repo, make_order):
        make_order("processing")
        assert repo.visible_items(frozenset(), False).count() == 0

    def test_item_states_and_derived_cache(self, repo, statuses, make_order):
        order = make_order(None, "ordered")

        states = repo.get_item_states(order.id)
        assert sorted(state.status_key or "" for state in states) == ["", "ordered"]

        assert repo.get_derived_status_key(order.id) == ""
        repo.save_derived_status(
            order.id, DerivedStatus(key="processing", label="Processing", color="yellow")
        )
        assert repo.get_derived_status_key(order.id) == "processing"

        order.refresh_from_db()
        assert order.derived_status_label == "Processing"
        assert order.derived_status_color == "yellow"
        assert order.derived_at is not None
        assert order.legacy_status == 9

    def test_save_derived_status_mirrors_legacy_code(self, repo, make_order):
        order = make_order("cancelled")
        repo.save_derived_status(
            order.id, DerivedStatus(key="cancelled", label="Cancelled", color="red"), 5
        )
        order.refresh_from_db()
        assert order.legacy_status == 5

    def test_derived_status_key_of_missing_order(self, repo):
        assert repo.get_derived_status_key(424242) == ""


class TestHistory:
    def test_add_history_batched(self, repo, statuses, make_order):
        order = make_order("processing", "processing")
        now = timezone.now()
        entries = [
            HistoryEntry(
                order_item_id=item.id,
                order_id=order.id,
                from_status_id=statuses["processing"].id,
                to_status_id=statuses["ordered"].id,
                changed_by=7,
                tracking_number_snapshot=None,
                note="Bulk status change",
                changed_at=now,
            )
            for item in order.items.all()
        ]

        assert repo.add_history(entries) == 2
        assert OrderItemStatusHistory.objects.filter(order=order).count() == 2
        assert repo.add_history([]) == 0

    def test_history_for_item_newest_first(self, repo, statuses, make_order):
        order = make_order("processing")
        item = order.items.get()
        first = timezone.now()
        for offset, (src, dst) in enumerate(
            [(None, "processing"), ("processing", "ordered")]
        ):
            repo.add_history(
                [
                    HistoryEntry(
                        order_item_id=item.id,
                        order_id=order.id,
                        from_status_id=statuses[src].id if src else None,
                        to_status_id=statuses[dst].id,
                        changed_by=7,
                        tracking_number_snapshot=None,
                        note="",
                        changed_at=first + timedelta(seconds=offset),
                    )
                ]
            )

        history = list(repo.history_for(item.id))

        assert [entry.to_status.key for entry in history] == ["ordered", "processing"]
        assert history[1].from_status is None

    def test_orders_cascade_to_items_and_history(self, repo, statuses, make_order):
        order = make_order("processing")
        item = order.items.get()
        repo.add_history(
            [
                HistoryEntry(
                    order_item_id=item.id,
                    order_id=order.id,
                    from_status_id=None,
                    to_status_id=statuses["processing"].id,
                    changed_by=7,
                    tracking_number_snapshot=None,
                    note="",
                    changed_at=timezone.now(),
                )
            ]
        )

        Order.objects.filter(id=order.id).delete()

        assert not OrderItem.objects.filter(id=item.id).exists()
        assert not OrderItemStatusHistory.objects.filter(order_item_id=item.id).exists()
