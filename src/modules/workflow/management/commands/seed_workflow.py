from __future__ import annotations

import random

from django.core.management.base import BaseCommand
from django.db import transaction

from modules.orders.models import Order, OrderItem
from modules.workflow.constants import DEFAULT_STATUS_CATALOG, DEFAULT_TRANSITION_TABLE
from modules.workflow.models import ItemStatus, TransitionRule
from modules.workflow.repositories.django_repository import invalidate_workflow_config


class Command(BaseCommand):
    help = "Load the default status catalog and transition rules."

    def add_arguments(self, parser):
        parser.add_argument(
            "--sample-orders",
            type=int,
            default=0,
            help="Also create this many demo orders with unset items.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding workflow configuration...")

        statuses = self._seed_statuses()
        rules_created = self._seed_rules(statuses)
        orders_created = self._seed_orders(options["sample_orders"])
        transaction.on_commit(invalidate_workflow_config)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"statuses={len(statuses)}, "
                f"rules_created={rules_created}, "
                f"orders={orders_created}"
            )
        )

    def _seed_statuses(self) -> dict[str, ItemStatus]:
        self.stdout.write("Creating statuses...")
        statuses: dict[str, ItemStatus] = {}
        for key, (label, color, rank, is_terminal) in DEFAULT_STATUS_CATALOG.items():
            status, _ = ItemStatus.objects.update_or_create(
                key=key,
                defaults={
                    "label": label,
                    "color": color,
                    "rank": rank,
                    "is_terminal": is_terminal,
                    "is_active": True,
                },
            )
            statuses[str(key)] = status
        self.stdout.write(self.style.SUCCESS("Creating statuses... Done!"))
        return statuses

    def _seed_rules(self, statuses: dict[str, ItemStatus]) -> int:
        self.stdout.write("Creating transition rules...")
        created = 0
        for (role, from_key), targets in DEFAULT_TRANSITION_TABLE.items():
            from_status = statuses[str(from_key)] if from_key is not None else None
            for to_key, requires_tracking in targets.items():
                _, was_created = TransitionRule.objects.update_or_create(
                    role=role,
                    from_status=from_status,
                    to_status=statuses[str(to_key)],
                    defaults={
                        "requires_tracking": requires_tracking,
                        "can_transition": True,
                    },
                )
                created += int(was_created)
        self.stdout.write(self.style.SUCCESS("Creating transition rules... Done!"))
        return created

    def _seed_orders(self, count: int) -> int:
        if count <= 0:
            return 0
        self.stdout.write("Creating orders...")
        references = [
            ("SKU-1001", "Wireless earbuds"),
            ("SKU-1002", "Phone case"),
            ("SKU-1003", "Smart watch strap"),
            ("SKU-1004", "Desk lamp"),
            ("SKU-1005", "Backpack"),
            ("SKU-1006", "Water bottle"),
        ]
        for i in range(count):
            order = Order.objects.create(customer_name=f"Demo customer {i + 1}")
            for reference, name in random.sample(references, k=random.randint(1, 4)):
                OrderItem.objects.create(
                    order=order,
                    product_reference=reference,
                    product_name=name,
                    quantity=random.randint(1, 3),
                )
        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return count
