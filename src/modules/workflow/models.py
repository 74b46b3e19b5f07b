"""Status catalog and transition registry tables.

Both tables are configuration maintained by administrators (seeded by the
``seed_workflow`` management command).  The workflow engine only reads
them, through immutable snapshots (``StatusCatalog`` / ``TransitionRegistry``).
"""

from __future__ import annotations

from django.db import models

from modules.core.models import TimeStampedModel
from modules.workflow.constants import ActorRole, ItemStatusKey


class ItemStatus(TimeStampedModel):
    """A named stage of the order-item fulfillment pipeline.

    ``rank`` orders non-terminal statuses (lower = earlier).  Terminal
    statuses have no outgoing transitions.  ``is_active`` soft-disables a
    status: inactive statuses are never valid transition targets.
    """

    key = models.CharField(max_length=40, unique=True, choices=ItemStatusKey.choices)
    label = models.CharField(max_length=100)
    color = models.CharField(max_length=20, default="gray")
    rank = models.PositiveIntegerField()
    is_terminal = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "workflow_item_statuses"
        ordering = ["rank"]

    def __str__(self) -> str:
        return f"{self.key} ({self.rank})"


class TransitionRule(TimeStampedModel):
    """A role-gated move between two statuses.

    ``from_status`` is nullable: a rule from ``NULL`` assigns the first
    workflow status to an item that has none yet.
    """

    role = models.CharField(max_length=40, choices=ActorRole.choices)
    from_status = models.ForeignKey(
        ItemStatus,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="outgoing_rules",
    )
    to_status = models.ForeignKey(
        ItemStatus,
        on_delete=models.CASCADE,
        related_name="incoming_rules",
    )
    requires_tracking = models.BooleanField(default=False)
    can_transition = models.BooleanField(default=True)

    class Meta:
        db_table = "workflow_transition_rules"
        constraints = [
            models.UniqueConstraint(
                fields=["role", "from_status", "to_status"],
                name="workflow_rule_unique",
            ),
        ]
        indexes = [
            models.Index(fields=["role", "from_status"], name="workflow_rule_lookup_idx"),
        ]

    def __str__(self) -> str:
        source = self.from_status.key if self.from_status_id else "-"
        return f"{self.role}: {source} -> {self.to_status.key}"
