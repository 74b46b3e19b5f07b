"""Order-status deriver.

An order is only as advanced as its least advanced active line item:

- items without a status count as the catalog's initial status;
- terminal items (cancelled, refunded) are ignored while any active item
  remains, and the lowest-rank active status wins;
- when every item is terminal, the status of the most recently changed
  item wins (``status_updated_at``, ties broken by the highest item id);
- an order without items derives to the initial status.

``derive_status`` is the pure rule.  ``OrderStatusDeriver`` reads the item
states of one order and writes the result to the order's cached fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

import structlog

from modules.workflow.catalog import StatusCatalog, StatusDefinition
from modules.workflow.constants import LEGACY_TERMINAL_CODES

if TYPE_CHECKING:
    from modules.workflow.repositories.interfaces import IWorkflowRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ItemState:
    item_id: int
    status_key: Optional[str]
    status_updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DerivedStatus:
    key: str
    label: str
    color: str = "gray"

    @classmethod
    def from_definition(cls, definition: Optional[StatusDefinition]) -> DerivedStatus:
        if definition is None:
            return cls(key="", label="", color="")
        return cls(key=definition.key, label=definition.label, color=definition.color)


@dataclass(frozen=True)
class OrderStatusChange:
    """Result of recomputing one order."""

    order_id: int
    previous_key: str
    derived: DerivedStatus

    @property
    def changed(self) -> bool:
        return self.previous_key != self.derived.key


def derive_status(items: Iterable[ItemState], catalog: StatusCatalog) -> DerivedStatus:
    initial = catalog.initial
    active = []
    terminal = []

    for item in items:
        definition = initial if item.status_key is None else catalog.get(item.status_key)
        if definition is None:
            continue
        if definition.is_terminal:
            terminal.append((item, definition))
        else:
            active.append(definition)

    if active:
        return DerivedStatus.from_definition(min(active, key=lambda d: (d.rank, d.id)))

    if terminal:
        _, latest = max(
            terminal,
            key=lambda entry: (
                entry[0].status_updated_at is not None,
                entry[0].status_updated_at or datetime.min,
                entry[0].item_id,
            ),
        )
        return DerivedStatus.from_definition(latest)

    return DerivedStatus.from_definition(initial)


class OrderStatusDeriver:
    """Recomputes and caches the derived status of one order."""

    def __init__(self, repository: IWorkflowRepository, catalog: StatusCatalog) -> None:
        self._repo = repository
        self._catalog = catalog

    def derive(self, order_id: int) -> DerivedStatus:
        return self.recompute(order_id).derived

    def recompute(self, order_id: int) -> OrderStatusChange:
        """Derive from the current item states and write the order cache.

        Idempotent: recomputing an unchanged order rewrites the same values.
        Terminal outcomes are mirrored into the legacy order status code.
        """
        previous_key = self._repo.get_derived_status_key(order_id)
        derived = derive_status(self._repo.get_item_states(order_id), self._catalog)
        legacy_code = LEGACY_TERMINAL_CODES.get(derived.key)
        self._repo.save_derived_status(order_id, derived, legacy_code)

        change = OrderStatusChange(
            order_id=order_id,
            previous_key=previous_key,
            derived=derived,
        )
        logger.info(
            "workflow.order_status_derived",
            order_id=order_id,
            previous_status=previous_key,
            derived_status=derived.key,
            changed=change.changed,
        )
        return change
