"""Workflow repository interface.

The transition services depend exclusively on this contract (DIP): it
loads the configuration snapshots, locks and conditionally updates items,
appends audit rows, and reads/writes the order's derived status cache.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Sequence, Set

from modules.core.repositories.interfaces import IReadRepository, Queryable

if TYPE_CHECKING:
    from modules.orders.models import OrderItem, OrderItemStatusHistory
    from modules.workflow.catalog import StatusCatalog
    from modules.workflow.deriver import DerivedStatus, ItemState
    from modules.workflow.registry import TransitionRegistry


@dataclass(frozen=True)
class StatusUpdate:
    """Fields written by one conditional status update."""

    to_status_id: int
    changed_at: datetime
    changed_by: int
    tracking_number: Optional[str] = None
    clear_tracking: bool = False
    legacy_status: Optional[int] = None


@dataclass(frozen=True)
class HistoryEntry:
    order_item_id: int
    order_id: int
    from_status_id: Optional[int]
    to_status_id: int
    changed_by: int
    tracking_number_snapshot: Optional[str]
    note: str
    changed_at: datetime


class IWorkflowRepository(IReadRepository["OrderItem"]):
    """Repository contract for order items moving through the workflow."""

    # Configuration snapshots

    @abstractmethod
    def load_catalog(self) -> StatusCatalog:
        """Build the status catalog snapshot."""

    @abstractmethod
    def load_registry(self, catalog: StatusCatalog) -> TransitionRegistry:
        """Build the transition registry snapshot from enabled rules."""

    # Items

    @abstractmethod
    def get_by_id(self, id: int) -> Optional[OrderItem]:
        """Retrieve an item with its current status."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Queryable[OrderItem]:
        """List items with their current status and order."""

    @abstractmethod
    def get_for_update(self, id: int) -> Optional[OrderItem]:
        """Retrieve an item with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def get_many(self, ids: Sequence[int]) -> List[OrderItem]:
        """Existing items among *ids*, in ascending id order."""

    @abstractmethod
    def update_status_if_current(
        self,
        ids: Sequence[int],
        expected_status_id: Optional[int],
        update: StatusUpdate,
    ) -> Set[int]:
        """Move the items still in *expected_status_id*; return the moved ids."""

    @abstractmethod
    def visible_items(
        self, visible_keys: Optional[FrozenSet[str]], include_unset: bool
    ) -> Queryable[OrderItem]:
        """Items whose status is in *visible_keys* (``None`` = all)."""

    # History

    @abstractmethod
    def add_history(self, entries: Sequence[HistoryEntry]) -> int:
        """Append audit rows in one batched insert; return the row count."""

    @abstractmethod
    def history_for(self, item_id: int) -> Queryable[OrderItemStatusHistory]:
        """Audit trail of one item, newest first."""

    # Orders

    @abstractmethod
    def get_item_states(self, order_id: int) -> List[ItemState]:
        """Status snapshot of every item of an order."""

    @abstractmethod
    def get_derived_status_key(self, order_id: int) -> str:
        """Currently cached derived status key of an order."""

    @abstractmethod
    def save_derived_status(
        self,
        order_id: int,
        derived: DerivedStatus,
        legacy_status: Optional[int] = None,
    ) -> None:
        """Write the order's derived status cache."""
