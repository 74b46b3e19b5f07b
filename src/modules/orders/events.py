"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order's derived workflow status changes.

    Recorded in the outbox once per order and per write request, however
    many of its items moved, so downstream notifications never multiply by
    item count.
    """

    old_status_key: str = ""
    new_status_key: str = ""
    new_status_label: str = ""
