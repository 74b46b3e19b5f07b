"""Workflow domain constants.

Closed enumerations for item status keys and actor roles, the permission
keys that gate super-actions, and the default configuration tables the
``seed_workflow`` command loads into the database:

- ``DEFAULT_STATUS_CATALOG``: label / color / rank / terminal flag per status.
- ``DEFAULT_TRANSITION_TABLE``: ``(role, from_status) -> {to_status: requires_tracking}``.
- ``DEFAULT_ROLE_VISIBILITY``: which statuses a role may enumerate.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional, Tuple

from django.db import models


class ItemStatusKey(models.TextChoices):
    PROCESSING = "processing", "Processing"
    ORDERED = "ordered", "Ordered"
    SHIPPED_TO_WH = "shipped_to_wh", "Shipped to WH"
    RECEIVED_TO_WH = "received_to_wh", "Received to WH"
    SHIPPED_TO_LEB = "shipped_to_leb", "Shipped to LEB"
    RECEIVED_TO_LEB = "received_to_leb", "Received to LEB"
    DELIVERED_TO_CUSTOMER = "delivered_to_customer", "Delivered to Customer"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class ActorRole(models.TextChoices):
    SUPER_ADMIN = "super_admin", "Super Admin"
    BUYER = "buyer", "Buyer"
    CHINA_WAREHOUSE = "china_warehouse", "China Warehouse"
    LEBANON_WAREHOUSE = "lebanon_warehouse", "Lebanon Warehouse"
    NONE = "none", "No Role"


# ---------------------------------------------------------------------------
# Permission keys
# ---------------------------------------------------------------------------

PERMISSION_ITEM_STATUS_CHANGE = "action.orders.item.status.change"
PERMISSION_ITEM_CANCEL = "action.orders.item.cancel"
PERMISSION_ITEM_REFUND = "action.orders.item.refund"
PERMISSION_ITEM_MASTER_LIST = "page.orders.item_master_list"

# Super-actions: targets that need a permission above the ordinary
# status-change grant.
SUPER_ACTION_PERMISSIONS: Dict[str, str] = {
    ItemStatusKey.CANCELLED: PERMISSION_ITEM_CANCEL,
    ItemStatusKey.REFUNDED: PERMISSION_ITEM_REFUND,
}

# ---------------------------------------------------------------------------
# Legacy order / item status codes
# ---------------------------------------------------------------------------

LEGACY_STATUS_CANCELLED = 5
LEGACY_STATUS_REFUNDED = 6

LEGACY_TERMINAL_CODES: Dict[str, int] = {
    ItemStatusKey.CANCELLED: LEGACY_STATUS_CANCELLED,
    ItemStatusKey.REFUNDED: LEGACY_STATUS_REFUNDED,
}

# ---------------------------------------------------------------------------
# Bulk transitions
# ---------------------------------------------------------------------------

MAX_BATCH_SIZE = 200
BULK_HISTORY_NOTE = "Bulk status change"

# ---------------------------------------------------------------------------
# Default status catalog: key -> (label, color, rank, is_terminal)
# ---------------------------------------------------------------------------

DEFAULT_STATUS_CATALOG: Dict[str, Tuple[str, str, int, bool]] = {
    ItemStatusKey.PROCESSING: ("Processing", "yellow", 1, False),
    ItemStatusKey.ORDERED: ("Ordered", "blue", 2, False),
    ItemStatusKey.SHIPPED_TO_WH: ("Shipped to WH", "indigo", 3, False),
    ItemStatusKey.RECEIVED_TO_WH: ("Received to WH", "cyan", 4, False),
    ItemStatusKey.SHIPPED_TO_LEB: ("Shipped to LEB", "purple", 5, False),
    ItemStatusKey.RECEIVED_TO_LEB: ("Received to LEB", "violet", 6, False),
    ItemStatusKey.DELIVERED_TO_CUSTOMER: ("Delivered to Customer", "green", 7, False),
    ItemStatusKey.CANCELLED: ("Cancelled", "red", 90, True),
    ItemStatusKey.REFUNDED: ("Refunded", "orange", 91, True),
}

# ---------------------------------------------------------------------------
# Default transition table: (role, from_status) -> {to_status: requires_tracking}
#
# ``None`` as from_status is the first assignment of an item that has no
# workflow status yet.  Hand-offs to a carrier require a tracking number.
# ---------------------------------------------------------------------------

TransitionTable = Dict[Tuple[str, Optional[str]], Dict[str, bool]]

_S = ItemStatusKey
_R = ActorRole

DEFAULT_TRANSITION_TABLE: TransitionTable = {
    # Buyer: procurement.
    (_R.BUYER, None): {_S.PROCESSING: False},
    (_R.BUYER, _S.PROCESSING): {_S.ORDERED: False, _S.CANCELLED: False},
    (_R.BUYER, _S.ORDERED): {_S.SHIPPED_TO_WH: True, _S.CANCELLED: False},
    # China warehouse: receipt and export.
    (_R.CHINA_WAREHOUSE, _S.SHIPPED_TO_WH): {_S.RECEIVED_TO_WH: False},
    (_R.CHINA_WAREHOUSE, _S.RECEIVED_TO_WH): {_S.SHIPPED_TO_LEB: True},
    # Lebanon warehouse: customs receipt and final leg.
    (_R.LEBANON_WAREHOUSE, _S.SHIPPED_TO_LEB): {_S.RECEIVED_TO_LEB: False},
    (_R.LEBANON_WAREHOUSE, _S.RECEIVED_TO_LEB): {_S.DELIVERED_TO_CUSTOMER: False},
    # Super admin: every forward step, cancel from any active stage,
    # refund once the item reached the destination country.
    (_R.SUPER_ADMIN, None): {_S.PROCESSING: False},
    (_R.SUPER_ADMIN, _S.PROCESSING): {_S.ORDERED: False, _S.CANCELLED: False},
    (_R.SUPER_ADMIN, _S.ORDERED): {_S.SHIPPED_TO_WH: True, _S.CANCELLED: False},
    (_R.SUPER_ADMIN, _S.SHIPPED_TO_WH): {_S.RECEIVED_TO_WH: False, _S.CANCELLED: False},
    (_R.SUPER_ADMIN, _S.RECEIVED_TO_WH): {_S.SHIPPED_TO_LEB: True, _S.CANCELLED: False},
    (_R.SUPER_ADMIN, _S.SHIPPED_TO_LEB): {_S.RECEIVED_TO_LEB: False, _S.CANCELLED: False},
    (_R.SUPER_ADMIN, _S.RECEIVED_TO_LEB): {
        _S.DELIVERED_TO_CUSTOMER: False,
        _S.CANCELLED: False,
        _S.REFUNDED: False,
    },
    (_R.SUPER_ADMIN, _S.DELIVERED_TO_CUSTOMER): {
        _S.CANCELLED: False,
        _S.REFUNDED: False,
    },
}

# ---------------------------------------------------------------------------
# Role visibility (None = unrestricted)
# ---------------------------------------------------------------------------

DEFAULT_ROLE_VISIBILITY: Dict[str, Optional[FrozenSet[str]]] = {
    _R.SUPER_ADMIN: None,
    _R.BUYER: frozenset({_S.PROCESSING, _S.ORDERED}),
    _R.CHINA_WAREHOUSE: frozenset({_S.SHIPPED_TO_WH, _S.RECEIVED_TO_WH}),
    _R.LEBANON_WAREHOUSE: frozenset({_S.SHIPPED_TO_LEB, _S.RECEIVED_TO_LEB}),
    _R.NONE: frozenset(),
}
