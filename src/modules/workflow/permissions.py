"""Permission gates consulted before the transition registry.

Moving any item needs the ordinary status-change grant.  Cancelling and
refunding are super-actions with a grant of their own, checked for the
whole request before a single item is looked at.
"""

from __future__ import annotations

from rest_framework.permissions import BasePermission

from modules.core.actors import ActorContext, has_permission
from modules.workflow.constants import (
    PERMISSION_ITEM_MASTER_LIST,
    PERMISSION_ITEM_STATUS_CHANGE,
    SUPER_ACTION_PERMISSIONS,
)
from modules.workflow.exceptions import Forbidden


def ensure_can_transition(actor: ActorContext, to_status_key: str) -> None:
    """Raise ``Forbidden`` unless *actor* may request a move to *to_status_key*."""
    if not has_permission(actor.permissions, PERMISSION_ITEM_STATUS_CHANGE):
        raise Forbidden("Forbidden")

    required = SUPER_ACTION_PERMISSIONS.get(to_status_key)
    if required is not None and not has_permission(actor.permissions, required):
        raise Forbidden(f"You do not have permission to move items to '{to_status_key}'.")


class CanViewItemMasterList(BasePermission):
    """DRF permission for the item listing pages."""

    message = "You do not have access to the item master list."

    def has_permission(self, request, view) -> bool:
        permissions = getattr(request.user, "permissions", None) or []
        return has_permission(permissions, PERMISSION_ITEM_MASTER_LIST)
