"""Authenticated actor context handed to the service layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True)
class ActorContext:
    """Who is acting: numeric id, primary role key and permission set."""

    actor_id: int
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)


def has_permission(permissions: Iterable[str], permission_key: str) -> bool:
    """Check if a permission set contains *permission_key*."""
    return permission_key in set(permissions)

