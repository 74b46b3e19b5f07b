"""Transition validator.

Deterministic decision function over a ``StatusCatalog`` and a
``TransitionRegistry`` snapshot.  Performs no I/O: the services load the
snapshots, the validator only answers "may this role move this status
to that one, and on which terms".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Union

from modules.workflow.catalog import StatusCatalog
from modules.workflow.registry import RuleSpec, TransitionRegistry


class DenialReason(str, Enum):
    NO_RULE = "NO_RULE"
    SOURCE_TERMINAL = "SOURCE_TERMINAL"
    UNKNOWN_TARGET = "UNKNOWN_TARGET"


DENIAL_MESSAGES = {
    DenialReason.NO_RULE: "Transition not allowed from current status",
    DenialReason.SOURCE_TERMINAL: "Item is in a terminal status",
    DenialReason.UNKNOWN_TARGET: "Target status is unknown or inactive",
}


@dataclass(frozen=True)
class Allowed:
    rule: RuleSpec
    requires_tracking: bool
    is_terminal: bool


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    message: str

    @classmethod
    def because(cls, reason: DenialReason) -> Denied:
        return cls(reason=reason, message=DENIAL_MESSAGES[reason])


Decision = Union[Allowed, Denied]


@dataclass(frozen=True)
class AllowedTransition:
    """A legal next move, as presented to UI collaborators."""

    to_status_key: str
    to_status_label: str
    requires_tracking: bool
    is_terminal: bool


class TransitionValidator:
    def __init__(self, catalog: StatusCatalog, registry: TransitionRegistry) -> None:
        self._catalog = catalog
        self._registry = registry

    @property
    def catalog(self) -> StatusCatalog:
        return self._catalog

    def validate(self, from_key: Optional[str], role: str, to_key: str) -> Decision:
        """Decide whether *role* may move an item from *from_key* to *to_key*.

        Checks run in a fixed order: unknown or inactive target, terminal
        source, then the registry.  ``from_key`` is ``None`` for an item
        that has no workflow status yet.
        """
        target = self._catalog.get_active(to_key)
        if target is None:
            return Denied.because(DenialReason.UNKNOWN_TARGET)

        # Registry construction already refuses these; a hand-built
        # registry without a catalog could still carry one.
        if self._catalog.is_terminal(from_key):
            return Denied.because(DenialReason.SOURCE_TERMINAL)

        rule = self._registry.find(from_key, role, to_key)
        if rule is None:
            return Denied.because(DenialReason.NO_RULE)

        return Allowed(
            rule=rule,
            requires_tracking=rule.requires_tracking,
            is_terminal=target.is_terminal,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def allowed_transitions(
        self, from_key: Optional[str], role: str
    ) -> List[AllowedTransition]:
        """Legal next moves for *role*, active targets only, ordered by rank."""
        if self._catalog.is_terminal(from_key):
            return []

        transitions = []
        for rule in self._registry.rules_for(from_key, role):
            target = self._catalog.get_active(rule.to_key)
            if target is None:
                continue
            transitions.append((target.rank, target.id, rule, target))

        transitions.sort(key=lambda entry: (entry[0], entry[1]))
        return [
            AllowedTransition(
                to_status_key=target.key,
                to_status_label=target.label,
                requires_tracking=rule.requires_tracking,
                is_terminal=target.is_terminal,
            )
            for _, _, rule, target in transitions
        ]

    def common_transitions(
        self, from_keys: Iterable[Optional[str]], role: str
    ) -> List[AllowedTransition]:
        """Targets legal for every distinct status of a mixed selection.

        ``requires_tracking`` is true when any of the groups needs it.
        Returns an empty list for an empty selection.
        """
        distinct = list(dict.fromkeys(from_keys))
        if not distinct:
            return []

        per_group = [self.allowed_transitions(key, role) for key in distinct]
        common_keys = set.intersection(
            *({t.to_status_key for t in group} for group in per_group)
        )
        tracking_keys = {
            t.to_status_key
            for group in per_group
            for t in group
            if t.requires_tracking
        }

        return [
            AllowedTransition(
                to_status_key=t.to_status_key,
                to_status_label=t.to_status_label,
                requires_tracking=t.to_status_key in tracking_keys,
                is_terminal=t.is_terminal,
            )
            for t in per_group[0]
            if t.to_status_key in common_keys
        ]
