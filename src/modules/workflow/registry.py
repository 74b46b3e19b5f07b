"""Transition registry.

A pure lookup table ``(role, from_status_key) -> frozenset[RuleSpec]``.
The registry is configuration: it is built from ``DEFAULT_TRANSITION_TABLE``
or from the ``TransitionRule`` table, and the validator and services only
consume it, so replacing it never touches their code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, Optional, Tuple

from modules.workflow.catalog import StatusCatalog
from modules.workflow.constants import DEFAULT_TRANSITION_TABLE, TransitionTable

RegistryKey = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class RuleSpec:
    """One permitted move.  ``from_key`` is ``None`` for a first assignment."""

    role: str
    from_key: Optional[str]
    to_key: str
    requires_tracking: bool = False
    is_terminal_target: bool = False


class TransitionRegistry:
    """Immutable registry of role-gated transitions.

    Raises ``ValueError`` at construction when a rule leaves a terminal
    status of the supplied catalog: terminal statuses have no outgoing
    transitions.
    """

    def __init__(
        self,
        rules: Iterable[RuleSpec],
        catalog: Optional[StatusCatalog] = None,
    ) -> None:
        table: Dict[RegistryKey, set] = {}
        for rule in rules:
            if catalog is not None and catalog.is_terminal(rule.from_key):
                raise ValueError(
                    f"Rule {rule.role}: {rule.from_key} -> {rule.to_key} "
                    f"leaves terminal status {rule.from_key!r}."
                )
            table.setdefault((str(rule.role), rule.from_key), set()).add(rule)
        self._table: Dict[RegistryKey, FrozenSet[RuleSpec]] = {
            key: frozenset(value) for key, value in table.items()
        }

    @classmethod
    def from_table(
        cls,
        table: TransitionTable,
        catalog: StatusCatalog,
    ) -> TransitionRegistry:
        """Build from a ``(role, from) -> {to: requires_tracking}`` mapping."""
        rules = [
            RuleSpec(
                role=str(role),
                from_key=None if from_key is None else str(from_key),
                to_key=str(to_key),
                requires_tracking=requires_tracking,
                is_terminal_target=catalog.is_terminal(to_key),
            )
            for (role, from_key), targets in table.items()
            for to_key, requires_tracking in targets.items()
        ]
        return cls(rules, catalog=catalog)

    @classmethod
    def default(cls, catalog: StatusCatalog) -> TransitionRegistry:
        return cls.from_table(DEFAULT_TRANSITION_TABLE, catalog)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def rules_for(self, from_key: Optional[str], role: str) -> FrozenSet[RuleSpec]:
        """Permitted moves for *role* out of *from_key*; empty when none."""
        return self._table.get((str(role), from_key), frozenset())

    def find(
        self, from_key: Optional[str], role: str, to_key: str
    ) -> Optional[RuleSpec]:
        for rule in self.rules_for(from_key, role):
            if rule.to_key == to_key:
                return rule
        return None

    def __iter__(self) -> Iterator[RuleSpec]:
        for rules in self._table.values():
            yield from rules

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._table.values())
