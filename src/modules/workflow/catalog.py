"""Status catalog snapshot.

The workflow engine never queries ``ItemStatus`` rows directly while deciding
a transition: it works on an immutable ``StatusCatalog`` loaded once per
request (or built from synthetic definitions in tests).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Tuple

from modules.workflow.constants import DEFAULT_STATUS_CATALOG


@dataclass(frozen=True)
class StatusDefinition:
    """Immutable view of one ``ItemStatus`` row."""

    id: int
    key: str
    label: str
    rank: int
    is_terminal: bool = False
    is_active: bool = True
    color: str = "gray"

    @classmethod
    def from_entity(cls, status) -> StatusDefinition:
        return cls(
            id=status.id,
            key=status.key,
            label=status.label,
            rank=status.rank,
            is_terminal=status.is_terminal,
            is_active=status.is_active,
            color=status.color,
        )


class StatusCatalog:
    """Ordered, read-only set of workflow statuses.

    Lookups by key and by numeric id.  Iteration follows ``rank``.
    """

    def __init__(self, definitions: Iterable[StatusDefinition]) -> None:
        ordered: Tuple[StatusDefinition, ...] = tuple(
            sorted(definitions, key=lambda d: (d.rank, d.id))
        )
        self._definitions = ordered
        self._by_key: Dict[str, StatusDefinition] = {d.key: d for d in ordered}
        self._by_id: Dict[int, StatusDefinition] = {d.id: d for d in ordered}
        if len(self._by_key) != len(ordered):
            raise ValueError("Status keys must be unique within a catalog.")

    @classmethod
    def from_definitions(cls, definitions: Iterable[StatusDefinition]) -> StatusCatalog:
        return cls(definitions)

    @classmethod
    def default(cls) -> StatusCatalog:
        """Catalog built from ``DEFAULT_STATUS_CATALOG`` with positional ids."""
        return cls(
            StatusDefinition(
                id=index,
                key=str(key),
                label=label,
                color=color,
                rank=rank,
                is_terminal=is_terminal,
            )
            for index, (key, (label, color, rank, is_terminal)) in enumerate(
                DEFAULT_STATUS_CATALOG.items(), start=1
            )
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, key: Optional[str]) -> Optional[StatusDefinition]:
        if key is None:
            return None
        return self._by_key.get(key)

    def by_id(self, status_id: Optional[int]) -> Optional[StatusDefinition]:
        if status_id is None:
            return None
        return self._by_id.get(status_id)

    def get_active(self, key: Optional[str]) -> Optional[StatusDefinition]:
        """Return the definition for *key* only if it exists and is active."""
        definition = self.get(key)
        if definition is None or not definition.is_active:
            return None
        return definition

    def is_terminal(self, key: Optional[str]) -> bool:
        definition = self.get(key)
        return bool(definition and definition.is_terminal)

    @property
    def initial(self) -> Optional[StatusDefinition]:
        """Lowest-rank active non-terminal status (start of the pipeline)."""
        for definition in self._definitions:
            if definition.is_active and not definition.is_terminal:
                return definition
        return None

    def keys(self) -> Tuple[str, ...]:
        return tuple(d.key for d in self._definitions)

    def __iter__(self) -> Iterator[StatusDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key
