"""Role visibility filter.

Answers "which statuses may this role enumerate" for listing
collaborators.  It shares the ``StatusCatalog`` with the transition core,
so a key the catalog does not know (or has deactivated) is never visible.
"""

from __future__ import annotations

from typing import FrozenSet, Mapping, Optional

from modules.workflow.catalog import StatusCatalog
from modules.workflow.constants import DEFAULT_ROLE_VISIBILITY

VisibilityTable = Mapping[str, Optional[FrozenSet[str]]]


class RoleVisibilityFilter:
    def __init__(
        self,
        catalog: StatusCatalog,
        table: Optional[VisibilityTable] = None,
    ) -> None:
        self._catalog = catalog
        self._table = DEFAULT_ROLE_VISIBILITY if table is None else table

    def visible_status_keys(self, role: Optional[str]) -> Optional[FrozenSet[str]]:
        """Status keys *role* may see; ``None`` means unrestricted.

        Unknown roles see nothing.
        """
        if role is None or role not in self._table:
            return frozenset()

        keys = self._table[role]
        if keys is None:
            return None
        return frozenset(
            str(key) for key in keys if self._catalog.get_active(key) is not None
        )

    def includes_unset(self, visible_keys: Optional[FrozenSet[str]]) -> bool:
        """Whether items without a status are visible.

        Unset items display as the initial status, so they follow its
        visibility.
        """
        if visible_keys is None:
            return True
        initial = self._catalog.initial
        return initial is not None and initial.key in visible_keys
