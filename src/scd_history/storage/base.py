"""
Collaborator interfaces for the source snapshot and the history sink.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping

from ..scd_type2.models import HistoryRecord


class SnapshotSource(ABC):
    """Read-only tabular collection holding the current source snapshot."""

    name: str = "source"

    @property
    @abstractmethod
    def columns(self) -> List[str]:
        """Column names of the source rows."""
        ...

    @abstractmethod
    def read_records(self) -> Iterable[Mapping[str, Any]]:
        """Return every current source row."""
        ...


class HistorySink(ABC):
    """History table supporting active reads, appends and one-time closures."""

    name: str = "history"

    @property
    @abstractmethod
    def columns(self) -> List[str]:
        """Column names of the history rows."""
        ...

    @abstractmethod
    def read_active(self) -> Iterable[HistoryRecord]:
        """Return the rows whose valid_to is null."""
        ...

    @abstractmethod
    def read_all(self) -> Iterable[HistoryRecord]:
        """Return every history row, active or closed."""
        ...

    @abstractmethod
    def apply_changes(self, closures: List[HistoryRecord],
                      versions: List[HistoryRecord]) -> None:
        """
        Close existing rows and append new versions as one atomic unit.

        Each closure carries the row_ref of an active row and the valid_to /
        updated_at values to set on it. Implementations must raise
        WriteConflict if any targeted row is no longer active, and must leave
        the table untouched when they raise.
        """
        ...

    def table_info(self) -> Dict[str, Any]:
        """
        Get information about the history table.

        Returns:
            Dictionary with row counts
        """
        rows = list(self.read_all())
        active = sum(1 for r in rows if r.is_active)
        return {
            "table_name": self.name,
            "total_records": len(rows),
            "active_records": active,
            "closed_records": len(rows) - active,
            "distinct_keys": len({r.key for r in rows})
        }
