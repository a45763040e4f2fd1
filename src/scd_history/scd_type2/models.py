"""
Record types exchanged between the reconciliation steps.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Hashable, List, Mapping, Optional

from ..common.config import HistoryConfig
from ..common.utils import to_utc


@dataclass(frozen=True)
class SourceRecord:
    """Current state of one entity in the source snapshot."""

    key: Hashable
    attributes: Dict[str, Any]

    @classmethod
    def from_row(cls, row: Mapping[str, Any], config: HistoryConfig) -> "SourceRecord":
        return cls(
            key=row[config.unique_key],
            attributes={name: row[name] for name in config.attribute_columns}
        )


@dataclass(frozen=True)
class HistoryRecord:
    """One version of an entity in the history table."""

    key: Hashable
    attributes: Dict[str, Any]
    batch_id: str
    created_at: datetime
    updated_at: datetime
    valid_from: datetime
    valid_to: Optional[datetime] = None
    # Sink-specific reference to the physical row
    row_ref: Any = field(default=None, compare=False)

    @property
    def is_active(self) -> bool:
        return self.valid_to is None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], config: HistoryConfig,
                 row_ref: Any = None) -> "HistoryRecord":
        """
        Build a HistoryRecord from a sink row.

        Args:
            row: Mapping with the history columns
            config: History configuration naming the columns
            row_ref: Sink reference to the physical row

        Returns:
            HistoryRecord
        """
        return cls(
            key=row[config.unique_key],
            attributes={name: row[name] for name in config.attribute_columns},
            batch_id=row[config.batch_id_column],
            created_at=to_utc(row[config.created_at_column]),
            updated_at=to_utc(row[config.updated_at_column]),
            valid_from=to_utc(row[config.valid_from_column]),
            valid_to=to_utc(row[config.valid_to_column]),
            row_ref=row_ref
        )

    def to_row(self, config: HistoryConfig) -> Dict[str, Any]:
        """Flatten into a sink row keyed by the configured column names."""
        row = {config.unique_key: self.key}
        row.update(self.attributes)
        row[config.batch_id_column] = self.batch_id
        row[config.created_at_column] = self.created_at
        row[config.updated_at_column] = self.updated_at
        row[config.valid_from_column] = self.valid_from
        row[config.valid_to_column] = self.valid_to
        return row


@dataclass(frozen=True)
class Snapshot:
    """Consistent read of the source and the active history rows."""

    source: Dict[Hashable, SourceRecord]
    active: Dict[Hashable, HistoryRecord]


@dataclass(frozen=True)
class ChangeSet:
    """Disjoint classification of every key seen in a snapshot."""

    new: FrozenSet[Hashable] = frozenset()
    changed: FrozenSet[Hashable] = frozenset()
    absent: FrozenSet[Hashable] = frozenset()
    unchanged: FrozenSet[Hashable] = frozenset()

    @property
    def to_materialize(self) -> FrozenSet[Hashable]:
        return self.new | self.changed

    @property
    def to_close(self) -> FrozenSet[Hashable]:
        return self.absent | self.changed

    @property
    def all_keys(self) -> FrozenSet[Hashable]:
        return self.new | self.changed | self.absent | self.unchanged

    def merge(self, other: "ChangeSet") -> "ChangeSet":
        return ChangeSet(
            new=self.new | other.new,
            changed=self.changed | other.changed,
            absent=self.absent | other.absent,
            unchanged=self.unchanged | other.unchanged
        )

    def validate(self, snapshot: Snapshot) -> None:
        """Assert the sets are pairwise disjoint and cover every snapshot key."""
        groups = [self.new, self.changed, self.absent, self.unchanged]
        total = sum(len(g) for g in groups)
        if total != len(self.all_keys):
            raise AssertionError("classification sets overlap")
        expected = set(snapshot.source) | set(snapshot.active)
        if self.all_keys != expected:
            raise AssertionError("classification does not cover every snapshot key")

    def counts(self) -> Dict[str, int]:
        return {
            "new": len(self.new),
            "changed": len(self.changed),
            "absent": len(self.absent),
            "unchanged": len(self.unchanged)
        }


@dataclass(frozen=True)
class WritePlan:
    """Rows a run must apply to the sink as one unit."""

    closures: List[HistoryRecord] = field(default_factory=list)
    versions: List[HistoryRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.closures and not self.versions
