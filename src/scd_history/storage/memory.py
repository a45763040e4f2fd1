"""
In-process source and history sink.
"""

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging
import threading

from ..common.config import HistoryConfig
from ..common.exceptions import SchemaMismatch, WriteConflict
from ..common.utils import to_utc
from ..scd_type2.models import HistoryRecord
from .base import HistorySink, SnapshotSource

logger = logging.getLogger(__name__)


class InMemorySource(SnapshotSource):
    """Source snapshot backed by a list of row dictionaries."""

    def __init__(self, rows: Iterable[Mapping[str, Any]], columns: Optional[List[str]] = None,
                 name: str = "source"):
        self.rows = [dict(r) for r in rows]
        self.name = name
        if columns is None:
            seen = {}
            for row in self.rows:
                for column in row:
                    seen.setdefault(column, None)
            columns = list(seen)
        self._columns = list(columns)

    @property
    def columns(self) -> List[str]:
        return list(self._columns)

    def read_records(self) -> Iterable[Mapping[str, Any]]:
        return [dict(r) for r in self.rows]


class InMemoryHistorySink(HistorySink):
    """
    History table held in process memory.

    Row references are positions in the append-only row list. Writes stage a
    copy of the table and swap it in only after every closure and append has
    been applied, so readers never observe half of a run.
    """

    def __init__(self, config: HistoryConfig, rows: Iterable[HistoryRecord] = (),
                 columns: Optional[List[str]] = None):
        self.config = config
        self.name = config.target_table
        self._columns = list(columns) if columns is not None else config.history_columns
        self._lock = threading.RLock()
        self._rows: List[HistoryRecord] = []
        for record in rows:
            self._rows.append(self._ingest(record, len(self._rows)))
        self.write_count = 0

    @staticmethod
    def _ingest(record: HistoryRecord, row_ref: int) -> HistoryRecord:
        # Seeded rows get the same UTC normalization as rows read from Spark
        return replace(record,
                       created_at=to_utc(record.created_at),
                       updated_at=to_utc(record.updated_at),
                       valid_from=to_utc(record.valid_from),
                       valid_to=to_utc(record.valid_to),
                       row_ref=row_ref)

    @property
    def columns(self) -> List[str]:
        return list(self._columns)

    def read_active(self) -> Iterable[HistoryRecord]:
        with self._lock:
            return [r for r in self._rows if r.is_active]

    def read_all(self) -> Iterable[HistoryRecord]:
        with self._lock:
            return list(self._rows)

    def rows_as_dicts(self) -> List[Dict[str, Any]]:
        """Every row flattened with the configured column names."""
        return [r.to_row(self.config) for r in self.read_all()]

    def apply_changes(self, closures: List[HistoryRecord],
                      versions: List[HistoryRecord]) -> None:
        missing = [c for c in self.config.history_columns if c not in self._columns]
        if missing:
            raise SchemaMismatch(f"History table {self.name} lacks columns {missing}",
                                 missing_columns=missing, side="sink")

        with self._lock:
            staged = list(self._rows)

            conflicts = []
            for closure in closures:
                ref = closure.row_ref
                if not isinstance(ref, int) or not 0 <= ref < len(staged):
                    conflicts.append(closure.key)
                    continue
                current = staged[ref]
                if not current.is_active or current.key != closure.key:
                    conflicts.append(closure.key)
                    continue
                staged[ref] = replace(current,
                                      valid_to=closure.valid_to,
                                      updated_at=closure.updated_at)
            if conflicts:
                raise WriteConflict(
                    f"Rows for keys {conflicts} in {self.name} are no longer active",
                    keys=conflicts
                )

            for version in versions:
                staged.append(self._ingest(version, len(staged)))

            self._rows = staged
            self.write_count += 1

        logger.info(f"Applied {len(closures)} closures and {len(versions)} appends to {self.name}")
