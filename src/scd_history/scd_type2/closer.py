"""
Closing of superseded and absent versions.
"""

from dataclasses import replace
from typing import List
import logging

from ..common.config import HistoryConfig, RunContext
from ..common.exceptions import InvalidIntervalError
from ..common.utils import sort_key
from .models import ChangeSet, HistoryRecord, Snapshot

logger = logging.getLogger(__name__)


class Closer:
    """Builds closed copies of active rows whose validity ends with this run."""

    def __init__(self, config: HistoryConfig):
        self.config = config

    def close(self, change_set: ChangeSet, snapshot: Snapshot,
              context: RunContext) -> List[HistoryRecord]:
        """
        Create one closed copy per absent or changed key.

        Everything except updated_at and valid_to is copied from the active
        row, including its row_ref, which the sink uses to locate the row.

        Args:
            change_set: Classification of the snapshot
            snapshot: Snapshot the classification was computed from
            context: Current run identity

        Returns:
            List of closed HistoryRecords ordered by key
        """
        ts = context.run_timestamp
        closures = []
        for key in sorted(change_set.to_close, key=sort_key):
            active = snapshot.active[key]
            if ts < active.valid_from:
                logger.error(f"Run timestamp {ts} precedes valid_from {active.valid_from} for key {key!r}")
                raise InvalidIntervalError(
                    f"Cannot close key {key!r} at {ts.isoformat()}: "
                    f"version is valid from {active.valid_from.isoformat()}",
                    key=key
                )
            closures.append(replace(active, updated_at=ts, valid_to=ts))

        logger.info(f"Closed {len(closures)} active versions "
                    f"({len(change_set.changed)} superseded, {len(change_set.absent)} absent)")
        return closures
