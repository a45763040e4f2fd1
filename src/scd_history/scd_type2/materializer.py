"""
New version materialization for SCD history reconciliation.
"""

from typing import List
import logging

from ..common.config import HistoryConfig, RunContext
from ..common.utils import sort_key
from .models import ChangeSet, HistoryRecord, Snapshot

logger = logging.getLogger(__name__)


class VersionMaterializer:
    """Builds the active version appended for each new or changed key."""

    def __init__(self, config: HistoryConfig):
        self.config = config

    def materialize(self, change_set: ChangeSet, snapshot: Snapshot,
                    context: RunContext) -> List[HistoryRecord]:
        """
        Create one active HistoryRecord per new or changed key.

        The attributes come from the source record; created_at, updated_at
        and valid_from all take the run timestamp.

        Args:
            change_set: Classification of the snapshot
            snapshot: Snapshot the classification was computed from
            context: Current run identity

        Returns:
            List of new HistoryRecords ordered by key
        """
        ts = context.run_timestamp
        versions = []
        for key in sorted(change_set.to_materialize, key=sort_key):
            source_record = snapshot.source[key]
            versions.append(HistoryRecord(
                key=key,
                attributes=dict(source_record.attributes),
                batch_id=context.batch_id,
                created_at=ts,
                updated_at=ts,
                valid_from=ts,
                valid_to=None
            ))

        logger.info(f"Materialized {len(versions)} new versions for batch {context.batch_id}")
        return versions
