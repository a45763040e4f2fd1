"""
Change classification for SCD history reconciliation.
"""

from concurrent.futures import ThreadPoolExecutor
from functools import reduce
from typing import Dict, Hashable, List
import logging

from ..common.config import HistoryConfig
from ..common.utils import key_partition, values_differ
from .models import ChangeSet, HistoryRecord, Snapshot, SourceRecord

logger = logging.getLogger(__name__)


class ChangeClassifier:
    """Partitions snapshot keys into new, changed, absent and unchanged."""

    def __init__(self, config: HistoryConfig):
        """
        Initialize ChangeClassifier with configuration.

        Args:
            config: History configuration
        """
        self.config = config
        self.compare_columns = config.attribute_columns

    def has_changed(self, active: HistoryRecord, source: SourceRecord) -> bool:
        """True when any tracked field differs between the active row and the source."""
        null_safe = self.config.null_safe_comparison
        return any(
            values_differ(active.attributes.get(name), source.attributes.get(name), null_safe)
            for name in self.compare_columns
        )

    def classify(self, snapshot: Snapshot) -> ChangeSet:
        """
        Classify every key in the snapshot.

        Args:
            snapshot: Source and active history records keyed by unique key

        Returns:
            ChangeSet with four disjoint key sets
        """
        partitions = self.config.partition_count
        if partitions == 1:
            change_set = self._classify_partition(snapshot.source, snapshot.active)
        else:
            change_set = self._classify_partitioned(snapshot, partitions)

        change_set.validate(snapshot)
        logger.info(f"Classified {len(change_set.all_keys)} keys: {change_set.counts()}")
        return change_set

    def _classify_partitioned(self, snapshot: Snapshot, partitions: int) -> ChangeSet:
        source_parts: List[Dict[Hashable, SourceRecord]] = [{} for _ in range(partitions)]
        active_parts: List[Dict[Hashable, HistoryRecord]] = [{} for _ in range(partitions)]
        for key, record in snapshot.source.items():
            source_parts[key_partition(key, partitions)][key] = record
        for key, record in snapshot.active.items():
            active_parts[key_partition(key, partitions)][key] = record

        with ThreadPoolExecutor(max_workers=partitions) as executor:
            results = list(executor.map(self._classify_partition, source_parts, active_parts))

        logger.info(f"Merged classification from {partitions} partitions")
        return reduce(lambda a, b: a.merge(b), results, ChangeSet())

    def _classify_partition(self, source: Dict[Hashable, SourceRecord],
                            active: Dict[Hashable, HistoryRecord]) -> ChangeSet:
        new = set()
        changed = set()
        unchanged = set()

        for key, source_record in source.items():
            active_record = active.get(key)
            if active_record is None:
                new.add(key)
            elif self.has_changed(active_record, source_record):
                changed.add(key)
            else:
                unchanged.add(key)

        absent = {key for key in active if key not in source}

        return ChangeSet(
            new=frozenset(new),
            changed=frozenset(changed),
            absent=frozenset(absent),
            unchanged=frozenset(unchanged)
        )
