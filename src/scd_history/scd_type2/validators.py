"""
Data validation utilities for SCD history reconciliation.
"""

from collections import Counter, defaultdict
from typing import Any, Dict, Hashable, Iterable, List, Mapping
import logging

from ..common.config import HistoryConfig, ValidationResult
from ..common.exceptions import (
    SchemaMismatch,
    SourceValidationError,
    DuplicateSourceKey,
    DuplicateActiveVersion
)
from ..common.utils import find_missing_columns, sort_key
from .models import HistoryRecord, SourceRecord

logger = logging.getLogger(__name__)


class SCDValidator:
    """Validates row shapes, source records and history invariants."""

    def __init__(self, config: HistoryConfig):
        """
        Initialize SCDValidator with configuration.

        Args:
            config: History configuration
        """
        self.config = config

    def validate_source_schema(self, columns: Iterable[str]) -> None:
        """Raise SchemaMismatch if the source lacks the key or a tracked field."""
        missing = find_missing_columns(columns, self.config.record_columns)
        if missing:
            raise SchemaMismatch(
                f"Source '{self.config.source_alias}' is missing columns: {missing}",
                missing_columns=missing,
                side="source"
            )

    def validate_sink_schema(self, columns: Iterable[str]) -> None:
        """Raise SchemaMismatch if the history table lacks a tracked or metadata column."""
        missing = find_missing_columns(columns, self.config.history_columns)
        if missing:
            raise SchemaMismatch(
                f"History table '{self.config.target_table}' is missing columns: {missing}",
                missing_columns=missing,
                side="sink"
            )

    def build_source_index(self, rows: Iterable[Mapping[str, Any]]) -> Dict[Hashable, SourceRecord]:
        """
        Key the source rows by unique key.

        Args:
            rows: Source rows

        Returns:
            Dictionary of SourceRecord by key
        """
        index: Dict[Hashable, SourceRecord] = {}
        duplicates = set()
        null_keys = 0

        for row in rows:
            record = SourceRecord.from_row(row, self.config)
            if record.key is None:
                null_keys += 1
                continue
            if record.key in index:
                duplicates.add(record.key)
            index[record.key] = record

        if null_keys:
            message = f"Found {null_keys} null values in unique key column: {self.config.unique_key}"
            logger.error(message)
            raise SourceValidationError(message, validation_errors=[message])
        if duplicates:
            keys = sorted(duplicates, key=sort_key)
            logger.error(f"Source emitted duplicate keys: {keys}")
            raise DuplicateSourceKey(
                f"Source '{self.config.source_alias}' emitted {len(keys)} duplicate keys: {keys}",
                keys=keys
            )
        return index

    def build_active_index(self, records: Iterable[HistoryRecord]) -> Dict[Hashable, HistoryRecord]:
        """
        Key the active history rows by unique key.

        Args:
            records: Active history rows

        Returns:
            Dictionary of HistoryRecord by key
        """
        index: Dict[Hashable, HistoryRecord] = {}
        duplicates = set()

        for record in records:
            if not record.is_active:
                continue
            if record.key in index:
                duplicates.add(record.key)
            index[record.key] = record

        if duplicates:
            self._raise_duplicate_active(duplicates)
        return index

    def validate_active_set(self, records: Iterable[HistoryRecord]) -> None:
        """Raise DuplicateActiveVersion if any key has more than one active row."""
        counts = Counter(r.key for r in records if r.is_active)
        duplicates = {key for key, count in counts.items() if count > 1}
        if duplicates:
            self._raise_duplicate_active(duplicates)

    def validate_history(self, records: Iterable[HistoryRecord]) -> ValidationResult:
        """
        Check a full history for interval consistency.

        Args:
            records: Every history row

        Returns:
            ValidationResult with validation status and errors
        """
        result = ValidationResult(is_valid=True)
        by_key: Dict[Hashable, List[HistoryRecord]] = defaultdict(list)
        for record in records:
            by_key[record.key].append(record)

        for key, versions in by_key.items():
            active = [v for v in versions if v.is_active]
            if len(active) > 1:
                result.add_error(f"Key {key!r} has {len(active)} active versions")

            for v in versions:
                if v.valid_to is not None and v.valid_to < v.valid_from:
                    result.add_error(f"Key {key!r} has valid_to before valid_from ({v.batch_id})")

            ordered = sorted(versions, key=lambda v: v.valid_from)
            for previous, current in zip(ordered, ordered[1:]):
                if previous.valid_to is None or previous.valid_to > current.valid_from:
                    result.add_error(f"Key {key!r} has overlapping versions from "
                                     f"{previous.batch_id} and {current.batch_id}")

            if versions and not active:
                result.add_warning(f"Key {key!r} has no active version")

        logger.info(f"History validation completed. Valid: {result.is_valid}, Errors: {len(result.errors)}")
        return result

    def _raise_duplicate_active(self, duplicates) -> None:
        keys = sorted(duplicates, key=sort_key)
        logger.error(f"Found {len(keys)} keys with more than one active version: {keys}")
        raise DuplicateActiveVersion(
            f"History table '{self.config.target_table}' has multiple active versions for keys: {keys}",
            keys=keys
        )
