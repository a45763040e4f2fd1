"""
Utility functions for SCD history reconciliation.
"""

from datetime import datetime, timezone
from typing import Any, Hashable, Iterable, List, Optional
import hashlib
import math
import logging

logger = logging.getLogger(__name__)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to a timezone-aware UTC datetime.

    Naive datetimes are interpreted as local time, which is how PySpark
    hands back TimestampType values.

    Args:
        value: Datetime or None

    Returns:
        UTC datetime, or None when value is None
    """
    if value is None:
        return None
    return value.astimezone(timezone.utc)


def find_missing_columns(columns: Iterable[str], required_columns: List[str]) -> List[str]:
    """
    Return the required columns absent from a row shape, in required order.

    Args:
        columns: Column names exposed by a source or sink
        required_columns: List of required column names

    Returns:
        List of missing column names
    """
    existing_columns = set(columns)
    missing_columns = [c for c in required_columns if c not in existing_columns]

    if missing_columns:
        logger.error(f"Missing required columns: {missing_columns}")

    return missing_columns


def values_differ(old: Any, new: Any, null_safe: bool = True) -> bool:
    """
    Compare a tracked value between the active version and the source.

    With null_safe (IS DISTINCT FROM) two nulls are equal and null against a
    value is a change. Without it, comparisons involving null never report a
    change, matching SQL `<>` under three-valued logic. NaN equals NaN, as
    with Spark null-safe equality.
    """
    if old is None or new is None:
        if not null_safe:
            return False
        return (old is None) != (new is None)
    if isinstance(old, float) and isinstance(new, float) and math.isnan(old) and math.isnan(new):
        return False
    return old != new


def key_partition(key: Hashable, partition_count: int) -> int:
    """
    Assign a key to a stable partition.

    Uses a digest of repr(key) rather than hash() so partitioning does not
    depend on PYTHONHASHSEED.
    """
    if partition_count == 1:
        return 0
    digest = hashlib.md5(repr(key).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % partition_count


def sort_key(key: Any) -> tuple:
    """Ordering for keys of mixed types, used for deterministic output."""
    return (type(key).__name__, repr(key))
