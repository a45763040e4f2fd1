"""
SCD History Library

Maintains slowly-changing-dimension (SCD Type 2) history tables from a
periodically refreshed source. Every run closes superseded or vanished
versions and appends new ones; no historical row is ever deleted.

Main Components:
- HistoryProcessor: Runs one reconciliation (load, classify, close, materialize, write)
- HistoryConfig: Per-entity-type configuration (source alias, unique key, tracked fields)
- InMemoryHistorySink / DeltaHistorySink: History table collaborators

Author: Data Engineering Team
Version: 1.0.0
"""

from .scd_type2.processor import HistoryProcessor
from .scd_type2.models import SourceRecord, HistoryRecord, ChangeSet, WritePlan
from .common.config import HistoryConfig, RunContext, RunMetrics, load_config
from .common.exceptions import (
    HistoryProcessingError,
    ConfigurationError,
    SourceUnavailable,
    SinkUnavailable,
    SchemaMismatch,
    DuplicateSourceKey,
    DuplicateActiveVersion,
    PartialWriteError,
    ConcurrentRunError,
    ReconciliationError
)
from .storage import InMemorySource, InMemoryHistorySink

__version__ = "1.0.0"
__author__ = "Data Engineering Team"

__all__ = [
    "HistoryProcessor",
    "SourceRecord",
    "HistoryRecord",
    "ChangeSet",
    "WritePlan",
    "HistoryConfig",
    "RunContext",
    "RunMetrics",
    "load_config",
    "HistoryProcessingError",
    "ConfigurationError",
    "SourceUnavailable",
    "SinkUnavailable",
    "SchemaMismatch",
    "DuplicateSourceKey",
    "DuplicateActiveVersion",
    "PartialWriteError",
    "ConcurrentRunError",
    "ReconciliationError",
    "InMemorySource",
    "InMemoryHistorySink"
]
