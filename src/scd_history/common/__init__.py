"""
Common utilities and configurations for SCD history reconciliation.
"""

from .config import HistoryConfig, RunContext, RunMetrics, ValidationResult, load_config
from .exceptions import (
    HistoryProcessingError,
    ConfigurationError,
    SourceUnavailable,
    SinkUnavailable,
    SchemaMismatch,
    SourceValidationError,
    DuplicateSourceKey,
    DuplicateActiveVersion,
    InvalidIntervalError,
    WriteConflict,
    PartialWriteError,
    ConcurrentRunError,
    ReconciliationError
)
from .utils import to_utc, find_missing_columns, values_differ

__all__ = [
    "HistoryConfig",
    "RunContext",
    "RunMetrics",
    "ValidationResult",
    "load_config",
    "HistoryProcessingError",
    "ConfigurationError",
    "SourceUnavailable",
    "SinkUnavailable",
    "SchemaMismatch",
    "SourceValidationError",
    "DuplicateSourceKey",
    "DuplicateActiveVersion",
    "InvalidIntervalError",
    "WriteConflict",
    "PartialWriteError",
    "ConcurrentRunError",
    "ReconciliationError",
    "to_utc",
    "find_missing_columns",
    "values_differ"
]
