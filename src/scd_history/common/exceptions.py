"""
Custom exceptions for SCD history reconciliation.
"""


class HistoryProcessingError(Exception):
    """Base exception for the SCD history library."""

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ConfigurationError(HistoryProcessingError):
    """Exception raised when configuration is invalid."""

    def __init__(self, message: str, config_field: str = None):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.config_field = config_field


class SourceUnavailable(HistoryProcessingError):
    """Exception raised when the source collection cannot be read."""

    def __init__(self, message: str, source_alias: str = None):
        super().__init__(message, "SOURCE_UNAVAILABLE")
        self.source_alias = source_alias


class SinkUnavailable(HistoryProcessingError):
    """Exception raised when the history sink cannot be read or written."""

    def __init__(self, message: str, target_table: str = None):
        super().__init__(message, "SINK_UNAVAILABLE")
        self.target_table = target_table


class SchemaMismatch(HistoryProcessingError):
    """Exception raised when a configured column is missing from a row shape."""

    def __init__(self, message: str, missing_columns: list = None, side: str = None):
        super().__init__(message, "SCHEMA_MISMATCH")
        self.missing_columns = missing_columns or []
        self.side = side


class SourceValidationError(HistoryProcessingError):
    """Exception raised when source records fail validation."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, "SOURCE_VALIDATION_ERROR")
        self.validation_errors = validation_errors or []


class DuplicateSourceKey(SourceValidationError):
    """Exception raised when the source emits the same key more than once."""

    def __init__(self, message: str, keys: list = None):
        super().__init__(message)
        self.error_code = "DUPLICATE_SOURCE_KEY"
        self.keys = keys or []


class DuplicateActiveVersion(HistoryProcessingError):
    """Exception raised when a key has more than one active history row."""

    def __init__(self, message: str, keys: list = None):
        super().__init__(message, "DUPLICATE_ACTIVE_VERSION")
        self.keys = keys or []


class InvalidIntervalError(HistoryProcessingError):
    """Exception raised when closing a row would produce a negative interval."""

    def __init__(self, message: str, key=None):
        super().__init__(message, "INVALID_INTERVAL")
        self.key = key


class WriteConflict(HistoryProcessingError):
    """Exception raised when a closure targets a row that is no longer active."""

    def __init__(self, message: str, keys: list = None):
        super().__init__(message, "WRITE_CONFLICT")
        self.keys = keys or []


class PartialWriteError(HistoryProcessingError):
    """Exception raised when a run's writes could not be applied as a unit."""

    def __init__(self, message: str, batch_id: str = None):
        super().__init__(message, "PARTIAL_WRITE_ERROR")
        self.batch_id = batch_id


class ConcurrentRunError(HistoryProcessingError):
    """Exception raised when another run holds the target table."""

    def __init__(self, message: str, target_table: str = None):
        super().__init__(message, "CONCURRENT_RUN_ERROR")
        self.target_table = target_table


class ReconciliationError(HistoryProcessingError):
    """Exception raised when reconciliation fails unexpectedly."""

    def __init__(self, message: str, processing_step: str = None):
        super().__init__(message, "RECONCILIATION_ERROR")
        self.processing_step = processing_step
