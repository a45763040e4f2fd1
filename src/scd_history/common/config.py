"""
Configuration classes for SCD history reconciliation.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
import json
import uuid

from .exceptions import ConfigurationError


@dataclass
class HistoryConfig:
    """Per-entity-type configuration for SCD Type 2 history reconciliation."""

    # Required parameters
    source_alias: str
    unique_key: str
    fields_to_track: List[str]

    # Optional parameters
    target_table: Optional[str] = None

    # Standard metadata column names
    batch_id_column: str = "dbt_batch_id"
    created_at_column: str = "dbt_created_at"
    updated_at_column: str = "dbt_updated_at"
    valid_from_column: str = "dbt_valid_from"
    valid_to_column: str = "dbt_valid_to"

    # Change detection
    null_safe_comparison: bool = True

    # Performance settings
    partition_count: int = 1

    # Run safety
    lock_timeout_seconds: float = 300.0
    validate_after_write: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.source_alias:
            raise ValueError("source_alias is required")
        if not self.unique_key:
            raise ValueError("unique_key is required")
        if not self.fields_to_track:
            raise ValueError("fields_to_track cannot be empty")
        if len(set(self.fields_to_track)) != len(self.fields_to_track):
            raise ValueError("fields_to_track cannot contain duplicates")
        if self.partition_count <= 0:
            raise ValueError("partition_count must be positive")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")

        self.fields_to_track = list(self.fields_to_track)
        if not self.target_table:
            self.target_table = f"{self.source_alias}_history"

        metadata = self.metadata_columns
        if len(set(metadata)) != len(metadata):
            raise ValueError("metadata column names must be distinct")
        clashing = set(metadata) & ({self.unique_key} | set(self.fields_to_track))
        if clashing:
            raise ValueError(f"metadata columns clash with tracked columns: {sorted(clashing)}")

    @property
    def metadata_columns(self) -> List[str]:
        """Metadata columns in the order they are written."""
        return [
            self.batch_id_column,
            self.created_at_column,
            self.updated_at_column,
            self.valid_from_column,
            self.valid_to_column
        ]

    @property
    def attribute_columns(self) -> List[str]:
        """Tracked columns without the key, which may itself be tracked."""
        return [name for name in self.fields_to_track if name != self.unique_key]

    @property
    def record_columns(self) -> List[str]:
        """Every column a source record must expose."""
        return [self.unique_key] + self.attribute_columns

    @property
    def history_columns(self) -> List[str]:
        """Every column a history row carries."""
        return self.record_columns + self.metadata_columns

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryConfig":
        """
        Build a configuration from a plain dictionary.

        Args:
            data: Configuration values keyed by field name

        Returns:
            HistoryConfig instance
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {sorted(unknown)}",
                config_field=sorted(unknown)[0]
            )
        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {str(e)}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(path: str) -> HistoryConfig:
    """
    Load a HistoryConfig from a JSON file.

    Args:
        path: Path to the JSON entity configuration

    Returns:
        HistoryConfig instance
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file '{path}': {str(e)}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Configuration file '{path}' is not valid JSON: {str(e)}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a JSON object")
    return HistoryConfig.from_dict(data)


@dataclass(frozen=True)
class RunContext:
    """Identity of a single reconciliation run."""

    batch_id: str
    run_timestamp: datetime

    def __post_init__(self):
        if not self.batch_id:
            raise ValueError("batch_id is required")
        if self.run_timestamp.tzinfo is None:
            raise ValueError("run_timestamp must be timezone-aware")

    @classmethod
    def create(cls, batch_id: Optional[str] = None,
               run_timestamp: Optional[datetime] = None) -> "RunContext":
        """Create a run context, generating any value not supplied."""
        return cls(
            batch_id=batch_id or uuid.uuid4().hex,
            run_timestamp=run_timestamp or datetime.now(timezone.utc)
        )


@dataclass
class RunMetrics:
    """Metrics for a reconciliation run."""

    batch_id: str = ""
    source_records: int = 0
    active_records: int = 0
    new_records: int = 0
    changed_records: int = 0
    absent_records: int = 0
    unchanged_records: int = 0
    rows_appended: int = 0
    rows_closed: int = 0
    processing_time_seconds: float = 0.0

    @property
    def total_writes(self) -> int:
        return self.rows_appended + self.rows_closed

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "batch_id": self.batch_id,
            "source_records": self.source_records,
            "active_records": self.active_records,
            "new_records": self.new_records,
            "changed_records": self.changed_records,
            "absent_records": self.absent_records,
            "unchanged_records": self.unchanged_records,
            "rows_appended": self.rows_appended,
            "rows_closed": self.rows_closed,
            "processing_time_seconds": self.processing_time_seconds
        }


@dataclass
class ValidationResult:
    """Result of data validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to dictionary."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings
        }
