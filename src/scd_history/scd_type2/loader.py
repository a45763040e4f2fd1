"""
Snapshot loading for SCD history reconciliation.
"""

import logging

from ..common.config import HistoryConfig
from ..common.exceptions import SourceUnavailable, SinkUnavailable
from .models import Snapshot
from .validators import SCDValidator

logger = logging.getLogger(__name__)


class SnapshotLoader:
    """Reads the current source rows and the active history rows."""

    def __init__(self, config: HistoryConfig, validator: SCDValidator = None):
        """
        Initialize SnapshotLoader with configuration.

        Args:
            config: History configuration
            validator: Validator used to check shapes and build the key indexes
        """
        self.config = config
        self.validator = validator or SCDValidator(config)

    def check_schema(self, source, sink) -> None:
        """Fail with SchemaMismatch before anything is read or classified."""
        source_columns = self._read(source, lambda: source.columns, "source")
        sink_columns = self._read(sink, lambda: sink.columns, "sink")
        self.validator.validate_source_schema(source_columns)
        self.validator.validate_sink_schema(sink_columns)

    def load(self, source, sink) -> Snapshot:
        """
        Load the snapshot pair for one run.

        Args:
            source: SnapshotSource collaborator
            sink: HistorySink collaborator

        Returns:
            Snapshot keyed by unique key
        """
        self.check_schema(source, sink)

        source_rows = self._read(source, source.read_records, "source")
        source_index = self.validator.build_source_index(source_rows)

        active_index = self.validator.build_active_index(self.read_active(sink))

        logger.info(f"Loaded snapshot for {self.config.source_alias}: "
                    f"{len(source_index)} source records, {len(active_index)} active records")
        return Snapshot(source=source_index, active=active_index)

    def read_active(self, sink) -> list:
        """Read the active history rows, mapping failures to SinkUnavailable."""
        return self._read(sink, sink.read_active, "sink")

    def _read(self, collaborator, reader, side: str):
        try:
            result = reader()
            # Materialize lazy iterables so read errors surface here
            return list(result)
        except Exception as e:
            name = getattr(collaborator, "name", side)
            logger.error(f"Failed to read {side} {name}: {str(e)}")
            if side == "source":
                raise SourceUnavailable(f"Cannot read source {name}: {str(e)}",
                                        source_alias=self.config.source_alias) from e
            raise SinkUnavailable(f"Cannot read history table {name}: {str(e)}",
                                  target_table=self.config.target_table) from e
