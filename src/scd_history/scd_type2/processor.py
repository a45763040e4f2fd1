"""
Main SCD Type 2 history processor with clean separation of concerns.
"""

from typing import Optional, Tuple
import logging
import time

from ..common.config import HistoryConfig, RunContext, RunMetrics, ValidationResult
from ..common.exceptions import HistoryProcessingError, ReconciliationError
from .classifier import ChangeClassifier
from .closer import Closer
from .loader import SnapshotLoader
from .materializer import VersionMaterializer
from .models import ChangeSet, Snapshot, WritePlan
from .validators import SCDValidator
from .writer import HistoryWriter, RunLock

logger = logging.getLogger(__name__)


class HistoryProcessor:
    """Reconciles a source snapshot into an SCD Type 2 history table."""

    def __init__(self, config: HistoryConfig, source, sink):
        """
        Initialize HistoryProcessor with configuration and collaborators.

        Args:
            config: History configuration for one entity type
            source: SnapshotSource to read current records from
            sink: HistorySink holding the versioned rows
        """
        self.config = config
        self.source = source
        self.sink = sink

        # Initialize components
        self.validator = SCDValidator(config)
        self.loader = SnapshotLoader(config, self.validator)
        self.classifier = ChangeClassifier(config)
        self.materializer = VersionMaterializer(config)
        self.closer = Closer(config)
        self.writer = HistoryWriter(config)

        logger.info(f"Initialized HistoryProcessor for table: {config.target_table}")

    def run(self, context: Optional[RunContext] = None,
            batch_id: Optional[str] = None) -> RunMetrics:
        """
        Main entry point for one reconciliation run.

        Args:
            context: Run identity; generated once the run lock is held when omitted
            batch_id: Batch identifier for a generated context

        Returns:
            RunMetrics: Classification counts and rows written
        """
        logger.info("🚀 ENTER: run")
        start_time = time.time()
        step = "lock"

        try:
            with RunLock.hold(self.config.target_table, self.config.lock_timeout_seconds):
                # The run timestamp must not precede the previous run's versions
                context = context or RunContext.create(batch_id=batch_id)
                logger.info(f"Reconciling {self.config.target_table} as batch {context.batch_id}")

                # Step 1: Load source and active history
                step = "load"
                snapshot = self.loader.load(self.source, self.sink)

                # Step 2: Classify and build the write plan
                step = "classify"
                change_set, plan = self._build_plan(snapshot, context)

                # Step 3: Apply closures and appends together
                step = "write"
                self.writer.write(plan, self.sink, context)

                # Step 4: Confirm the at-most-one-active invariant
                if self.config.validate_after_write and not plan.is_empty:
                    step = "validate"
                    self.validator.validate_active_set(self.loader.read_active(self.sink))

            metrics = self._metrics(snapshot, change_set, plan, context)
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Reconciliation completed successfully. Metrics: {metrics.to_dict()}")
            logger.info("🏁 EXIT: run")
            return metrics

        except HistoryProcessingError:
            logger.info("🏁 EXIT: run (with error)")
            raise
        except Exception as e:
            logger.error(f"Reconciliation failed during {step}: {str(e)}")
            logger.info("🏁 EXIT: run (with error)")
            raise ReconciliationError(f"Reconciliation failed during {step}: {str(e)}",
                                      processing_step=step) from e

    def plan(self, context: Optional[RunContext] = None) -> Tuple[ChangeSet, WritePlan]:
        """
        Compute the classification and write plan without writing.

        Args:
            context: Run identity; generated when omitted

        Returns:
            Tuple of ChangeSet and WritePlan
        """
        context = context or RunContext.create()
        snapshot = self.loader.load(self.source, self.sink)
        return self._build_plan(snapshot, context)

    def _build_plan(self, snapshot: Snapshot, context: RunContext) -> Tuple[ChangeSet, WritePlan]:
        change_set = self.classifier.classify(snapshot)

        if snapshot.active and not snapshot.source:
            logger.warning(f"Source {self.config.source_alias} is empty; "
                           f"all {len(snapshot.active)} active versions will be closed")

        closures = self.closer.close(change_set, snapshot, context)
        versions = self.materializer.materialize(change_set, snapshot, context)
        return change_set, WritePlan(closures=closures, versions=versions)

    def _metrics(self, snapshot: Snapshot, change_set: ChangeSet, plan: WritePlan,
                 context: RunContext) -> RunMetrics:
        return RunMetrics(
            batch_id=context.batch_id,
            source_records=len(snapshot.source),
            active_records=len(snapshot.active),
            new_records=len(change_set.new),
            changed_records=len(change_set.changed),
            absent_records=len(change_set.absent),
            unchanged_records=len(change_set.unchanged),
            rows_appended=len(plan.versions),
            rows_closed=len(plan.closures)
        )

    def get_table_info(self) -> dict:
        """
        Get information about the history table.

        Returns:
            Dictionary with table information
        """
        return self.sink.table_info()

    def validate_table_schema(self) -> bool:
        """
        Validate that the history table has the tracked and metadata columns.

        Returns:
            True if schema is valid, False otherwise
        """
        try:
            self.validator.validate_sink_schema(self.sink.columns)
        except HistoryProcessingError as e:
            logger.error(f"Failed to validate table schema: {str(e)}")
            return False

        logger.info("History table schema validation passed")
        return True

    def validate_history(self) -> ValidationResult:
        """Check every stored version for interval consistency."""
        return self.validator.validate_history(self.sink.read_all())
