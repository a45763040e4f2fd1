"""
Writing of reconciliation results to the history sink.
"""

from contextlib import contextmanager
from typing import Dict
import logging
import threading

from ..common.config import HistoryConfig, RunContext
from ..common.exceptions import (
    ConcurrentRunError,
    PartialWriteError,
    SchemaMismatch,
    SinkUnavailable,
    WriteConflict
)
from .models import WritePlan

logger = logging.getLogger(__name__)


class RunLock:
    """Process-wide single-writer lock per target table."""

    _registry: Dict[str, threading.Lock] = {}
    _registry_lock = threading.Lock()

    @classmethod
    def for_table(cls, target_table: str) -> threading.Lock:
        with cls._registry_lock:
            return cls._registry.setdefault(target_table, threading.Lock())

    @classmethod
    @contextmanager
    def hold(cls, target_table: str, timeout: float):
        """Hold the lock for target_table, failing after timeout seconds."""
        lock = cls.for_table(target_table)
        if not lock.acquire(timeout=timeout):
            logger.error(f"Timed out after {timeout}s waiting for run lock on {target_table}")
            raise ConcurrentRunError(
                f"Another run is still reconciling {target_table}",
                target_table=target_table
            )
        try:
            yield
        finally:
            lock.release()


class HistoryWriter:
    """Applies a WritePlan to a sink as a single unit."""

    def __init__(self, config: HistoryConfig):
        self.config = config

    def write(self, plan: WritePlan, sink, context: RunContext) -> int:
        """
        Apply closures and appends together.

        Args:
            plan: Closures and new versions for this run
            sink: HistorySink collaborator
            context: Current run identity

        Returns:
            Number of rows touched
        """
        if plan.is_empty:
            logger.info(f"Nothing to write for batch {context.batch_id}")
            return 0

        logger.info(f"Writing batch {context.batch_id} to {self.config.target_table}: "
                    f"{len(plan.closures)} closures, {len(plan.versions)} appends")
        try:
            sink.apply_changes(plan.closures, plan.versions)
        except (SinkUnavailable, WriteConflict, SchemaMismatch):
            raise
        except Exception as e:
            logger.error(f"Write of batch {context.batch_id} failed: {str(e)}")
            raise PartialWriteError(
                f"Batch {context.batch_id} could not be applied to {self.config.target_table}; "
                f"rerun the reconciliation once the sink state is confirmed: {str(e)}",
                batch_id=context.batch_id
            ) from e

        return len(plan.closures) + len(plan.versions)
