"""
Unit tests for HistoryProcessor.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from scd_history.scd_type2.processor import HistoryProcessor
from scd_history.scd_type2.models import HistoryRecord
from scd_history.storage.memory import InMemoryHistorySink, InMemorySource
from scd_history.common.config import HistoryConfig, RunContext
from scd_history.common.exceptions import (
    DuplicateActiveVersion,
    PartialWriteError,
    ReconciliationError,
    SchemaMismatch,
    SinkUnavailable
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=1)
T2 = T0 + timedelta(days=2)


class TestHistoryProcessor:
    """Test cases for HistoryProcessor."""

    @pytest.fixture
    def config(self):
        """Create history configuration for testing."""
        return HistoryConfig(
            source_alias="products",
            unique_key="sku",
            fields_to_track=["sku", "name", "price"]
        )

    @pytest.fixture
    def sink(self, config):
        return InMemoryHistorySink(config, [
            HistoryRecord("K2", {"name": "Lamp", "price": 30}, "b0", T0, T0, T0),
            HistoryRecord("K3", {"name": "Desk", "price": 10}, "b0", T0, T0, T0),
            HistoryRecord("K4", {"name": "Chair", "price": 20}, "b0", T0, T0, T0),
        ])

    @pytest.fixture
    def source(self):
        return InMemorySource([
            {"sku": "K1", "name": "Shelf", "price": 15},
            {"sku": "K3", "name": "Desk", "price": 12},
            {"sku": "K4", "name": "Chair", "price": 20},
        ])

    @pytest.fixture
    def processor(self, config, source, sink):
        return HistoryProcessor(config, source, sink)

    def rows_for(self, sink, key):
        return [r for r in sink.read_all() if r.key == key]

    def test_init(self, config, source, sink):
        """Test HistoryProcessor initialization."""
        processor = HistoryProcessor(config, source, sink)

        assert processor.config == config
        assert processor.source is source
        assert processor.sink is sink
        assert processor.loader is not None
        assert processor.classifier is not None
        assert processor.materializer is not None
        assert processor.closer is not None
        assert processor.writer is not None
        assert processor.validator is not None

    def test_run_metrics(self, processor):
        metrics = processor.run(RunContext("b1", T1))

        assert metrics.batch_id == "b1"
        assert metrics.source_records == 3
        assert metrics.active_records == 3
        assert metrics.new_records == 1
        assert metrics.changed_records == 1
        assert metrics.absent_records == 1
        assert metrics.unchanged_records == 1
        assert metrics.rows_appended == 2
        assert metrics.rows_closed == 2
        assert metrics.processing_time_seconds >= 0

    def test_new_key_is_appended(self, processor, sink):
        """A source key missing from history gets one active row."""
        processor.run(RunContext("b1", T1))

        rows = self.rows_for(sink, "K1")
        assert len(rows) == 1
        assert rows[0].valid_to is None
        assert rows[0].valid_from == T1
        assert rows[0].batch_id == "b1"
        assert rows[0].attributes == {"name": "Shelf", "price": 15}

    def test_absent_key_is_closed_without_new_row(self, processor, sink):
        processor.run(RunContext("b1", T1))

        rows = self.rows_for(sink, "K2")
        assert len(rows) == 1
        assert rows[0].valid_to == T1
        assert rows[0].updated_at == T1
        assert rows[0].batch_id == "b0"

    def test_changed_key_is_closed_and_versioned(self, processor, sink):
        processor.run(RunContext("b1", T1))

        rows = self.rows_for(sink, "K3")
        assert len(rows) == 2
        old, new = rows
        assert old.attributes["price"] == 10
        assert old.valid_to == T1
        assert new.attributes["price"] == 12
        assert new.valid_from == T1
        assert new.valid_to is None

    def test_unchanged_key_is_untouched(self, processor, sink):
        processor.run(RunContext("b1", T1))

        rows = self.rows_for(sink, "K4")
        assert len(rows) == 1
        assert rows[0].updated_at == T0
        assert rows[0].valid_to is None

    def test_rerun_is_idempotent(self, processor, sink):
        """Running again against an unchanged source writes nothing."""
        processor.run(RunContext("b1", T1))
        active_after_first = {r.key: r for r in sink.read_active()}
        writes_after_first = sink.write_count

        metrics = processor.run(RunContext("b2", T2))

        assert metrics.total_writes == 0
        assert metrics.unchanged_records == 3
        assert sink.write_count == writes_after_first
        assert {r.key: r for r in sink.read_active()} == active_after_first
        assert active_after_first["K3"].attributes["price"] == 12

    def test_history_fields_never_change(self, processor, sink):
        before = {r.row_ref: r for r in sink.read_all()}

        processor.run(RunContext("b1", T1))

        for row_ref, old in before.items():
            current = sink.read_all()[row_ref]
            assert current.attributes == old.attributes
            assert current.created_at == old.created_at
            assert current.valid_from == old.valid_from
            assert current.batch_id == old.batch_id

    def test_at_most_one_active_per_key(self, processor, sink):
        processor.run(RunContext("b1", T1))

        active_keys = [r.key for r in sink.read_active()]
        assert len(active_keys) == len(set(active_keys))

    def test_plan_does_not_write(self, processor, sink):
        change_set, plan = processor.plan(RunContext("dry", T1))

        assert change_set.counts() == {"new": 1, "changed": 1, "absent": 1, "unchanged": 1}
        assert len(plan.closures) == 2
        assert len(plan.versions) == 2
        assert sink.write_count == 0

    def test_schema_mismatch_aborts_without_writes(self, config, sink):
        source = InMemorySource([{"sku": "K1", "name": "Shelf"}])
        processor = HistoryProcessor(config, source, sink)

        with pytest.raises(SchemaMismatch):
            processor.run(RunContext("b1", T1))

        assert sink.write_count == 0

    def test_partial_write_surfaces(self, processor, sink):
        with patch.object(sink, "apply_changes", side_effect=RuntimeError("commit failed")):
            with pytest.raises(PartialWriteError):
                processor.run(RunContext("b1", T1))

        assert len(sink.read_all()) == 3

    def test_unexpected_error_is_wrapped(self, processor):
        processor.classifier = Mock()
        processor.classifier.classify.side_effect = KeyError("boom")

        with pytest.raises(ReconciliationError) as exc_info:
            processor.run(RunContext("b1", T1))

        assert exc_info.value.processing_step == "classify"
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_post_write_validation(self, processor, sink):
        """A sink that ends up with two active rows fails the run."""
        original_read_active = sink.read_active

        def read_active_with_duplicate():
            rows = list(original_read_active())
            return rows + [rows[0]]

        with patch.object(sink, "read_active", side_effect=[original_read_active(),
                                                             read_active_with_duplicate()]):
            with pytest.raises(DuplicateActiveVersion):
                processor.run(RunContext("b1", T1))

    def test_get_table_info(self, processor):
        info = processor.get_table_info()

        assert info["total_records"] == 3
        assert info["active_records"] == 3

    def test_validate_table_schema(self, processor, config, source):
        assert processor.validate_table_schema() is True

        bad_sink = InMemoryHistorySink(config, columns=["sku", "name"])
        assert HistoryProcessor(config, source, bad_sink).validate_table_schema() is False

    def test_validate_history(self, processor):
        processor.run(RunContext("b1", T1))

        result = processor.validate_history()

        assert result.is_valid is True

    def test_rerun_with_nan_is_idempotent(self, config):
        sink = InMemoryHistorySink(config)
        source = InMemorySource([{"sku": "K1", "name": "Shelf", "price": float("nan")}])
        processor = HistoryProcessor(config, source, sink)

        processor.run(RunContext("b1", T1))
        metrics = processor.run(RunContext("b2", T2))

        assert metrics.unchanged_records == 1
        assert metrics.total_writes == 0
        assert len(sink.read_all()) == 1

    def test_naive_seeded_row_is_closed(self, config):
        naive_start = datetime(2024, 1, 1)
        sink = InMemoryHistorySink(config, [
            HistoryRecord("K1", {"name": "Shelf", "price": 15}, "b0",
                          naive_start, naive_start, naive_start)
        ])
        processor = HistoryProcessor(config, InMemorySource([], columns=["sku", "name", "price"]), sink)

        metrics = processor.run(RunContext("b1", T2))

        assert metrics.rows_closed == 1
        assert sink.read_all()[0].valid_to == T2

    def test_post_write_read_failure_is_sink_unavailable(self, processor, sink):
        original_read_active = sink.read_active

        with patch.object(sink, "read_active", side_effect=[original_read_active(),
                                                             IOError("connection reset")]):
            with pytest.raises(SinkUnavailable):
                processor.run(RunContext("b1", T1))

    def test_run_with_batch_id(self, processor, sink):
        metrics = processor.run(batch_id="nightly")

        assert metrics.batch_id == "nightly"
        assert all(r.batch_id == "nightly" for r in sink.read_all() if r.key == "K1")
