"""
Unit tests for the Spark source and Delta history sink with mocked Spark session.
This version avoids Java dependency issues for development.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
from pyspark.sql import Row
from pyspark.sql.types import StructType, StructField, StringType, IntegerType, TimestampType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from scd_history.storage.delta import DeltaHistorySink, SparkTableSource, MERGE_KEY_COLUMN
from scd_history.scd_type2.models import HistoryRecord
from scd_history.common.config import HistoryConfig
from scd_history.common.exceptions import SinkUnavailable, WriteConflict

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=1)


class TestSparkTableSource:
    """Test cases for SparkTableSource."""

    def test_requires_exactly_one_input(self):
        with pytest.raises(ValueError):
            SparkTableSource(Mock())
        with pytest.raises(ValueError):
            SparkTableSource(Mock(), table_name="t", dataframe=Mock())

    def test_read_from_table(self):
        spark = Mock()
        df = spark.table.return_value
        df.columns = ["store_id", "store_name"]
        df.collect.return_value = [Row(store_id=1, store_name="North")]

        source = SparkTableSource(spark, table_name="staging.stores")

        assert source.columns == ["store_id", "store_name"]
        assert list(source.read_records()) == [{"store_id": 1, "store_name": "North"}]
        spark.table.assert_called_with("staging.stores")

    def test_column_types(self):
        df = Mock()
        df.schema = StructType([
            StructField("store_id", IntegerType(), False),
            StructField("store_name", StringType(), True),
        ])

        source = SparkTableSource(Mock(), dataframe=df)

        assert source.column_types() == {"store_id": "INT", "store_name": "STRING"}

    def test_read_from_dataframe(self):
        df = Mock()
        df.columns = ["store_id"]
        df.collect.return_value = [Row(store_id=7)]

        source = SparkTableSource(Mock(), dataframe=df)

        assert source.name == "dataframe"
        assert list(source.read_records()) == [{"store_id": 7}]


class TestDeltaHistorySink:
    """Test cases for DeltaHistorySink with mocked Spark session."""

    @pytest.fixture
    def config(self):
        return HistoryConfig(source_alias="stores", unique_key="store_id",
                             fields_to_track=["store_name"], target_table="gold.stores_history")

    @pytest.fixture
    def table_schema(self):
        return StructType([
            StructField("store_id", IntegerType(), False),
            StructField("store_name", StringType(), True),
            StructField("dbt_batch_id", StringType(), True),
            StructField("dbt_created_at", TimestampType(), True),
            StructField("dbt_updated_at", TimestampType(), True),
            StructField("dbt_valid_from", TimestampType(), True),
            StructField("dbt_valid_to", TimestampType(), True),
        ])

    @pytest.fixture
    def active_row(self):
        return Row(store_id=1, store_name="North", dbt_batch_id="b0",
                   dbt_created_at=T0, dbt_updated_at=T0,
                   dbt_valid_from=T0, dbt_valid_to=None)

    @pytest.fixture
    def mock_spark(self, table_schema, active_row):
        """Create mocked Spark session."""
        mock_spark = Mock()
        table = mock_spark.table.return_value
        table.schema = table_schema
        table.columns = table_schema.fieldNames()
        table.collect.return_value = [active_row]
        table.filter.return_value.collect.return_value = [active_row]
        return mock_spark

    @pytest.fixture
    def sink(self, config, mock_spark):
        return DeltaHistorySink(config, mock_spark)

    def test_columns(self, sink, config):
        assert sink.columns == config.history_columns

    def test_read_active(self, sink, mock_spark):
        records = list(sink.read_active())

        mock_spark.table.return_value.filter.assert_called_with("dbt_valid_to IS NULL")
        assert len(records) == 1
        assert records[0].key == 1
        assert records[0].attributes == {"store_name": "North"}
        assert records[0].row_ref == (1, T0)
        assert records[0].is_active

    def test_merge_condition(self, sink):
        condition = sink._merge_condition()

        assert f"target.store_id = staged.{MERGE_KEY_COLUMN}" in condition
        assert "target.dbt_valid_to IS NULL" in condition
        assert "target.dbt_valid_from = staged.dbt_valid_from" in condition

    def test_staging_rows(self, sink):
        active = list(sink.read_active())[0]
        closure = replace(active, valid_to=T1, updated_at=T1)
        version = HistoryRecord(1, {"store_name": "Northgate"}, "b1", T1, T1, T1)

        rows = sink._staging_rows([closure], [version])

        assert rows[0][MERGE_KEY_COLUMN] == 1
        assert rows[0]["dbt_valid_to"] == T1
        assert rows[1][MERGE_KEY_COLUMN] is None
        assert rows[1]["store_name"] == "Northgate"

    def test_staging_schema(self, sink):
        schema = sink._staging_schema()

        assert schema.fieldNames()[-1] == MERGE_KEY_COLUMN
        assert isinstance(schema[MERGE_KEY_COLUMN].dataType, IntegerType)
        assert schema[MERGE_KEY_COLUMN].nullable is True

    @patch("scd_history.storage.delta.DeltaTable")
    def test_apply_changes_single_merge(self, mock_delta_table, sink, mock_spark):
        active = list(sink.read_active())[0]
        closure = replace(active, valid_to=T1, updated_at=T1)
        version = HistoryRecord(1, {"store_name": "Northgate"}, "b1", T1, T1, T1)

        sink.apply_changes([closure], [version])

        mock_delta_table.forName.assert_called_once_with(mock_spark, "gold.stores_history")
        rows, schema = mock_spark.createDataFrame.call_args[0]
        assert len(rows) == 2
        assert rows[0][-1] == 1
        assert rows[1][-1] is None

        merge = mock_delta_table.forName.return_value.alias.return_value.merge
        merge.assert_called_once()
        assert merge.call_args[0][1] == sink._merge_condition()

        matched = merge.return_value.whenMatchedUpdate
        assert matched.call_args[1]["set"] == {
            "dbt_valid_to": "staged.dbt_valid_to",
            "dbt_updated_at": "staged.dbt_updated_at"
        }
        not_matched = matched.return_value.whenNotMatchedInsert
        assert not_matched.call_args[1]["condition"] == f"staged.{MERGE_KEY_COLUMN} IS NULL"
        assert set(not_matched.call_args[1]["values"]) == set(sink.config.history_columns)
        not_matched.return_value.execute.assert_called_once()

    @patch("scd_history.storage.delta.DeltaTable")
    def test_stale_closure_conflicts_before_merge(self, mock_delta_table, sink):
        closure = HistoryRecord(1, {"store_name": "North"}, "b0", T0, T1,
                                T0 - timedelta(days=3), T1,
                                row_ref=(1, T0 - timedelta(days=3)))

        with pytest.raises(WriteConflict) as exc_info:
            sink.apply_changes([closure], [])

        assert exc_info.value.keys == [1]
        mock_delta_table.forName.return_value.alias.return_value.merge.assert_not_called()

    @patch("scd_history.storage.delta.DeltaTable")
    def test_missing_table_is_sink_unavailable(self, mock_delta_table, sink):
        mock_delta_table.forName.side_effect = Exception("Table not found")
        version = HistoryRecord(2, {"store_name": "South"}, "b1", T1, T1, T1)

        with pytest.raises(SinkUnavailable, match="Table not found"):
            sink.apply_changes([], [version])

    def test_create_table_if_not_exists(self, sink, mock_spark):
        mock_spark.catalog.tableExists.return_value = False

        sink.create_table_if_not_exists({"store_id": "INT"})

        sql = mock_spark.sql.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS gold.stores_history" in sql
        assert "USING DELTA" in sql
        assert "store_id INT" in sql
        assert "store_name STRING" in sql
        assert "dbt_valid_to TIMESTAMP" in sql

    def test_create_table_skipped_when_present(self, sink, mock_spark):
        mock_spark.catalog.tableExists.return_value = True

        sink.create_table_if_not_exists({})

        mock_spark.sql.assert_not_called()

    def test_table_info(self, sink):
        info = sink.table_info()

        assert info["table_name"] == "gold.stores_history"
        assert info["active_records"] == 1
