"""
Spark source and Delta Lake history sink.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.types import StructField, StructType
from delta.tables import DeltaTable

from ..common.config import HistoryConfig
from ..common.exceptions import SinkUnavailable, WriteConflict
from ..scd_type2.models import HistoryRecord
from .base import HistorySink, SnapshotSource

logger = logging.getLogger(__name__)

MERGE_KEY_COLUMN = "_merge_key"


class SparkTableSource(SnapshotSource):
    """Source snapshot read from a Spark table or DataFrame."""

    def __init__(self, spark: SparkSession, table_name: Optional[str] = None,
                 dataframe: Optional[DataFrame] = None):
        if (table_name is None) == (dataframe is None):
            raise ValueError("Provide exactly one of table_name or dataframe")
        self.spark = spark
        self.table_name = table_name
        self._dataframe = dataframe
        self.name = table_name or "dataframe"

    def _df(self) -> DataFrame:
        if self._dataframe is not None:
            return self._dataframe
        return self.spark.table(self.table_name)

    @property
    def columns(self) -> List[str]:
        return list(self._df().columns)

    def column_types(self) -> Dict[str, str]:
        """SQL type of each source column, as used in CREATE TABLE."""
        return {f.name: f.dataType.simpleString().upper() for f in self._df().schema.fields}

    def read_records(self) -> Iterable[Mapping[str, Any]]:
        rows = self._df().collect()
        logger.info(f"Read {len(rows)} source rows from {self.name}")
        return [row.asDict() for row in rows]


class DeltaHistorySink(HistorySink):
    """
    History table stored as a Delta Lake table.

    A row is referenced by its (key, valid_from) pair, which is unique among
    active rows. Closures and appends go through one MERGE so Delta commits
    them as a single transaction.
    """

    def __init__(self, config: HistoryConfig, spark: SparkSession):
        """
        Initialize DeltaHistorySink with configuration and Spark session.

        Args:
            config: History configuration
            spark: Spark session
        """
        self.config = config
        self.spark = spark
        self.name = config.target_table
        self._delta_table = None

    @property
    def delta_table(self) -> DeltaTable:
        if self._delta_table is None:
            try:
                self._delta_table = DeltaTable.forName(self.spark, self.config.target_table)
            except Exception as e:
                logger.error(f"Cannot open Delta table {self.name}: {str(e)}")
                raise SinkUnavailable(f"Cannot open Delta table {self.name}: {str(e)}",
                                      target_table=self.name) from e
        return self._delta_table

    @property
    def columns(self) -> List[str]:
        return list(self.spark.table(self.name).columns)

    def read_active(self) -> Iterable[HistoryRecord]:
        df = self.spark.table(self.name).filter(f"{self.config.valid_to_column} IS NULL")
        return self._to_records(df.collect())

    def read_all(self) -> Iterable[HistoryRecord]:
        return self._to_records(self.spark.table(self.name).collect())

    def _to_records(self, rows) -> List[HistoryRecord]:
        records = []
        for row in rows:
            data = row.asDict()
            ref = (data[self.config.unique_key], data[self.config.valid_from_column])
            records.append(HistoryRecord.from_row(data, self.config, row_ref=ref))
        return records

    def apply_changes(self, closures: List[HistoryRecord],
                      versions: List[HistoryRecord]) -> None:
        self._check_closures_active(closures)

        staged = self._staging_dataframe(closures, versions)
        cfg = self.config
        insert_values = {c: f"staged.{c}" for c in cfg.history_columns}

        (self.delta_table.alias("target")
         .merge(staged.alias("staged"), self._merge_condition())
         .whenMatchedUpdate(set={
             cfg.valid_to_column: f"staged.{cfg.valid_to_column}",
             cfg.updated_at_column: f"staged.{cfg.updated_at_column}"
         })
         .whenNotMatchedInsert(condition=f"staged.{MERGE_KEY_COLUMN} IS NULL",
                               values=insert_values)
         .execute())

        logger.info(f"✅ Merged {len(closures)} closures and {len(versions)} new versions into {self.name}")

    def _merge_condition(self) -> str:
        cfg = self.config
        return (f"target.{cfg.unique_key} = staged.{MERGE_KEY_COLUMN} "
                f"AND target.{cfg.valid_to_column} IS NULL "
                f"AND target.{cfg.valid_from_column} = staged.{cfg.valid_from_column}")

    def _check_closures_active(self, closures: List[HistoryRecord]) -> None:
        if not closures:
            return
        active_refs = {r.row_ref for r in self.read_active()}
        stale = [c.key for c in closures if c.row_ref not in active_refs]
        if stale:
            logger.error(f"Closures target rows that are no longer active: {stale}")
            raise WriteConflict(f"Rows for keys {stale} in {self.name} are no longer active",
                                keys=stale)

    def _staging_schema(self) -> StructType:
        target_schema = self.spark.table(self.name).schema
        key_type = target_schema[self.config.unique_key].dataType
        fields = [target_schema[c] for c in self.config.history_columns]
        return StructType(fields + [StructField(MERGE_KEY_COLUMN, key_type, True)])

    def _staging_rows(self, closures: List[HistoryRecord],
                      versions: List[HistoryRecord]) -> List[Dict[str, Any]]:
        # Closures match their active row through the merge key; versions
        # carry a null merge key so they never match and fall through to insert.
        rows = []
        for closure in closures:
            row = closure.to_row(self.config)
            row[MERGE_KEY_COLUMN] = closure.key
            rows.append(row)
        for version in versions:
            row = version.to_row(self.config)
            row[MERGE_KEY_COLUMN] = None
            rows.append(row)
        return rows

    def _staging_dataframe(self, closures: List[HistoryRecord],
                           versions: List[HistoryRecord]) -> DataFrame:
        schema = self._staging_schema()
        names = [f.name for f in schema.fields]
        rows = [tuple(r[n] for n in names) for r in self._staging_rows(closures, versions)]
        return self.spark.createDataFrame(rows, schema)

    def create_table_if_not_exists(self, column_types: Dict[str, str]) -> None:
        """
        Create the history table if it doesn't exist.

        Args:
            column_types: SQL type per key and tracked column; unlisted columns
                default to STRING
        """
        if self.spark.catalog.tableExists(self.name):
            logger.info(f"History table already exists: {self.name}")
            return

        self.spark.sql(self._build_create_table_sql(column_types))
        logger.info(f"Created history table: {self.name}")

    def _build_create_table_sql(self, column_types: Dict[str, str]) -> str:
        cfg = self.config
        columns = [f"{c} {column_types.get(c, 'STRING')}" for c in cfg.record_columns]
        columns.extend([
            f"{cfg.batch_id_column} STRING",
            f"{cfg.created_at_column} TIMESTAMP",
            f"{cfg.updated_at_column} TIMESTAMP",
            f"{cfg.valid_from_column} TIMESTAMP",
            f"{cfg.valid_to_column} TIMESTAMP"
        ])

        columns_sql = ",\n    ".join(columns)

        return f"""
        CREATE TABLE IF NOT EXISTS {self.name} (
            {columns_sql}
        ) USING DELTA
        """
