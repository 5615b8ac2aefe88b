"""
Object Type Transfer Module

Row-by-row transfer for tables the COPY path cannot handle: Oracle object
type columns, LOBs, XMLTYPE, intervals, ANYDATA and AQ payloads.

Object type columns are converted to PostgreSQL composite tuple literals; all
other columns go through the shared parameter binding routine. Rows are
inserted with batched parameterized INSERTs. A single failing row fails the
whole table.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
import logging
import time

import oracledb
from psycopg2 import sql
from psycopg2.extras import execute_batch

from oracle_pg_migration.object_type_mapper import ObjectTypeMapper
from oracle_pg_migration.parameter_setter import bind_parameter
from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.table_analyzer import (
    analyze_table_with_object_types,
    has_anydata_columns,
    has_object_types,
    has_only_primitive_types,
)
from oracle_pg_migration.table_metadata import (
    ColumnMetadata,
    ObjectTypeMetadata,
    ObjectTypeRegistry,
    TableMetadata,
)
from oracle_pg_migration.transfer_config import TransferConfig
from oracle_pg_migration.transfer_strategy import (
    BatchExecutionError,
    RowConversionError,
    TransferError,
    TransferStrategy,
    build_select_sql,
    count_source_rows,
    target_name,
)

logger = logging.getLogger(__name__)


def _output_type_handler(cursor, metadata):
    # NUMBER as Decimal; the driver default is float, which loses digits
    if metadata.type_code == oracledb.DB_TYPE_NUMBER:
        return cursor.var(Decimal, arraysize=cursor.arraysize)
    return None


@dataclass(frozen=True)
class ObjectTypeColumnInfo:
    """A column bound to a resolved object type definition."""

    column_index: int
    column: ColumnMetadata
    object_type: ObjectTypeMetadata


class ObjectTypeMappingStrategy(TransferStrategy):
    """
    Transfer for tables with object types and other complex columns.

    Requires the object type registry; without it the strategy declines every
    table.
    """

    NAME = "Object Type / Complex Data Transfer"

    def __init__(self, config: Optional[TransferConfig] = None):
        self.config = config or TransferConfig()

    @property
    def strategy_name(self) -> str:
        return self.NAME

    @property
    def priority(self) -> int:
        return 100

    @property
    def description(self) -> str:
        return "Row-by-row transfer converting object types to composite values and complex types to JSONB"

    def can_handle(self, table: TableMetadata, registry: Optional[ObjectTypeRegistry] = None) -> bool:
        if registry is None:
            return False
        return (
            has_object_types(table, registry)
            or not has_only_primitive_types(table)
            or has_anydata_columns(table)
        )

    def resolve_object_type_columns(
        self,
        table: TableMetadata,
        registry: ObjectTypeRegistry,
    ) -> Dict[int, ObjectTypeColumnInfo]:
        """Map column positions to the object types their declared types resolve to."""
        object_columns: Dict[int, ObjectTypeColumnInfo] = {}
        for index, column in enumerate(table.columns):
            object_type = registry.resolve_column_type(column.data_type, table.schema)
            if object_type is not None:
                object_columns[index] = ObjectTypeColumnInfo(index, column, object_type)
                logger.debug(
                    f"Column {column.column_name} of {table.full_name} maps to object type "
                    f"{object_type.full_name}"
                )
        return object_columns

    def transfer_table(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        registry: Optional[ObjectTypeRegistry] = None,
    ) -> TransferResult:
        start_time = time.time()
        registry = registry or ObjectTypeRegistry()

        logger.info(f"Starting object type transfer: {analyze_table_with_object_types(table, registry)}")

        source_rows = 0
        try:
            object_columns = self.resolve_object_type_columns(table, registry)
            source_rows = count_source_rows(oracle_conn, table, self.config.default_row_estimate)
            progress.start_table(table.schema, table.table_name, source_rows)

            transferred = self._transfer_rows(
                table, oracle_conn, postgres_conn, progress, object_columns, ObjectTypeMapper(registry)
            )

            progress.complete_table(transferred)
            elapsed_ms = self._elapsed_ms(start_time)
            logger.info(
                f"Transferred {transferred:,} rows from {table.full_name} in {elapsed_ms}ms "
                f"({len(object_columns)} object type columns)"
            )
            return TransferResult.success(
                table.schema, table.table_name, transferred, source_rows, elapsed_ms, self.NAME
            )

        except TransferError as e:
            logger.error(f"Object type transfer failed for {table.full_name}: {e}")
            return self._failure(table, progress, start_time, str(e), e, source_rows)
        except Exception as e:
            logger.exception(f"Unexpected error transferring {table.full_name}")
            return self._failure(table, progress, start_time, f"Transfer failed: {e}", e, source_rows)

    def _failure(
        self,
        table: TableMetadata,
        progress: TransferProgress,
        start_time: float,
        message: str,
        exc: Exception,
        source_rows: int,
    ) -> TransferResult:
        rows_written = progress.current_table_transferred_rows
        progress.complete_table(0)
        return TransferResult.failure(
            table.schema,
            table.table_name,
            self.NAME,
            message,
            exception=exc,
            rows_transferred=rows_written,
            transfer_time_ms=self._elapsed_ms(start_time),
            source_row_count=source_rows,
        )

    def _build_insert_sql(self, table: TableMetadata) -> sql.Composed:
        lowercase = self.config.lowercase_target_names
        return sql.SQL('INSERT INTO {}.{} ({}) VALUES ({})').format(
            sql.Identifier(target_name(table.schema, lowercase)),
            sql.Identifier(target_name(table.table_name, lowercase)),
            sql.SQL(', ').join([
                sql.Identifier(target_name(column.column_name, lowercase)) for column in table.columns
            ]),
            sql.SQL(', ').join([sql.Placeholder() for _ in table.columns]),
        )

    def _transfer_rows(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        object_columns: Dict[int, ObjectTypeColumnInfo],
        mapper: ObjectTypeMapper,
    ) -> int:
        fetch_size = self.config.object_fetch_size
        batch_size = self.config.object_batch_size
        insert_sql = self._build_insert_sql(table)
        transferred = 0
        row_number = 0
        batch: List[List[Any]] = []

        with oracle_conn.cursor() as source_cursor, postgres_conn.cursor() as target_cursor:
            source_cursor.arraysize = fetch_size
            source_cursor.prefetchrows = fetch_size
            source_cursor.outputtypehandler = _output_type_handler
            source_cursor.execute(build_select_sql(table))

            while True:
                rows = source_cursor.fetchmany(fetch_size)
                if not rows:
                    break

                for row in rows:
                    row_number += 1
                    batch.append(self._convert_row(row, row_number, table, object_columns, mapper))

                    if len(batch) >= batch_size:
                        transferred += self._execute_batch(target_cursor, insert_sql, batch, table, transferred)
                        progress.update_current_table_progress(transferred)
                        batch = []

            if batch:
                transferred += self._execute_batch(target_cursor, insert_sql, batch, table, transferred)
                progress.update_current_table_progress(transferred)

        return transferred

    def _convert_row(
        self,
        row: Sequence[Any],
        row_number: int,
        table: TableMetadata,
        object_columns: Dict[int, ObjectTypeColumnInfo],
        mapper: ObjectTypeMapper,
    ) -> List[Any]:
        """Convert one fetched row to INSERT parameters."""
        params: List[Any] = []
        for index, column in enumerate(table.columns):
            info = object_columns.get(index)
            try:
                if info is not None:
                    params.append(mapper.convert_object_to_composite_type(row[index], info.object_type))
                else:
                    params.append(bind_parameter(row, index, column, mapper))
            except Exception as e:
                raise RowConversionError(
                    str(e), column.column_name, row_number, table.schema, table.table_name
                ) from e
        return params

    def _execute_batch(
        self,
        cursor: Any,
        insert_sql: sql.Composed,
        batch: List[List[Any]],
        table: TableMetadata,
        rows_so_far: int,
    ) -> int:
        try:
            execute_batch(cursor, insert_sql, batch, page_size=len(batch))
        except Exception as e:
            raise BatchExecutionError(str(e), rows_so_far, table.schema, table.table_name) from e
        logger.debug(f"Inserted batch of {len(batch):,} rows into {table.full_name}")
        return len(batch)

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
