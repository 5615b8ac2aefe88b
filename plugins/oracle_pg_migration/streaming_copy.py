"""
Streaming COPY Transfer Module

Transfers tables that contain only scalar columns. Rows are read from Oracle
with a large fetch size, formatted as PostgreSQL COPY text lines and flushed
in batches through `COPY ... FROM STDIN`. If the target cursor does not
support COPY, each batch is written with batched INSERT statements instead.

COPY text format:
- columns are tab separated, one row per line
- NULL is written as \\N
- backslash, tab, newline and carriage return are backslash escaped
"""

from datetime import date, datetime
from io import TextIOBase
from typing import Any, Iterable, List, Optional, Sequence
import logging
import re
import time

import oracledb
from psycopg2 import sql
from psycopg2.extras import execute_batch

from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.table_analyzer import has_only_primitive_types
from oracle_pg_migration.table_metadata import ColumnMetadata, ObjectTypeRegistry, TableMetadata
from oracle_pg_migration.transfer_config import TransferConfig
from oracle_pg_migration.transfer_strategy import (
    BatchExecutionError,
    TransferStrategy,
    build_select_sql,
    count_source_rows,
    target_name,
)
from oracle_pg_migration.type_mapping import is_numeric_type, is_temporal_type, is_text_type

logger = logging.getLogger(__name__)

NULL_MARKER = '\\N'

_ESCAPES = {'\\': '\\\\', '\t': '\\t', '\n': '\\n', '\r': '\\r'}
_UNESCAPES = {'\\': '\\', 't': '\t', 'n': '\n', 'r': '\r'}
_ESCAPE_PATTERN = re.compile(r'[\\\t\n\r]')
_UNESCAPE_PATTERN = re.compile(r'\\(.)', re.DOTALL)


def escape_copy_text(value: str) -> str:
    """Escape backslash, tab, newline and carriage return for COPY text format."""
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(0)], value)


def unescape_copy_value(value: str) -> str:
    """Inverse of escape_copy_text, applied in a single pass."""
    return _UNESCAPE_PATTERN.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(1)), value)


def format_copy_value(value: Any, column: ColumnMetadata) -> str:
    """
    Format one source value as a COPY text field.

    Args:
        value: Value fetched from Oracle
        column: Metadata of the column the value belongs to

    Returns:
        Escaped text field, or the NULL marker
    """
    if value is None:
        return NULL_MARKER

    # LOB locators
    if hasattr(value, 'read'):
        value = value.read()
        if value is None:
            return NULL_MARKER

    data_type = column.data_type
    if is_text_type(data_type):
        return escape_copy_text(str(value))
    if is_numeric_type(data_type):
        return str(value)
    if is_temporal_type(data_type):
        if isinstance(value, datetime):
            return value.isoformat(sep=' ')
        if isinstance(value, date):
            return value.isoformat()
        return escape_copy_text(str(value))
    return escape_copy_text(str(value))


def format_copy_line(row: Sequence[Any], columns: Sequence[ColumnMetadata]) -> str:
    """Format a full row as one COPY line, including the trailing newline."""
    return '\t'.join(format_copy_value(value, column) for value, column in zip(row, columns)) + '\n'


def parse_copy_line(line: str) -> List[Optional[str]]:
    """Split a COPY line back into field values (None for NULL)."""
    fields = line.rstrip('\n').split('\t')
    return [None if field == NULL_MARKER else unescape_copy_value(field) for field in fields]


def _output_type_handler(cursor, metadata):
    # NUMBER is fetched in Oracle's canonical text form so no precision is lost
    if metadata.type_code == oracledb.DB_TYPE_NUMBER:
        return cursor.var(oracledb.DB_TYPE_VARCHAR, arraysize=cursor.arraysize)
    if metadata.type_code == oracledb.DB_TYPE_CLOB:
        return cursor.var(oracledb.DB_TYPE_LONG, arraysize=cursor.arraysize)
    return None


class _CopyRowStream(TextIOBase):
    """Lazy text stream over formatted COPY lines for copy_expert."""

    def __init__(self, lines: Iterable[str]):
        self._iterator = iter(lines)
        self._buffer = ''
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> str:
        while (size is None or size < 0 or len(self._buffer) < size) and not self._exhausted:
            try:
                self._buffer += next(self._iterator)
            except StopIteration:
                self._exhausted = True
                break

        if size is None or size < 0:
            data = self._buffer
            self._buffer = ''
            return data

        data = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return data


class StreamingCopyStrategy(TransferStrategy):
    """
    High throughput transfer for tables with only scalar columns.

    Uses a large Oracle fetch size and streams batches of COPY lines into
    PostgreSQL. Falls back to batched INSERTs when COPY is unavailable.
    """

    NAME = "CSV Streaming"

    def __init__(self, config: Optional[TransferConfig] = None):
        self.config = config or TransferConfig()

    @property
    def strategy_name(self) -> str:
        return self.NAME

    @property
    def priority(self) -> int:
        return 50

    @property
    def description(self) -> str:
        return "High-performance COPY streaming for tables with primitive data types only"

    def can_handle(self, table: TableMetadata, registry: Optional[ObjectTypeRegistry] = None) -> bool:
        return has_only_primitive_types(table)

    def transfer_table(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        registry: Optional[ObjectTypeRegistry] = None,
    ) -> TransferResult:
        start_time = time.time()

        logger.info(f"Starting CSV streaming transfer for table {table.full_name}")

        source_rows = 0
        try:
            source_rows = count_source_rows(oracle_conn, table, self.config.default_row_estimate)
            progress.start_table(table.schema, table.table_name, source_rows)

            if source_rows == 0:
                logger.info(f"Table {table.full_name} is empty, nothing to transfer")
                progress.complete_table(0)
                return TransferResult.success(
                    table.schema, table.table_name, 0, 0, self._elapsed_ms(start_time), self.NAME
                )

            transferred = self._stream_rows(table, oracle_conn, postgres_conn, progress)

            progress.complete_table(transferred)
            elapsed_ms = self._elapsed_ms(start_time)
            logger.info(
                f"Transferred {transferred:,} rows from {table.full_name} in {elapsed_ms}ms "
                f"using {self.NAME}"
            )
            return TransferResult.success(
                table.schema, table.table_name, transferred, source_rows, elapsed_ms, self.NAME
            )

        except Exception as e:
            logger.error(f"CSV streaming transfer failed for {table.full_name}: {e}")
            rows_written = progress.current_table_transferred_rows
            progress.complete_table(0)
            return TransferResult.failure(
                table.schema,
                table.table_name,
                self.NAME,
                f"Transfer failed: {e}",
                exception=e,
                rows_transferred=rows_written,
                transfer_time_ms=self._elapsed_ms(start_time),
                source_row_count=source_rows,
            )

    def _stream_rows(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
    ) -> int:
        fetch_size = self.config.copy_fetch_size
        batch_size = self.config.copy_batch_size
        columns = table.columns
        transferred = 0
        batch: List[str] = []

        with oracle_conn.cursor() as source_cursor:
            source_cursor.arraysize = fetch_size
            source_cursor.prefetchrows = fetch_size
            source_cursor.outputtypehandler = _output_type_handler
            source_cursor.execute(build_select_sql(table))

            while True:
                rows = source_cursor.fetchmany(fetch_size)
                if not rows:
                    break

                for row in rows:
                    batch.append(format_copy_line(row, columns))
                    if len(batch) >= batch_size:
                        transferred += self._flush_batch(table, batch, postgres_conn, transferred)
                        progress.update_current_table_progress(transferred)
                        batch = []

        if batch:
            transferred += self._flush_batch(table, batch, postgres_conn, transferred)
            progress.update_current_table_progress(transferred)

        return transferred

    def _flush_batch(self, table: TableMetadata, lines: List[str], postgres_conn: Any, rows_so_far: int) -> int:
        """Write one batch of COPY lines, returning the number of rows written."""
        lowercase = self.config.lowercase_target_names
        schema_name = target_name(table.schema, lowercase)
        table_name = target_name(table.table_name, lowercase)
        column_names = [target_name(column.column_name, lowercase) for column in table.columns]

        try:
            with postgres_conn.cursor() as cursor:
                if callable(getattr(cursor, 'copy_expert', None)):
                    copy_sql = sql.SQL('COPY {}.{} ({}) FROM STDIN').format(
                        sql.Identifier(schema_name),
                        sql.Identifier(table_name),
                        sql.SQL(', ').join([sql.Identifier(col) for col in column_names]),
                    )
                    cursor.copy_expert(copy_sql, _CopyRowStream(lines))
                else:
                    logger.debug(f"COPY not available, inserting batch of {len(lines):,} rows into {table.full_name}")
                    self._insert_batch(cursor, schema_name, table_name, column_names, lines)
        except Exception as e:
            raise BatchExecutionError(str(e), rows_so_far, table.schema, table.table_name) from e

        logger.debug(f"Flushed {len(lines):,} rows to {schema_name}.{table_name}")
        return len(lines)

    def _insert_batch(
        self,
        cursor: Any,
        schema_name: str,
        table_name: str,
        column_names: List[str],
        lines: List[str],
    ) -> None:
        insert_sql = sql.SQL('INSERT INTO {}.{} ({}) VALUES ({})').format(
            sql.Identifier(schema_name),
            sql.Identifier(table_name),
            sql.SQL(', ').join([sql.Identifier(col) for col in column_names]),
            sql.SQL(', ').join([sql.Placeholder() for _ in column_names]),
        )
        execute_batch(cursor, insert_sql, [parse_copy_line(line) for line in lines], page_size=len(lines))

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
