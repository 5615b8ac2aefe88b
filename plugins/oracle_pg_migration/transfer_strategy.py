"""
Transfer Strategy Module

Base contract for the table transfer strategies and the fallback strategy used
when no registered strategy can handle a table.

A strategy declares whether it can handle a table (`can_handle`), performs the
transfer (`transfer_table`) and exposes a name and a priority. Strategies with
a higher priority are tried first by the TransferStrategyManager.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
import logging

from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.table_metadata import ColumnMetadata, ObjectTypeRegistry, TableMetadata
from oracle_pg_migration.type_mapping import is_timezone_type

logger = logging.getLogger(__name__)


def quote_oracle_identifier(name: str) -> str:
    """Quote an Oracle identifier exactly as stored in the data dictionary."""
    return '"' + name.replace('"', '""') + '"'


def select_expression(column: ColumnMetadata) -> str:
    """Select-list entry for a column; zoned timestamps are normalised to UTC."""
    name = quote_oracle_identifier(column.column_name)
    if is_timezone_type(column.data_type):
        # python-oracledb drops the offset of TIMESTAMP WITH TIME ZONE values
        return f"SYS_EXTRACT_UTC({name}) AS {name}"
    return name


def build_select_sql(table: TableMetadata) -> str:
    """SELECT of all columns in declaration order, Oracle quoting."""
    columns = ', '.join(select_expression(column) for column in table.columns)
    return (
        f"SELECT {columns} FROM "
        f"{quote_oracle_identifier(table.schema)}.{quote_oracle_identifier(table.table_name)}"
    )


def build_count_sql(table: TableMetadata) -> str:
    return (
        f"SELECT COUNT(*) FROM "
        f"{quote_oracle_identifier(table.schema)}.{quote_oracle_identifier(table.table_name)}"
    )


def target_name(name: str, lowercase: bool = True) -> str:
    """PostgreSQL name for an Oracle identifier."""
    return name.lower() if lowercase else name


def count_source_rows(oracle_conn: Any, table: TableMetadata, default_estimate: int) -> int:
    """
    COUNT(*) of a source table for the progress estimate.

    Counting is advisory: any failure is logged and the default estimate is
    returned instead.
    """
    try:
        with oracle_conn.cursor() as cursor:
            cursor.execute(build_count_sql(table))
            row = cursor.fetchone()
        return int(row[0]) if row else 0
    except Exception as e:
        logger.warning(
            f"Could not count rows of {table.full_name}, using estimate of {default_estimate:,}: {e}"
        )
        return default_estimate


class TransferError(Exception):
    """Base class for errors raised while transferring a table."""

    def __init__(self, message: str, schema_name: Optional[str] = None, table_name: Optional[str] = None):
        super().__init__(message)
        self.schema_name = schema_name
        self.table_name = table_name


class RowConversionError(TransferError):
    """A source value could not be converted for the target."""

    def __init__(self, message: str, column_name: str, row_number: int, schema_name: str, table_name: str):
        super().__init__(
            f"Failed to convert column {column_name} at row {row_number} "
            f"in table {schema_name}.{table_name}: {message}",
            schema_name,
            table_name,
        )
        self.column_name = column_name
        self.row_number = row_number


class ParameterBindingError(TransferError):
    """A value could not be bound as a statement parameter."""

    def __init__(self, message: str, column_name: str, data_type: str):
        super().__init__(f"Failed to bind column {column_name} ({data_type}): {message}")
        self.column_name = column_name
        self.data_type = data_type


class BatchExecutionError(TransferError):
    """A batch flush to PostgreSQL failed."""

    def __init__(self, message: str, rows_processed: int, schema_name: str, table_name: str):
        super().__init__(
            f"Batch execution failed for table {schema_name}.{table_name} "
            f"after {rows_processed:,} rows: {message}",
            schema_name,
            table_name,
        )
        self.rows_processed = rows_processed


class TransferStrategy(ABC):
    """Interface implemented by every table transfer strategy."""

    @abstractmethod
    def can_handle(self, table: TableMetadata, registry: Optional[ObjectTypeRegistry] = None) -> bool:
        """Return True if this strategy can transfer the given table."""

    @abstractmethod
    def transfer_table(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        registry: Optional[ObjectTypeRegistry] = None,
    ) -> TransferResult:
        """
        Transfer all rows of a table.

        Args:
            table: Source table metadata
            oracle_conn: Open Oracle (python-oracledb) connection
            postgres_conn: Open PostgreSQL (psycopg2) connection
            progress: Progress tracker of the current session
            registry: Object type registry, if available

        Returns:
            TransferResult describing the outcome
        """

    @property
    @abstractmethod
    def strategy_name(self) -> str:
        """Human readable name used in logs and results."""

    @property
    def priority(self) -> int:
        """Higher values are tried first."""
        return 0

    @property
    def description(self) -> str:
        return self.strategy_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.strategy_name!r}, priority={self.priority})"


class UnsupportedTransferStrategy(TransferStrategy):
    """
    Fallback for tables no registered strategy can handle.

    It never touches either connection: the table is reported as unsupported
    with an explanation so it can be followed up manually.
    """

    NAME = "Unsupported"

    @property
    def strategy_name(self) -> str:
        return self.NAME

    @property
    def priority(self) -> int:
        return -1

    @property
    def description(self) -> str:
        return "Fallback for tables with data types no strategy supports"

    def can_handle(self, table: TableMetadata, registry: Optional[ObjectTypeRegistry] = None) -> bool:
        return True

    def transfer_table(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        registry: Optional[ObjectTypeRegistry] = None,
    ) -> TransferResult:
        column_types = sorted({column.data_type for column in table.columns})
        reason = (
            f"No transfer strategy available for table {table.full_name} "
            f"(column types: {', '.join(column_types) or 'none'})"
        )
        if registry is None:
            reason += "; object type metadata was not provided"

        logger.warning(reason)
        progress.complete_table(0)
        return TransferResult.unsupported_table(table.schema, table.table_name, self.NAME, reason)
