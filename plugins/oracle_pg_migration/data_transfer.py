"""
Data Transfer Module

Runs a transfer session: a list of tables is moved from Oracle to PostgreSQL
one table at a time through TransferStrategyManager.transfer_tables, with a
shared TransferProgress and optional progress callbacks.

transfer_table_data() is the Airflow entry point: it resolves connection IDs,
loads the exported metadata and commits each table as it completes.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import uuid

from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.strategy_manager import (
    BatchTransferResult,
    ProgressCallback,
    TransferStrategyManager,
    create_default_manager,
)
from oracle_pg_migration.table_analyzer import estimate_table_rows_heuristic
from oracle_pg_migration.table_metadata import ObjectTypeRegistry, TableMetadata, load_migration_metadata
from oracle_pg_migration.transfer_config import TransferConfig

logger = logging.getLogger(__name__)


@dataclass
class DataTransferResults:
    """Results of one transfer session."""

    session_id: str
    batch: BatchTransferResult
    final_progress: TransferProgress

    @property
    def table_results(self) -> List[TransferResult]:
        return self.batch.results

    @property
    def is_overall_success(self) -> bool:
        return all(result.successful for result in self.table_results)

    @property
    def total_rows_transferred(self) -> int:
        return self.batch.total_rows_transferred

    @property
    def total_transfer_time_ms(self) -> int:
        return sum(result.transfer_time_ms for result in self.table_results)

    @property
    def successful_tables(self) -> List[TransferResult]:
        return self.batch.successful

    @property
    def failed_tables(self) -> List[TransferResult]:
        return self.batch.failed

    @property
    def unsupported_tables(self) -> List[TransferResult]:
        return self.batch.unsupported

    @property
    def strategy_usage(self) -> Dict[str, int]:
        return self.batch.strategy_usage

    @property
    def supported_percentage(self) -> float:
        return self.batch.supported_percentage

    def summary(self) -> str:
        return (
            f"Session {self.session_id}: {len(self.successful_tables)}/{len(self.table_results)} "
            f"tables successful, {len(self.failed_tables)} failed, "
            f"{len(self.unsupported_tables)} unsupported ({self.supported_percentage:.1f}% supported), "
            f"{self.total_rows_transferred:,} rows transferred in {self.total_transfer_time_ms} ms"
        )


class DataTransferService:
    """
    Transfers a list of tables within one session.

    Tables are processed sequentially on the given connections. Failures are
    isolated per table and reported in the returned results.
    """

    def __init__(
        self,
        manager: Optional[TransferStrategyManager] = None,
        config: Optional[TransferConfig] = None,
    ):
        self.config = config or TransferConfig.from_env()
        self.manager = manager or create_default_manager(self.config)

    def transfer_tables(
        self,
        tables: List[TableMetadata],
        oracle_conn: Any,
        postgres_conn: Any,
        registry: Optional[ObjectTypeRegistry] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DataTransferResults:
        """
        Transfer all tables and return the session results.

        Args:
            tables: Tables to transfer, in order
            oracle_conn: Open Oracle connection
            postgres_conn: Open PostgreSQL connection
            registry: Object type registry (required for complex tables)
            progress_callback: Optional callback notified per table

        Returns:
            DataTransferResults with one TransferResult per table
        """
        session_id = uuid.uuid4().hex[:8]
        logger.info(f"Starting data transfer session {session_id} for {len(tables)} tables")

        progress = TransferProgress(session_id)
        total_estimated_rows = sum(estimate_table_rows_heuristic(table) for table in tables)
        progress.initialize_transfer(len(tables), total_estimated_rows)

        batch = self.manager.transfer_tables(
            tables,
            oracle_conn,
            postgres_conn,
            progress,
            registry=registry,
            progress_callback=progress_callback,
        )

        transfer_results = DataTransferResults(session_id, batch, progress)
        logger.info(transfer_results.summary())
        return transfer_results


class _CommitPerTable(ProgressCallback):
    """Commits each successful table and rolls back failed ones."""

    def __init__(self, postgres_conn):
        self.postgres_conn = postgres_conn

    def on_table_complete(self, table_index, total_tables, table_name, success, rows_transferred):
        if success:
            self.postgres_conn.commit()
            logger.info(f"[{table_index + 1}/{total_tables}] Committed {rows_transferred:,} rows for {table_name}")
        else:
            self.postgres_conn.rollback()
            logger.warning(f"[{table_index + 1}/{total_tables}] Rolled back {table_name}")


def select_tables(tables: List[TableMetadata], include_tables: Optional[List[str]]) -> List[TableMetadata]:
    """
    Filter tables by name.

    Entries may be 'SCHEMA.TABLE' or a bare table name; matching is
    case-insensitive. None or an empty list keeps every table.
    """
    if not include_tables:
        return list(tables)

    wanted = {name.strip().upper() for name in include_tables if name and name.strip()}
    return [
        table for table in tables
        if table.full_name.upper() in wanted or table.table_name.upper() in wanted
    ]


def transfer_table_data(
    oracle_conn_id: str,
    postgres_conn_id: str,
    metadata_path: str,
    include_tables: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """
    Transfer tables described in a metadata export (for Airflow tasks).

    Args:
        oracle_conn_id: Oracle connection ID
        postgres_conn_id: PostgreSQL connection ID
        metadata_path: JSON file with tables, object types and synonyms
        include_tables: Optional subset of tables to transfer

    Returns:
        List of transfer result dictionaries
    """
    from airflow.providers.postgres.hooks.postgres import PostgresHook
    from oracle_pg_migration.oracle_helper import OracleConnectionHelper

    tables, registry = load_migration_metadata(metadata_path)
    tables = select_tables(tables, include_tables)
    if not tables:
        logger.warning(f"No tables selected from {metadata_path} (filter: {include_tables})")
        return []

    oracle_helper = OracleConnectionHelper(oracle_conn_id)
    postgres_hook = PostgresHook(postgres_conn_id=postgres_conn_id)

    oracle_conn = None
    postgres_conn = None
    try:
        oracle_conn = oracle_helper.get_conn()
        postgres_conn = postgres_hook.get_conn()

        results = DataTransferService().transfer_tables(
            tables,
            oracle_conn,
            postgres_conn,
            registry=registry,
            progress_callback=_CommitPerTable(postgres_conn),
        )
        return [result.to_dict() for result in results.table_results]
    finally:
        if postgres_conn is not None:
            postgres_conn.close()
        oracle_helper.release_conn(oracle_conn)


def summarize_transfer_results(results: List[Optional[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Aggregate per-table result dictionaries (e.g. from mapped Airflow tasks).

    Empty entries (tasks that produced no result) are skipped.
    """
    batch = BatchTransferResult.from_results([TransferResult.from_dict(r) for r in results if r])
    logger.info(batch.summary())
    for strategy_name, count in batch.strategy_usage.items():
        logger.info(f"Strategy '{strategy_name}': {count} tables")
    return batch.to_dict()
