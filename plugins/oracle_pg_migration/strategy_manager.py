"""
Transfer Strategy Manager Module

Keeps the registered transfer strategies ordered by priority and picks the
first one able to handle each table. Tables nobody can handle go to the
unsupported fallback. A failing table never stops the others: every error is
returned as a failed TransferResult.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from oracle_pg_migration.object_type_strategy import ObjectTypeMappingStrategy
from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.streaming_copy import StreamingCopyStrategy
from oracle_pg_migration.table_analyzer import (
    analyze_table_with_object_types,
    estimate_table_rows_heuristic,
    estimate_transfer_time_ms,
)
from oracle_pg_migration.table_metadata import ObjectTypeRegistry, TableMetadata
from oracle_pg_migration.transfer_config import TransferConfig
from oracle_pg_migration.transfer_strategy import TransferStrategy, UnsupportedTransferStrategy

logger = logging.getLogger(__name__)


class ProgressCallback:
    """Receives table-level notifications during a batch transfer."""

    def on_table_start(self, table_index: int, total_tables: int, table_name: str) -> None:
        pass

    def on_table_complete(
        self,
        table_index: int,
        total_tables: int,
        table_name: str,
        success: bool,
        rows_transferred: int,
    ) -> None:
        pass


@dataclass
class BatchTransferResult:
    """Aggregate outcome of transferring a list of tables."""

    results: List[TransferResult] = field(default_factory=list)
    successful: List[TransferResult] = field(default_factory=list)
    failed: List[TransferResult] = field(default_factory=list)
    unsupported: List[TransferResult] = field(default_factory=list)
    strategy_usage: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: List[TransferResult]) -> "BatchTransferResult":
        batch = cls()
        for result in results:
            batch.add(result)
        return batch

    @property
    def total_tables(self) -> int:
        return len(self.results)

    @property
    def supported_count(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def supported_percentage(self) -> float:
        total = self.total_tables
        return self.supported_count / total * 100.0 if total > 0 else 0.0

    @property
    def total_rows_transferred(self) -> int:
        return sum(result.rows_transferred for result in self.successful)

    def add(self, result: TransferResult) -> None:
        """Record a result, keeping input order in results."""
        self.results.append(result)
        if result.successful:
            self.successful.append(result)
        elif result.unsupported:
            self.unsupported.append(result)
        else:
            self.failed.append(result)
        strategy = result.strategy_used or "Error"
        self.strategy_usage[strategy] = self.strategy_usage.get(strategy, 0) + 1

    def summary(self) -> str:
        return (
            f"Table transfer: {self.total_tables} total, {len(self.successful)} successful, "
            f"{len(self.failed)} failed, {len(self.unsupported)} unsupported "
            f"({self.supported_percentage:.1f}% supported), "
            f"{self.total_rows_transferred:,} rows transferred"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_tables': self.total_tables,
            'successful_tables': len(self.successful),
            'failed_tables': len(self.failed),
            'unsupported_tables': len(self.unsupported),
            'supported_percentage': round(self.supported_percentage, 1),
            'strategy_usage': dict(self.strategy_usage),
            'total_rows_transferred': self.total_rows_transferred,
            'failed_table_names': [r.full_table_name for r in self.failed],
            'unsupported_table_names': [r.full_table_name for r in self.unsupported],
        }


class TransferStrategyManager:
    """
    Priority-ordered registry of transfer strategies.

    Strategies are sorted by descending priority after every registration;
    equal priorities keep their registration order. The unsupported fallback
    is not part of the list.
    """

    def __init__(self, strategies: Optional[List[TransferStrategy]] = None):
        self._strategies: List[TransferStrategy] = []
        self._unsupported_strategy = UnsupportedTransferStrategy()

        for strategy in strategies or []:
            self.register_strategy(strategy)

        logger.info(f"Initialized TransferStrategyManager with {len(self._strategies)} strategies")

    def register_strategy(self, strategy: Optional[TransferStrategy]) -> None:
        if strategy is None:
            return
        self._strategies.append(strategy)
        # list.sort is stable, ties keep insertion order
        self._strategies.sort(key=lambda s: s.priority, reverse=True)
        logger.debug(f"Registered strategy: {strategy.strategy_name} (priority: {strategy.priority})")

    def select_strategy(
        self,
        table: TableMetadata,
        registry: Optional[ObjectTypeRegistry] = None,
    ) -> TransferStrategy:
        """Return the first strategy that can handle the table, or the fallback."""
        for strategy in self._strategies:
            try:
                handles = strategy.can_handle(table, registry)
            except Exception as e:
                logger.warning(
                    f"Strategy '{strategy.strategy_name}' failed to evaluate {table.full_name}: {e}"
                )
                continue
            if handles:
                logger.debug(f"Selected strategy '{strategy.strategy_name}' for table {table.full_name}")
                return strategy

        logger.debug(f"No specific strategy found for table {table.full_name}, using fallback")
        return self._unsupported_strategy

    def convert_table(
        self,
        table: TableMetadata,
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        registry: Optional[ObjectTypeRegistry] = None,
    ) -> TransferResult:
        """
        Transfer one table with the best matching strategy.

        Never raises: any exception becomes a failed TransferResult.
        """
        strategy: Optional[TransferStrategy] = None
        try:
            strategy = self.select_strategy(table, registry)
            result = strategy.transfer_table(table, oracle_conn, postgres_conn, progress, registry)
            logger.debug(f"Transferred table {table.full_name} using strategy: {strategy.strategy_name}")
            return result
        except Exception as e:
            logger.error(f"Failed to transfer table {table.full_name}: {e}", exc_info=True)
            progress.complete_table(0)
            return TransferResult.failure(
                table.schema,
                table.table_name,
                strategy.strategy_name if strategy else None,
                f"Transfer failed: {e}",
                exception=e,
            )

    def transfer_tables(
        self,
        tables: List[TableMetadata],
        oracle_conn: Any,
        postgres_conn: Any,
        progress: TransferProgress,
        registry: Optional[ObjectTypeRegistry] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchTransferResult:
        """
        Transfer tables in order, isolating failures per table.

        A progress that has not been initialized is seeded with the table
        count and a name-based row estimate, so completed_tables never
        exceeds total_tables.
        """
        batch = BatchTransferResult()
        total_tables = len(tables)
        logger.info(f"Transferring {total_tables} tables to PostgreSQL")

        if progress.total_tables == 0 and tables:
            total_estimated_rows = sum(estimate_table_rows_heuristic(table) for table in tables)
            logger.info(f"Total estimated rows for {total_tables} tables: {total_estimated_rows:,}")
            progress.initialize_transfer(total_tables, total_estimated_rows)

        for table_index, table in enumerate(tables):
            if progress_callback is not None:
                progress_callback.on_table_start(table_index, total_tables, table.full_name)

            estimated_ms = estimate_transfer_time_ms(table, estimate_table_rows_heuristic(table))
            logger.info(
                f"Analyzing table: {analyze_table_with_object_types(table, registry)} "
                f"(estimated {estimated_ms} ms)"
            )

            result = self.convert_table(table, oracle_conn, postgres_conn, progress, registry)
            batch.add(result)
            if result.successful:
                logger.info(f"Transfer completed: {result}")
            elif result.unsupported:
                logger.warning(f"Transfer skipped: {result}")
            else:
                logger.error(f"Transfer failed: {result}")

            if progress_callback is not None:
                progress_callback.on_table_complete(
                    table_index, total_tables, table.full_name, result.successful, result.rows_transferred
                )

            logger.debug(progress.summary())

        logger.info(batch.summary())
        for strategy_name, count in batch.strategy_usage.items():
            logger.info(f"Strategy '{strategy_name}': {count} tables")

        return batch

    def get_registered_strategies(self) -> List[TransferStrategy]:
        return list(self._strategies)

    def get_strategy_statistics(self) -> Dict[str, Any]:
        return {
            'total_strategies': len(self._strategies) + 1,  # includes the fallback
            'registered_strategies': [s.strategy_name for s in self._strategies],
            'priorities': {s.strategy_name: s.priority for s in self._strategies},
        }


def create_default_manager(config: Optional[TransferConfig] = None) -> TransferStrategyManager:
    """Manager with the object type strategy (priority 100) and COPY streaming (50)."""
    config = config or TransferConfig.from_env()
    return TransferStrategyManager([
        ObjectTypeMappingStrategy(config),
        StreamingCopyStrategy(config),
    ])
