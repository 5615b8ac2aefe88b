"""
Transfer Progress and Result Module

TransferProgress is the one object that strategies mutate while a reporting
thread polls it, so every counter is an individually locked integer: a reader
may see fields from slightly different moments but never a torn value.

TransferResult is the immutable outcome of one table transfer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import threading
import time


class AtomicCounter:
    """Thread-safe integer with set/add/get and a monotonic max update."""

    __slots__ = ('_value', '_lock')

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> int:
        with self._lock:
            return self._value

    def set(self, value: int) -> None:
        with self._lock:
            self._value = value

    def add_and_get(self, delta: int) -> int:
        with self._lock:
            self._value += delta
            return self._value

    def increment_and_get(self) -> int:
        return self.add_and_get(1)

    def update_max(self, value: int) -> int:
        """Raise the value to `value` if larger; never lowers it."""
        with self._lock:
            if value > self._value:
                self._value = value
            return self._value


class AtomicReference:
    """Thread-safe holder for an immutable value (e.g. a status string)."""

    __slots__ = ('_value', '_lock')

    def __init__(self, value: Any = None):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> Any:
        with self._lock:
            return self._value

    def set(self, value: Any) -> None:
        with self._lock:
            self._value = value


def _now_ms() -> int:
    return int(time.time() * 1000)


class TransferProgress:
    """
    Progress of one transfer session.

    Tracks overall progress across tables and detailed progress of the table
    currently being transferred.

    Every table attempt completes exactly once, whatever its outcome: a
    failed or unsupported table completes with 0 rows, since its rows are
    rolled back or never read. A session is therefore complete once every
    table has been attempted.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.start_time = _now_ms()

        # Overall progress
        self._total_tables = AtomicCounter()
        self._completed_tables = AtomicCounter()
        self._total_estimated_rows = AtomicCounter()
        self._total_transferred_rows = AtomicCounter()

        # Current table progress
        self._current_table = AtomicReference("")
        self._current_table_total_rows = AtomicCounter()
        self._current_table_transferred_rows = AtomicCounter()
        self._current_status = AtomicReference("Initializing")

    @property
    def total_tables(self) -> int:
        return self._total_tables.get()

    @property
    def completed_tables(self) -> int:
        return self._completed_tables.get()

    @property
    def total_estimated_rows(self) -> int:
        return self._total_estimated_rows.get()

    @property
    def total_transferred_rows(self) -> int:
        return self._total_transferred_rows.get()

    @property
    def current_table(self) -> str:
        return self._current_table.get()

    @property
    def current_table_total_rows(self) -> int:
        return self._current_table_total_rows.get()

    @property
    def current_table_transferred_rows(self) -> int:
        return self._current_table_transferred_rows.get()

    @property
    def current_status(self) -> str:
        return self._current_status.get()

    @property
    def overall_progress_percent(self) -> float:
        total = self.total_estimated_rows
        if total == 0:
            return 0.0
        return self.total_transferred_rows / total * 100.0

    @property
    def current_table_progress_percent(self) -> float:
        total = self.current_table_total_rows
        if total == 0:
            return 0.0
        return self.current_table_transferred_rows / total * 100.0

    @property
    def elapsed_time_ms(self) -> int:
        return _now_ms() - self.start_time

    @property
    def overall_transfer_rate_rows_per_second(self) -> float:
        elapsed_ms = self.elapsed_time_ms
        if elapsed_ms <= 0:
            return 0.0
        return self.total_transferred_rows / (elapsed_ms / 1000.0)

    @property
    def estimated_remaining_time_ms(self) -> int:
        """ETA based on the overall rate so far; 0 when unknown or done."""
        transferred = self.total_transferred_rows
        total = self.total_estimated_rows
        elapsed = self.elapsed_time_ms

        if transferred <= 0 or total <= transferred or elapsed <= 0:
            return 0

        rate = transferred / elapsed
        return int((total - transferred) / rate)

    @property
    def is_completed(self) -> bool:
        total = self.total_tables
        return total > 0 and self.completed_tables >= total

    def initialize_transfer(self, total_tables: int, total_estimated_rows: int) -> None:
        self._total_tables.set(total_tables)
        self._total_estimated_rows.set(total_estimated_rows)
        self._current_status.set("Starting transfer")

    def start_table(self, schema_name: str, table_name: str, estimated_rows: int) -> None:
        """Reset the current-table fields for a new table."""
        full_name = f"{schema_name}.{table_name}"
        self._current_table.set(full_name)
        self._current_table_total_rows.set(estimated_rows)
        self._current_table_transferred_rows.set(0)
        self._current_status.set(f"Transferring {full_name}")

    def update_current_table_progress(self, transferred_rows: int) -> None:
        """Record the running row count for the current table (non-decreasing)."""
        self._current_table_transferred_rows.update_max(transferred_rows)

    def complete_table(self, actual_rows_transferred: int) -> None:
        completed = self._completed_tables.increment_and_get()
        self._total_transferred_rows.add_and_get(actual_rows_transferred)
        self._current_table_transferred_rows.set(actual_rows_transferred)

        total = self.total_tables
        if completed >= total:
            self._current_status.set("Transfer completed")
        else:
            self._current_status.set(f"Completed {completed}/{total} tables")

    def update_status(self, status: str) -> None:
        self._current_status.set(status)

    def summary(self) -> str:
        completed = self.completed_tables
        total = self.total_tables
        return (
            f"Session {self.session_id}: {completed}/{total} tables "
            f"({completed / max(1, total) * 100.0:.1f}%), "
            f"{self.total_transferred_rows}/{self.total_estimated_rows} rows "
            f"({self.overall_progress_percent:.1f}%), "
            f"{self.overall_transfer_rate_rows_per_second:.1f} rows/sec, "
            f"{self.current_status}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot for status reporting."""
        return {
            'session_id': self.session_id,
            'total_tables': self.total_tables,
            'completed_tables': self.completed_tables,
            'total_estimated_rows': self.total_estimated_rows,
            'total_transferred_rows': self.total_transferred_rows,
            'current_table': self.current_table,
            'current_table_total_rows': self.current_table_total_rows,
            'current_table_transferred_rows': self.current_table_transferred_rows,
            'current_status': self.current_status,
            'overall_progress_percent': self.overall_progress_percent,
            'rows_per_second': self.overall_transfer_rate_rows_per_second,
            'estimated_remaining_time_ms': self.estimated_remaining_time_ms,
        }

    def __str__(self) -> str:
        return self.summary()


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a single table transfer attempt."""

    schema_name: str
    table_name: str
    successful: bool = False
    rows_transferred: int = 0
    source_row_count: int = 0
    transfer_time_ms: int = 0
    strategy_used: Optional[str] = None
    error_message: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, compare=False, repr=False)
    unsupported: bool = False

    def __post_init__(self):
        if self.successful and self.error_message is not None:
            raise ValueError("A successful TransferResult cannot carry an error message")
        if self.successful and self.unsupported:
            raise ValueError("An unsupported TransferResult cannot be successful")

    @property
    def full_table_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def has_row_count_mismatch(self) -> bool:
        return self.successful and self.source_row_count != self.rows_transferred

    @property
    def transfer_rate_rows_per_second(self) -> float:
        if self.transfer_time_ms <= 0:
            return 0.0
        return self.rows_transferred / (self.transfer_time_ms / 1000.0)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form (e.g. for XCom or a migration report)."""
        return {
            'schema_name': self.schema_name,
            'table_name': self.table_name,
            'table': self.full_table_name,
            'success': self.successful,
            'unsupported': self.unsupported,
            'rows_transferred': self.rows_transferred,
            'source_row_count': self.source_row_count,
            'transfer_time_ms': self.transfer_time_ms,
            'rows_per_second': self.transfer_rate_rows_per_second,
            'strategy': self.strategy_used,
            'error_message': self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferResult":
        """Rebuild a result from to_dict() output (e.g. results pulled from XCom)."""
        return (
            cls.Builder(data['schema_name'], data['table_name'])
            .successful(bool(data.get('success')))
            .unsupported(bool(data.get('unsupported')))
            .rows_transferred(data.get('rows_transferred', 0))
            .source_row_count(data.get('source_row_count', 0))
            .transfer_time_ms(data.get('transfer_time_ms', 0))
            .strategy_used(data.get('strategy'))
            .error_message(data.get('error_message'))
            .build()
        )

    def __str__(self) -> str:
        if self.successful:
            return (
                f"SUCCESS: {self.full_table_name} - {self.rows_transferred}/{self.source_row_count} rows "
                f"in {self.transfer_time_ms}ms using {self.strategy_used} "
                f"({self.transfer_rate_rows_per_second:.1f} rows/sec)"
            )
        if self.unsupported:
            return f"UNSUPPORTED: {self.full_table_name} - {self.error_message}"
        return f"FAILED: {self.full_table_name} - {self.error_message}"

    class Builder:
        """Fluent builder; `build()` returns an immutable TransferResult."""

        def __init__(self, schema_name: str, table_name: str):
            self._values: Dict[str, Any] = {
                'schema_name': schema_name,
                'table_name': table_name,
            }

        def successful(self, successful: bool) -> "TransferResult.Builder":
            self._values['successful'] = successful
            return self

        def rows_transferred(self, rows: int) -> "TransferResult.Builder":
            self._values['rows_transferred'] = rows
            return self

        def source_row_count(self, rows: int) -> "TransferResult.Builder":
            self._values['source_row_count'] = rows
            return self

        def transfer_time_ms(self, millis: int) -> "TransferResult.Builder":
            self._values['transfer_time_ms'] = millis
            return self

        def strategy_used(self, strategy: Optional[str]) -> "TransferResult.Builder":
            self._values['strategy_used'] = strategy
            return self

        def error_message(self, message: Optional[str]) -> "TransferResult.Builder":
            self._values['error_message'] = message
            return self

        def exception(self, exc: Optional[BaseException]) -> "TransferResult.Builder":
            self._values['exception'] = exc
            if exc is not None and self._values.get('error_message') is None:
                self._values['error_message'] = str(exc)
            return self

        def unsupported(self, unsupported: bool) -> "TransferResult.Builder":
            self._values['unsupported'] = unsupported
            return self

        def build(self) -> "TransferResult":
            return TransferResult(**self._values)

    @classmethod
    def success(
        cls,
        schema_name: str,
        table_name: str,
        rows_transferred: int,
        source_row_count: int,
        transfer_time_ms: int,
        strategy: str,
    ) -> "TransferResult":
        return (
            cls.Builder(schema_name, table_name)
            .successful(True)
            .rows_transferred(rows_transferred)
            .source_row_count(source_row_count)
            .transfer_time_ms(transfer_time_ms)
            .strategy_used(strategy)
            .build()
        )

    @classmethod
    def failure(
        cls,
        schema_name: str,
        table_name: str,
        strategy: Optional[str],
        error_message: str,
        exception: Optional[BaseException] = None,
        rows_transferred: int = 0,
        transfer_time_ms: int = 0,
        source_row_count: int = 0,
    ) -> "TransferResult":
        return (
            cls.Builder(schema_name, table_name)
            .successful(False)
            .strategy_used(strategy)
            .error_message(error_message)
            .exception(exception)
            .rows_transferred(rows_transferred)
            .source_row_count(source_row_count)
            .transfer_time_ms(transfer_time_ms)
            .build()
        )

    @classmethod
    def unsupported_table(
        cls,
        schema_name: str,
        table_name: str,
        strategy: str,
        reason: str,
    ) -> "TransferResult":
        return (
            cls.Builder(schema_name, table_name)
            .successful(False)
            .unsupported(True)
            .strategy_used(strategy)
            .error_message(reason)
            .build()
        )
