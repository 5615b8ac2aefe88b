"""
Tests for Transfer Strategy Manager Module

These tests validate priority ordering, strategy selection, the unsupported
fallback and per-table failure isolation.
"""

from unittest.mock import Mock, call, patch

import pytest
from oracle_pg_migration.object_type_strategy import ObjectTypeMappingStrategy
from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.strategy_manager import (
    BatchTransferResult,
    ProgressCallback,
    TransferStrategyManager,
    create_default_manager,
)
from oracle_pg_migration.streaming_copy import StreamingCopyStrategy, parse_copy_line
from oracle_pg_migration.table_metadata import (
    ObjectTypeAttribute,
    ObjectTypeMetadata,
    ObjectTypeRegistry,
)
from oracle_pg_migration.transfer_config import TransferConfig
from oracle_pg_migration.transfer_strategy import UnsupportedTransferStrategy

from .fakes import StubStrategy, make_table


@pytest.fixture
def table():
    return make_table("HR", "EMPLOYEES", ("ID", "NUMBER"))


@pytest.fixture
def progress():
    progress = TransferProgress("test")
    progress.initialize_transfer(3, 3)
    return progress


class TestStrategyRegistration:
    """Test priority ordering."""

    def test_sorted_by_priority(self):
        manager = TransferStrategyManager([
            StubStrategy("low", 10), StubStrategy("high", 100), StubStrategy("mid", 50),
        ])
        assert [s.strategy_name for s in manager.get_registered_strategies()] == ["high", "mid", "low"]

    def test_ties_keep_registration_order(self):
        manager = TransferStrategyManager()
        manager.register_strategy(StubStrategy("first", 10))
        manager.register_strategy(StubStrategy("second", 10))
        manager.register_strategy(StubStrategy("top", 20))
        assert [s.strategy_name for s in manager.get_registered_strategies()] == ["top", "first", "second"]

    def test_none_ignored(self):
        manager = TransferStrategyManager()
        manager.register_strategy(None)
        assert manager.get_registered_strategies() == []

    def test_statistics(self):
        manager = TransferStrategyManager([StubStrategy("a", 2), StubStrategy("b", 1)])
        assert manager.get_strategy_statistics() == {
            'total_strategies': 3,
            'registered_strategies': ["a", "b"],
            'priorities': {"a": 2, "b": 1},
        }

    def test_default_manager(self):
        manager = create_default_manager(TransferConfig())
        strategies = manager.get_registered_strategies()
        assert isinstance(strategies[0], ObjectTypeMappingStrategy)
        assert isinstance(strategies[1], StreamingCopyStrategy)


class TestStrategySelection:
    """Test selection and fallback."""

    def test_highest_priority_wins(self, table):
        high = StubStrategy("high", 100)
        manager = TransferStrategyManager([StubStrategy("low", 1), high])
        assert manager.select_strategy(table) is high

    def test_skips_strategies_that_decline(self, table):
        low = StubStrategy("low", 1)
        manager = TransferStrategyManager([StubStrategy("high", 100, handles=False), low])
        assert manager.select_strategy(table) is low

    def test_can_handle_error_skipped(self, table):
        low = StubStrategy("low", 1)
        manager = TransferStrategyManager([StubStrategy("broken", 100, handles=RuntimeError("x")), low])
        assert manager.select_strategy(table) is low

    def test_fallback(self, table):
        manager = TransferStrategyManager([StubStrategy("never", 1, handles=False)])
        assert isinstance(manager.select_strategy(table), UnsupportedTransferStrategy)

    def test_fallback_with_no_strategies(self, table):
        assert isinstance(TransferStrategyManager().select_strategy(table), UnsupportedTransferStrategy)


class TestConvertTable:
    """Test single table conversion."""

    def test_success(self, table, progress):
        manager = TransferStrategyManager([StubStrategy("only", 1)])
        result = manager.convert_table(table, None, None, progress)
        assert result.successful
        assert result.strategy_used == "only"

    def test_strategy_exception_becomes_failure(self, table, progress):
        manager = TransferStrategyManager([StubStrategy("boom", 1, error=RuntimeError("kaput"))])

        result = manager.convert_table(table, None, None, progress)

        assert not result.successful
        assert not result.unsupported
        assert result.strategy_used == "boom"
        assert result.error_message == "Transfer failed: kaput"
        assert progress.completed_tables == 1

    def test_selection_exception_becomes_failure(self, table, progress):
        manager = TransferStrategyManager()
        with patch.object(manager, 'select_strategy', side_effect=RuntimeError("no luck")):
            result = manager.convert_table(table, None, None, progress)

        assert not result.successful
        assert result.strategy_used is None
        assert result.error_message == "Transfer failed: no luck"

    def test_unsupported_table(self, progress):
        odd = make_table("HR", "ODD", ("ID", "NUMBER"), ("SHAPE", "SDO_GEOMETRY"))
        manager = create_default_manager(TransferConfig())

        result = manager.convert_table(odd, None, None, progress, registry=None)

        assert not result.successful
        assert result.unsupported
        assert result.strategy_used == "Unsupported"
        assert "No transfer strategy available for table HR.ODD" in result.error_message
        assert "object type metadata was not provided" in result.error_message
        assert progress.completed_tables == 1


class TestTransferTables:
    """Test multi-table transfers."""

    def test_failure_isolated(self, progress):
        """A failing table must not stop the tables after it."""
        good = StubStrategy("good", 1)
        bad = StubStrategy("bad", 10, error=RuntimeError("broken"))
        bad.can_handle = lambda table, registry=None: table.table_name == "B"
        manager = TransferStrategyManager([good, bad])
        tables = [make_table("HR", name, ("ID", "NUMBER")) for name in ("A", "B", "C")]

        batch = manager.transfer_tables(tables, None, None, progress)

        assert [r.table_name for r in batch.successful] == ["A", "C"]
        assert [r.table_name for r in batch.failed] == ["B"]
        assert batch.unsupported == []
        assert batch.total_tables == 3
        assert batch.total_rows_transferred == 2
        assert batch.strategy_usage == {"good": 2, "bad": 1}
        assert good.transferred == ["HR.A", "HR.C"]

    def test_real_strategies_three_tables(self, oracle_conn, postgres_conn, progress):
        """A simple table, a complex table and a failing table in one run."""
        registry = ObjectTypeRegistry(object_types=[
            ObjectTypeMetadata("HR", "ADDRESS_T", [ObjectTypeAttribute("STREET", "VARCHAR2")]),
        ])
        simple = make_table("HR", "EMPLOYEES", ("ID", "NUMBER"), ("NAME", "VARCHAR2"))
        complex_table = make_table("HR", "PEOPLE", ("ID", "NUMBER"), ("HOME", "ADDRESS_T"))
        broken = make_table("HR", "BROKEN", ("ID", "NUMBER"), ("BODY", "CLOB"))
        oracle_conn.add_table("HR", "EMPLOYEES", [(1, "Ann"), (2, None)])
        oracle_conn.add_table("HR", "PEOPLE", [(1, {"STREET": "Main St"})])
        oracle_conn.add_table("HR", "BROKEN", [])
        oracle_conn.select_errors['"HR"."BROKEN"'] = RuntimeError("ORA-01555: snapshot too old")

        with patch('oracle_pg_migration.object_type_strategy.execute_batch') as mock_execute_batch:
            batch = create_default_manager(TransferConfig()).transfer_tables(
                [simple, complex_table, broken], oracle_conn, postgres_conn, progress, registry
            )

        assert [r.table_name for r in batch.successful] == ["EMPLOYEES", "PEOPLE"]
        assert [r.table_name for r in batch.failed] == ["BROKEN"]
        assert batch.failed[0].error_message == "Transfer failed: ORA-01555: snapshot too old"
        assert batch.strategy_usage == {
            "CSV Streaming": 1,
            "Object Type / Complex Data Transfer": 2,
        }
        assert [parse_copy_line(line) for line in postgres_conn.copied_lines] == [["1", "Ann"], ["2", None]]
        assert mock_execute_batch.call_args[0][2] == [[1, '("Main St")']]
        assert progress.completed_tables == 3
        assert progress.is_completed
        assert progress.current_status == "Transfer completed"

    def test_uninitialized_progress_seeded(self):
        """A fresh progress is sized to the batch before the first table runs."""
        progress = TransferProgress("s")
        manager = TransferStrategyManager([StubStrategy("only", 1)])
        tables = [make_table("HR", name, ("ID", "NUMBER")) for name in ("EMPLOYEES", "JOBS", "APP_CONFIG")]
        statuses = []
        callback = Mock(spec=ProgressCallback)
        callback.on_table_complete.side_effect = lambda *args: statuses.append(
            (progress.completed_tables, progress.total_tables, progress.current_status)
        )

        manager.transfer_tables(tables, None, None, progress, progress_callback=callback)

        assert statuses == [
            (1, 3, "Completed 1/3 tables"),
            (2, 3, "Completed 2/3 tables"),
            (3, 3, "Transfer completed"),
        ]
        assert progress.total_estimated_rows == 2000 + 2000 + 100
        assert progress.is_completed

    def test_initialized_progress_kept(self):
        progress = TransferProgress("s")
        progress.initialize_transfer(10, 500)
        manager = TransferStrategyManager([StubStrategy("only", 1)])

        manager.transfer_tables([make_table("HR", "JOBS", ("ID", "NUMBER"))], None, None, progress)

        assert progress.total_tables == 10
        assert progress.total_estimated_rows == 500
        assert progress.current_status == "Completed 1/10 tables"

    def test_failed_table_completes(self):
        """A failed table counts as attempted, with 0 rows."""
        progress = TransferProgress("s")
        bad = StubStrategy("bad", 10, error=RuntimeError("broken"))
        bad.can_handle = lambda table, registry=None: table.table_name == "B"
        manager = TransferStrategyManager([StubStrategy("good", 1, rows=5), bad])
        tables = [
            make_table("HR", "A", ("ID", "NUMBER")),
            make_table("HR", "B", ("ID", "NUMBER")),
        ]

        batch = manager.transfer_tables(tables, None, None, progress)

        assert len(batch.failed) == 1
        assert progress.completed_tables == 2
        assert progress.total_transferred_rows == 5
        assert progress.is_completed

    def test_callbacks_and_order(self, progress):
        bad = StubStrategy("bad", 10, error=RuntimeError("broken"))
        bad.can_handle = lambda table, registry=None: table.table_name == "B"
        manager = TransferStrategyManager([StubStrategy("good", 1, rows=7), bad])
        callback = Mock(spec=ProgressCallback)
        tables = [make_table("HR", name, ("ID", "NUMBER")) for name in ("B", "A")]

        batch = manager.transfer_tables(tables, None, None, progress, progress_callback=callback)

        assert [r.table_name for r in batch.results] == ["B", "A"]
        assert callback.mock_calls == [
            call.on_table_start(0, 2, "HR.B"),
            call.on_table_complete(0, 2, "HR.B", False, 0),
            call.on_table_start(1, 2, "HR.A"),
            call.on_table_complete(1, 2, "HR.A", True, 7),
        ]

    def test_no_tables(self):
        progress = TransferProgress("s")
        batch = TransferStrategyManager([StubStrategy("only", 1)]).transfer_tables([], None, None, progress)
        assert batch.results == []
        assert progress.total_tables == 0


class TestBatchTransferResult:
    """Test aggregate results."""

    def test_percentages(self):
        batch = BatchTransferResult()
        batch.add(TransferResult.success("S", "A", 10, 10, 1, "x"))
        batch.add(TransferResult.failure("S", "B", "x", "err"))
        batch.add(TransferResult.unsupported_table("S", "C", "Unsupported", "why"))
        batch.add(TransferResult.failure("S", "D", None, "err"))

        assert batch.supported_count == 3
        assert batch.supported_percentage == 75.0
        assert batch.total_rows_transferred == 10
        assert batch.strategy_usage == {"x": 2, "Unsupported": 1, "Error": 1}
        assert len(batch.results) == 4
        assert "4 total, 1 successful, 2 failed, 1 unsupported (75.0% supported)" in batch.summary()

    def test_empty(self):
        assert BatchTransferResult().supported_percentage == 0.0

    def test_results_keep_input_order(self):
        batch = BatchTransferResult.from_results([
            TransferResult.unsupported_table("S", "C", "Unsupported", "why"),
            TransferResult.failure("S", "B", "x", "err"),
            TransferResult.success("S", "A", 10, 10, 1, "x"),
        ])
        assert [r.table_name for r in batch.results] == ["C", "B", "A"]

    def test_to_dict(self):
        batch = BatchTransferResult.from_results([
            TransferResult.success("S", "A", 10, 10, 1, "CSV Streaming"),
            TransferResult.success("S", "B", 2, 2, 1, "CSV Streaming"),
            TransferResult.failure("S", "C", "Object Type / Complex Data Transfer", "err"),
            TransferResult.unsupported_table("S", "D", "Unsupported", "why"),
        ])

        assert batch.to_dict() == {
            'total_tables': 4,
            'successful_tables': 2,
            'failed_tables': 1,
            'unsupported_tables': 1,
            'supported_percentage': 75.0,
            'strategy_usage': {
                "CSV Streaming": 2,
                "Object Type / Complex Data Transfer": 1,
                "Unsupported": 1,
            },
            'total_rows_transferred': 12,
            'failed_table_names': ["S.C"],
            'unsupported_table_names': ["S.D"],
        }
