"""
Tests for Data Transfer Module

These tests validate transfer sessions (progress, callbacks, results), table
selection and the Airflow entry point.
"""

import json
import re
from unittest.mock import Mock, call, patch

import pytest
from oracle_pg_migration.data_transfer import (
    DataTransferResults,
    DataTransferService,
    ProgressCallback,
    select_tables,
    summarize_transfer_results,
    transfer_table_data,
)
from oracle_pg_migration.progress import TransferProgress, TransferResult
from oracle_pg_migration.strategy_manager import BatchTransferResult, TransferStrategyManager
from oracle_pg_migration.streaming_copy import parse_copy_line
from oracle_pg_migration.transfer_config import TransferConfig

from .fakes import StubStrategy, make_table


def named_table(name):
    return make_table("APP", name, ("ID", "NUMBER"))


class TestSelectTables:
    """Test table filtering by name."""

    @pytest.fixture
    def tables(self):
        return [make_table("HR", "EMPLOYEES"), make_table("HR", "JOBS"), make_table("SALES", "ORDERS")]

    def test_no_filter(self, tables):
        assert select_tables(tables, None) == tables
        assert select_tables(tables, []) == tables

    def test_qualified_and_bare_names(self, tables):
        selected = select_tables(tables, ["hr.jobs", "ORDERS"])
        assert [t.full_name for t in selected] == ["HR.JOBS", "SALES.ORDERS"]

    def test_unknown_name(self, tables):
        assert select_tables(tables, ["NOPE"]) == []


class TestDataTransferResults:
    """Test session result aggregation."""

    def test_aggregates(self):
        batch = BatchTransferResult.from_results([
            TransferResult.success("S", "A", 10, 10, 100, "x"),
            TransferResult.failure("S", "B", "x", "err", rows_transferred=3, transfer_time_ms=50),
            TransferResult.success("S", "C", 5, 5, 20, "x"),
            TransferResult.unsupported_table("S", "D", "Unsupported", "why"),
        ])
        results = DataTransferResults("abcd1234", batch, TransferProgress("abcd1234"))

        assert not results.is_overall_success
        assert results.total_rows_transferred == 15
        assert results.total_transfer_time_ms == 170
        assert [r.table_name for r in results.table_results] == ["A", "B", "C", "D"]
        assert [r.table_name for r in results.failed_tables] == ["B"]
        assert [r.table_name for r in results.unsupported_tables] == ["D"]
        assert [r.table_name for r in results.successful_tables] == ["A", "C"]
        assert results.strategy_usage == {"x": 3, "Unsupported": 1}
        assert results.supported_percentage == 75.0
        assert results.summary() == (
            "Session abcd1234: 2/4 tables successful, 1 failed, 1 unsupported (75.0% supported), "
            "15 rows transferred in 170 ms"
        )

    def test_all_successful(self):
        batch = BatchTransferResult.from_results([TransferResult.success("S", "A", 1, 1, 1, "x")])
        results = DataTransferResults("s", batch, TransferProgress("s"))
        assert results.is_overall_success


class TestDataTransferService:
    """Test transfer sessions."""

    @pytest.fixture
    def manager(self):
        bad = StubStrategy("bad", 10, error=RuntimeError("nope"))
        bad.can_handle = lambda table, registry=None: table.table_name == "BAD"
        return TransferStrategyManager([StubStrategy("x", 1, rows=7), bad])

    def test_session(self, manager):
        tables = [named_table("ORDERS"), named_table("BAD"), named_table("APP_CONFIG")]

        results = DataTransferService(manager, TransferConfig()).transfer_tables(tables, "ora", "pg")

        assert re.fullmatch(r"[0-9a-f]{8}", results.session_id)
        assert [r.table_name for r in results.table_results] == ["ORDERS", "BAD", "APP_CONFIG"]
        assert not results.is_overall_success
        assert results.total_rows_transferred == 14
        assert results.failed_tables[0].error_message == "Transfer failed: nope"
        assert results.strategy_usage == {"x": 2, "bad": 1}
        assert results.supported_percentage == 100.0
        assert results.final_progress.session_id == results.session_id
        assert results.final_progress.total_tables == 3
        assert results.final_progress.completed_tables == 3
        assert results.final_progress.total_estimated_rows == 10000 + 2000 + 100
        assert results.final_progress.is_completed

    def test_delegates_to_manager(self):
        manager = Mock()
        manager.transfer_tables.return_value = BatchTransferResult()
        registry = Mock()
        callback = Mock(spec=ProgressCallback)
        tables = [named_table("ORDERS")]

        results = DataTransferService(manager, TransferConfig()).transfer_tables(
            tables, "ora", "pg", registry, progress_callback=callback
        )

        args, kwargs = manager.transfer_tables.call_args
        assert args[0] is tables
        assert args[1:3] == ("ora", "pg")
        assert args[3] is results.final_progress
        assert kwargs == {'registry': registry, 'progress_callback': callback}
        assert results.batch is manager.transfer_tables.return_value

    def test_callbacks(self, manager):
        callback = Mock(spec=ProgressCallback)
        tables = [named_table("ORDERS"), named_table("BAD")]

        DataTransferService(manager, TransferConfig()).transfer_tables(
            tables, "ora", "pg", progress_callback=callback
        )

        assert callback.mock_calls == [
            call.on_table_start(0, 2, "APP.ORDERS"),
            call.on_table_complete(0, 2, "APP.ORDERS", True, 7),
            call.on_table_start(1, 2, "APP.BAD"),
            call.on_table_complete(1, 2, "APP.BAD", False, 0),
        ]

    def test_no_tables(self, manager):
        results = DataTransferService(manager, TransferConfig()).transfer_tables([], "ora", "pg")
        assert results.table_results == []
        assert results.is_overall_success

    def test_unique_session_ids(self, manager):
        service = DataTransferService(manager, TransferConfig())
        first = service.transfer_tables([], "ora", "pg")
        second = service.transfer_tables([], "ora", "pg")
        assert first.session_id != second.session_id

    def test_default_strategies_end_to_end(self, oracle_conn, postgres_conn):
        oracle_conn.add_table("APP", "ORDERS", [(1,), (2,)])
        oracle_conn.add_table("APP", "CUSTOMERS", [(3,)])

        results = DataTransferService(config=TransferConfig()).transfer_tables(
            [named_table("ORDERS"), named_table("CUSTOMERS")], oracle_conn, postgres_conn
        )

        assert results.is_overall_success
        assert results.total_rows_transferred == 3
        assert [parse_copy_line(line) for line in postgres_conn.copied_lines] == [["1"], ["2"], ["3"]]


class TestTransferTableData:
    """Test the Airflow entry point."""

    @pytest.fixture
    def metadata_file(self, tmp_path):
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps({
            "tables": [
                {"schema": "APP", "table_name": "ORDERS", "columns": [{"column_name": "ID", "data_type": "NUMBER"}]},
                {"schema": "APP", "table_name": "BROKEN", "columns": [{"column_name": "ID", "data_type": "NUMBER"}]},
            ],
            "object_types": [],
        }))
        return str(path)

    @pytest.fixture
    def hooks(self, oracle_conn, postgres_conn):
        with patch('oracle_pg_migration.oracle_helper.OracleConnectionHelper') as mock_helper, \
                patch('airflow.providers.postgres.hooks.postgres.PostgresHook') as mock_hook:
            mock_helper.return_value.get_conn.return_value = oracle_conn
            mock_hook.return_value.get_conn.return_value = postgres_conn
            yield mock_helper, mock_hook

    def test_transfer_and_commit_per_table(self, metadata_file, hooks, oracle_conn, postgres_conn):
        mock_helper, mock_hook = hooks
        oracle_conn.add_table("APP", "ORDERS", [(1,), (2,)])
        oracle_conn.add_table("APP", "BROKEN", [(1,)])
        oracle_conn.select_errors['"APP"."BROKEN"'] = RuntimeError("ORA-00942: table or view does not exist")

        results = transfer_table_data("oracle_source", "postgres_target", metadata_file)

        mock_helper.assert_called_once_with("oracle_source")
        mock_hook.assert_called_once_with(postgres_conn_id="postgres_target")
        assert [r["table"] for r in results] == ["APP.ORDERS", "APP.BROKEN"]
        assert results[0]["success"] is True
        assert results[0]["rows_transferred"] == 2
        assert results[1]["success"] is False
        assert "ORA-00942" in results[1]["error_message"]
        assert postgres_conn.commits == 1
        assert postgres_conn.rollbacks == 1
        assert postgres_conn.closed
        mock_helper.return_value.release_conn.assert_called_once_with(oracle_conn)

    def test_include_tables(self, metadata_file, hooks, oracle_conn, postgres_conn):
        oracle_conn.add_table("APP", "ORDERS", [(1,)])

        results = transfer_table_data("ora", "pg", metadata_file, include_tables=["app.orders"])

        assert [r["table"] for r in results] == ["APP.ORDERS"]
        assert postgres_conn.commits == 1

    def test_no_matching_tables(self, metadata_file, hooks):
        mock_helper, mock_hook = hooks

        assert transfer_table_data("ora", "pg", metadata_file, include_tables=["NOPE"]) == []
        mock_helper.assert_not_called()
        mock_hook.assert_not_called()

    def test_connections_closed_on_error(self, metadata_file, hooks, postgres_conn):
        mock_helper, _ = hooks
        mock_helper.return_value.get_conn.side_effect = RuntimeError("ORA-12541: no listener")

        with pytest.raises(RuntimeError, match="ORA-12541"):
            transfer_table_data("ora", "pg", metadata_file)

        mock_helper.return_value.release_conn.assert_called_once_with(None)


class TestSummarizeTransferResults:
    """Test the DAG summary of per-table result dictionaries."""

    def test_summary(self):
        results = [
            TransferResult.success("APP", "ORDERS", 10, 10, 5, "CSV Streaming").to_dict(),
            TransferResult.success("APP", "PEOPLE", 3, 3, 5, "Object Type / Complex Data Transfer").to_dict(),
            TransferResult.failure("APP", "BROKEN", "CSV Streaming", "Transfer failed: x").to_dict(),
            TransferResult.unsupported_table("APP", "ODD", "Unsupported", "why").to_dict(),
            None,
        ]

        summary = summarize_transfer_results(results)

        assert summary['total_tables'] == 4
        assert summary['successful_tables'] == 2
        assert summary['failed_tables'] == 1
        assert summary['unsupported_tables'] == 1
        assert summary['supported_percentage'] == 75.0
        assert summary['strategy_usage'] == {
            "CSV Streaming": 2,
            "Object Type / Complex Data Transfer": 1,
            "Unsupported": 1,
        }
        assert summary['total_rows_transferred'] == 13
        assert summary['failed_table_names'] == ["APP.BROKEN"]
        assert summary['unsupported_table_names'] == ["APP.ODD"]

    def test_entry_point_results(self, tmp_path, oracle_conn, postgres_conn):
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps({
            "tables": [{"schema": "APP", "table_name": "ORDERS", "columns": [{"column_name": "ID", "data_type": "NUMBER"}]}],
            "object_types": [],
        }))
        oracle_conn.add_table("APP", "ORDERS", [(1,), (2,)])

        with patch('oracle_pg_migration.oracle_helper.OracleConnectionHelper') as mock_helper, \
                patch('airflow.providers.postgres.hooks.postgres.PostgresHook') as mock_hook:
            mock_helper.return_value.get_conn.return_value = oracle_conn
            mock_hook.return_value.get_conn.return_value = postgres_conn
            results = transfer_table_data("ora", "pg", str(path))

        summary = summarize_transfer_results(results)

        assert summary['successful_tables'] == 1
        assert summary['total_rows_transferred'] == 2
        assert summary['strategy_usage'] == {"CSV Streaming": 1}

    def test_empty(self):
        assert summarize_transfer_results([])['supported_percentage'] == 0.0
