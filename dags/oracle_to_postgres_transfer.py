"""
Oracle to PostgreSQL Data Transfer DAG

This DAG copies table data from Oracle into an existing PostgreSQL schema.
It handles:
1. Loading the exported table, object type and synonym metadata
2. Selecting a transfer strategy per table (COPY streaming or object type mapping)
3. Transferring tables in parallel, one mapped task per table
4. Reporting successful, failed and unsupported tables with per-strategy counts

Target tables (and composite types for Oracle object types) must already exist.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from datetime import timedelta
from typing import List, Dict, Any
import logging

from oracle_pg_migration import data_transfer
from oracle_pg_migration.table_metadata import load_migration_metadata

logger = logging.getLogger(__name__)


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    max_active_tasks=5,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 1,
        "retry_delay": timedelta(seconds=30),
    },
    params={
        "source_conn_id": Param(
            default="oracle_source",
            type="string",
            description="Oracle connection ID"
        ),
        "target_conn_id": Param(
            default="postgres_target",
            type="string",
            description="PostgreSQL connection ID"
        ),
        "metadata_file": Param(
            default="/opt/airflow/include/migration_metadata.json",
            type="string",
            description="JSON export with tables, object types and synonyms"
        ),
        "include_tables": Param(
            default=[],
            type="array",
            description="Tables to transfer (SCHEMA.TABLE or TABLE); empty means all"
        ),
    },
    tags=["migration", "oracle", "postgres", "data-transfer"],
)
def oracle_to_postgres_transfer():
    """
    Table data transfer from Oracle to PostgreSQL.
    """

    @task
    def list_tables(**context) -> List[str]:
        """
        Resolve the tables to transfer from the metadata export.

        Returns:
            List of fully qualified table names
        """
        params = context["params"]
        tables, _ = load_migration_metadata(params["metadata_file"])
        selected = data_transfer.select_tables(tables, params.get("include_tables") or [])

        logger.info(f"Selected {len(selected)} of {len(tables)} tables for transfer")
        return [table.full_name for table in selected]

    @task
    def transfer_table(table_name: str, **context) -> Dict[str, Any]:
        """
        Transfer a single table.

        Args:
            table_name: Fully qualified source table name

        Returns:
            Transfer result dictionary
        """
        params = context["params"]

        results = data_transfer.transfer_table_data(
            oracle_conn_id=params["source_conn_id"],
            postgres_conn_id=params["target_conn_id"],
            metadata_path=params["metadata_file"],
            include_tables=[table_name],
        )
        if not results:
            raise ValueError(f"Table {table_name} not found in {params['metadata_file']}")

        result = results[0]
        if result["success"]:
            logger.info(
                f"✓ {table_name}: Transferred {result['rows_transferred']:,} rows "
                f"in {result['transfer_time_ms']}ms using {result['strategy']}"
            )
        elif result["unsupported"]:
            logger.warning(f"⚠ {table_name}: {result['error_message']}")
        else:
            logger.error(f"✗ {table_name}: {result['error_message']}")

        return result

    @task(trigger_rule="all_done")
    def generate_transfer_summary(results: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Aggregate the per-table results."""
        summary = data_transfer.summarize_transfer_results(results)

        for name in summary["failed_table_names"]:
            logger.error(f"  Failed: {name}")
        for name in summary["unsupported_table_names"]:
            logger.warning(f"  Unsupported: {name}")

        return summary

    table_names = list_tables()
    transfer_results = transfer_table.expand(table_name=table_names)
    generate_transfer_summary(transfer_results)


# Instantiate the DAG
oracle_to_postgres_transfer()
