"""
Oracle to PostgreSQL Data Transfer Utilities

This package moves table data from Oracle to PostgreSQL using Apache Airflow.

Modules:
- type_mapping: Oracle type names and categories
- table_metadata: Table, column, object type and synonym metadata
- table_analyzer: Column type predicates and transfer estimates
- progress: Thread-safe transfer progress and per-table results
- transfer_strategy: Strategy contract and the unsupported fallback
- streaming_copy: COPY text streaming for tables with primitive columns
- object_type_strategy: Row-by-row transfer for object types and complex columns
- strategy_manager: Priority-based strategy selection
- data_transfer: Transfer sessions and the Airflow entry point

Tuning Options:
- TRANSFER_COPY_BATCH_SIZE=N: Rows per COPY flush
- TRANSFER_OBJECT_BATCH_SIZE=N: Rows per INSERT batch for complex tables
"""

__version__ = "1.0.0"

__all__ = [
    "type_mapping",
    "table_metadata",
    "table_analyzer",
    "progress",
    "transfer_strategy",
    "streaming_copy",
    "object_type_mapper",
    "complex_converters",
    "parameter_setter",
    "object_type_strategy",
    "strategy_manager",
    "data_transfer",
    "oracle_helper",
    "transfer_config",
]
