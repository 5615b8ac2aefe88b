"""
Table Analysis Module

Classifies tables by their column types. The result drives transfer strategy
selection: primitive-only tables are streamed through COPY, everything else
(object types, LOBs, ANYDATA, AQ payloads, ...) goes through per-row
conversion.

All functions are pure and only look at metadata.
"""

from typing import Optional
import logging
import re

from oracle_pg_migration.table_metadata import ObjectTypeRegistry, TableMetadata
from oracle_pg_migration.type_mapping import (
    base_data_type,
    is_complex_data_type,
    is_object_type_pattern,
    is_simple_data_type,
)

logger = logging.getLogger(__name__)

ANYDATA_TYPE = "ANYDATA"
AQ_JMS_TEXT_MESSAGE_TYPE = "AQ$_JMS_TEXT_MESSAGE"
AQ_SIG_PROP_TYPE = "AQ$_SIG_PROP"
AQ_RECIPIENTS_TYPE = "AQ$_RECIPIENTS"

_MAPPING_TABLE_PATTERN = re.compile(r".*_[a-z]+_[a-z]+.*")


def is_anydata_type(data_type: Optional[str]) -> bool:
    if not data_type:
        return False
    return base_data_type(data_type) in (ANYDATA_TYPE, "SYS.ANYDATA")


def is_aq_jms_message_type(data_type: Optional[str]) -> bool:
    return bool(data_type) and AQ_JMS_TEXT_MESSAGE_TYPE in base_data_type(data_type)


def is_aq_sig_prop_type(data_type: Optional[str]) -> bool:
    return bool(data_type) and AQ_SIG_PROP_TYPE in base_data_type(data_type)


def is_aq_recipients_type(data_type: Optional[str]) -> bool:
    return bool(data_type) and AQ_RECIPIENTS_TYPE in base_data_type(data_type)


def has_only_primitive_types(table: TableMetadata) -> bool:
    """
    Check whether every column has a simple scalar type.

    Unknown types are treated as complex. A table without columns is not
    considered primitive.
    """
    if not table.columns:
        return False

    for column in table.columns:
        if is_complex_data_type(column.data_type):
            return False
        if not is_simple_data_type(column.data_type):
            return False

    return True


def has_complex_data_types(table: TableMetadata) -> bool:
    """Check whether any column has a known complex type."""
    return any(is_complex_data_type(column.data_type) for column in table.columns)


def _is_object_type_column(table: TableMetadata, data_type: str, registry: ObjectTypeRegistry) -> bool:
    if registry.resolve_column_type(data_type, table.schema) is not None:
        return True
    return is_object_type_pattern(data_type)


def has_object_types(table: TableMetadata, registry: Optional[ObjectTypeRegistry]) -> bool:
    """
    Check whether any column is an Oracle object type.

    A column counts when its type resolves in the registry, or when its name
    follows the user-defined type pattern.
    """
    if not table.columns or registry is None:
        return False
    return any(_is_object_type_column(table, column.data_type, registry) for column in table.columns)


def count_object_type_columns(table: TableMetadata, registry: Optional[ObjectTypeRegistry]) -> int:
    if registry is None:
        return 0
    return sum(1 for column in table.columns if _is_object_type_column(table, column.data_type, registry))


def has_anydata_columns(table: TableMetadata) -> bool:
    """Check whether any column uses the polymorphic ANYDATA type."""
    return any(is_anydata_type(column.data_type) for column in table.columns)


def count_anydata_columns(table: TableMetadata) -> int:
    return sum(1 for column in table.columns if is_anydata_type(column.data_type))


def has_aq_jms_message_columns(table: TableMetadata) -> bool:
    return any(is_aq_jms_message_type(column.data_type) for column in table.columns)


def count_aq_jms_message_columns(table: TableMetadata) -> int:
    return sum(1 for column in table.columns if is_aq_jms_message_type(column.data_type))


def has_aq_sig_prop_columns(table: TableMetadata) -> bool:
    return any(is_aq_sig_prop_type(column.data_type) for column in table.columns)


def count_aq_sig_prop_columns(table: TableMetadata) -> int:
    return sum(1 for column in table.columns if is_aq_sig_prop_type(column.data_type))


def estimate_transfer_time_ms(table: TableMetadata, estimated_row_count: int) -> int:
    """
    Rough transfer time estimate for planning.

    Args:
        table: Table metadata
        estimated_row_count: Expected number of rows

    Returns:
        Estimated milliseconds (100 for empty tables, at least 1000 otherwise)
    """
    if estimated_row_count == 0:
        return 100

    if has_only_primitive_types(table):
        rows_per_second = 10000
    elif has_complex_data_types(table):
        rows_per_second = 1000
    else:
        rows_per_second = 5000

    estimated_seconds = estimated_row_count // rows_per_second
    return max(1000, estimated_seconds * 1000)


def estimate_table_rows_heuristic(table: TableMetadata) -> int:
    """
    Guess a table"s size from its name.

    Used only to seed the overall progress estimate before the strategies
    count the actual rows.
    """
    name = table.table_name.lower()

    if ("config" in name or "setting" in name or "lookup" in name or "ref" in name
            or name.startswith("cfg_") or name.endswith("_config")):
        return 100

    if ("log" in name or "audit" in name or "history" in name or "trace" in name):
        return 100000

    if ("transaction" in name or "order" in name or "payment" in name or "invoice" in name
            or "data" in name or name.startswith("t_")):
        return 10000

    if "user" in name or "customer" in name or "account" in name or "person" in name:
        return 5000

    # Junction / mapping tables
    if "_" in name and ("map" in name or _MAPPING_TABLE_PATTERN.match(name)):
        return 1000

    return 2000


def analyze_table(table: TableMetadata) -> str:
    """One-line summary of a table's column complexity for logging."""
    if not table.columns:
        return f"{table.full_name}: No columns found"

    simple_columns = 0
    complex_columns = 0
    unknown_columns = 0
    for column in table.columns:
        if is_simple_data_type(column.data_type):
            simple_columns += 1
        elif is_complex_data_type(column.data_type):
            complex_columns += 1
        else:
            unknown_columns += 1

    complexity = "COMPLEX" if complex_columns or unknown_columns else "SIMPLE"
    return (
        f"{table.full_name}: {complexity} ({simple_columns} simple, "
        f"{complex_columns} complex, {unknown_columns} unknown columns)"
    )


def analyze_table_with_object_types(table: TableMetadata, registry: Optional[ObjectTypeRegistry]) -> str:
    """Table summary including object type, ANYDATA and AQ column counts."""
    analysis = analyze_table(table)
    if registry is None:
        return analysis

    counts = [
        (count_object_type_columns(table, registry), "object type columns"),
        (count_anydata_columns(table), "ANYDATA columns -> JSONB"),
        (count_aq_jms_message_columns(table), "AQ$_JMS_TEXT_MESSAGE columns -> JSONB"),
        (count_aq_sig_prop_columns(table), "AQ$_SIG_PROP columns -> JSONB"),
    ]
    for count, label in counts:
        if count > 0:
            analysis += f" [{count} {label}]"
    return analysis
