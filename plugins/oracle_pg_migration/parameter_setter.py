"""
Parameter Binding Module

Turns a value fetched from Oracle into a parameter psycopg2 can bind for the
matching PostgreSQL column. This is the shared binding routine for every
non object type column of the row-by-row transfer path.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence
import logging
import re

from psycopg2.extras import Json

from oracle_pg_migration.complex_converters import (
    convert_anydata,
    convert_aq_jms_message,
    convert_aq_recipients,
    convert_aq_sig_prop,
)
from oracle_pg_migration.object_type_mapper import ObjectTypeMapper, is_db_object
from oracle_pg_migration.table_analyzer import (
    is_anydata_type,
    is_aq_jms_message_type,
    is_aq_recipients_type,
    is_aq_sig_prop_type,
)
from oracle_pg_migration.table_metadata import ColumnMetadata
from oracle_pg_migration.transfer_strategy import ParameterBindingError
from oracle_pg_migration.type_mapping import base_data_type, is_timezone_type

logger = logging.getLogger(__name__)

BINARY_TYPES = ("BLOB", "RAW", "LONG RAW")
CHARACTER_LOB_TYPES = ("CLOB", "NCLOB", "LONG")

_YEAR_TO_MONTH_PATTERN = re.compile(r'^\s*([+-])?(\d+)-(\d+)\s*$')


def _read_lob(value: Any) -> Any:
    if hasattr(value, 'read'):
        return value.read()
    return value


def format_interval_year_to_month(value: Any) -> str:
    """
    Format an INTERVAL YEAR TO MONTH value as PostgreSQL interval text.

    Accepts python-oracledb IntervalYM values (years, months) and Oracle's
    text form '+02-03'.
    """
    if hasattr(value, 'years') and hasattr(value, 'months'):
        years, months = value.years, value.months
    else:
        match = _YEAR_TO_MONTH_PATTERN.match(str(value))
        if not match:
            raise ValueError(f"Unrecognized INTERVAL YEAR TO MONTH value: {value!r}")
        sign = -1 if match.group(1) == '-' else 1
        years, months = sign * int(match.group(2)), sign * int(match.group(3))
    return f"{years} years {months} months"


def format_bfile(value: Any) -> str:
    """BFILE locators are stored as 'directory/filename' references."""
    if hasattr(value, 'getfilename'):
        directory, filename = value.getfilename()
        return f"{directory}/{filename}"
    return str(value)


def convert_parameter(value: Any, column: ColumnMetadata, mapper: Optional[ObjectTypeMapper] = None) -> Any:
    """
    Convert one Oracle value to a psycopg2 parameter for its column.

    Args:
        value: Value fetched from Oracle (None for NULL)
        column: Column metadata
        mapper: Object type mapper used for nested objects in JSON payloads

    Returns:
        Value ready to be bound with %s
    """
    if value is None:
        return None

    data_type = column.data_type
    base = base_data_type(data_type)

    if is_anydata_type(data_type):
        document = convert_anydata(value, column.column_name, mapper)
        return Json(document) if document is not None else None
    if is_aq_jms_message_type(data_type):
        return Json(convert_aq_jms_message(value))
    if is_aq_sig_prop_type(data_type):
        return Json(convert_aq_sig_prop(value))
    if is_aq_recipients_type(data_type):
        return Json(convert_aq_recipients(value))

    if base == "BFILE":
        return format_bfile(value)

    if base in BINARY_TYPES:
        data = _read_lob(value)
        return bytes(data) if data is not None else None

    if base in CHARACTER_LOB_TYPES or base == "XMLTYPE":
        data = _read_lob(value)
        return str(data) if data is not None else None

    if base == "INTERVAL YEAR TO MONTH":
        return format_interval_year_to_month(value)

    if base == "INTERVAL DAY TO SECOND":
        if not isinstance(value, timedelta):
            raise ValueError(f"Expected timedelta, got {type(value).__name__}")
        return value

    if is_timezone_type(data_type) and isinstance(value, datetime) and value.tzinfo is None:
        # selected through SYS_EXTRACT_UTC
        return value.replace(tzinfo=timezone.utc)

    if is_db_object(value):
        return Json((mapper or ObjectTypeMapper()).to_generic_json(value))

    # Scalars (including Decimal and timezone-aware datetimes) bind as-is
    return _read_lob(value)


def bind_parameter(
    row: Sequence[Any],
    index: int,
    column: ColumnMetadata,
    mapper: Optional[ObjectTypeMapper] = None,
) -> Any:
    """
    Bind the value at position `index` of a fetched row.

    Raises:
        ParameterBindingError: If the value cannot be converted
    """
    try:
        return convert_parameter(row[index], column, mapper)
    except ParameterBindingError:
        raise
    except Exception as e:
        logger.debug(
            f"Binding {column.column_name} ({column.data_type}) failed: {e}"
        )
        raise ParameterBindingError(str(e), column.column_name, column.data_type) from e
