"""
Oracle to PostgreSQL Type Mapping Module

This module provides Oracle data type normalisation and classification.
The transfer strategies use it to decide how each column is read,
formatted and bound.
"""

from typing import Optional, FrozenSet
import re


# Oracle built-in base data types; anything else may be a user object type
BUILTIN_DATA_TYPES: FrozenSet[str] = frozenset({
    # Character types
    "VARCHAR2",
    "VARCHAR",
    "NVARCHAR2",
    "CHAR",
    "NCHAR",
    "LONG",
    "CLOB",
    "NCLOB",

    # Numeric types
    "NUMBER",
    "INTEGER",
    "INT",
    "SMALLINT",
    "DECIMAL",
    "NUMERIC",
    "FLOAT",
    "DOUBLE",
    "BINARY_FLOAT",
    "BINARY_DOUBLE",

    # Date and time types
    "DATE",
    "TIMESTAMP",
    "TIMESTAMP WITH TIME ZONE",
    "TIMESTAMP WITH LOCAL TIME ZONE",
    "INTERVAL YEAR TO MONTH",
    "INTERVAL DAY TO SECOND",

    # Binary types
    "BLOB",
    "RAW",
    "LONG RAW",
    "BFILE",

    # Other types
    "XMLTYPE",
    "ANYDATA",
    "ANYTYPE",
    "URITYPE",
    "ROWID",
    "UROWID",
    "AQ$_JMS_TEXT_MESSAGE",
    "AQ$_SIG_PROP",
    "AQ$_RECIPIENTS",
})

# Types the COPY path can stream as delimited text
SIMPLE_DATA_TYPES: FrozenSet[str] = frozenset({
    "VARCHAR2", "VARCHAR", "CHAR", "NVARCHAR2", "NCHAR",
    "NUMBER", "INTEGER", "INT", "DECIMAL", "NUMERIC", "FLOAT", "DOUBLE",
    "DATE", "TIMESTAMP",
})

# Types that need per-row conversion and parameter binding
COMPLEX_DATA_TYPES: FrozenSet[str] = frozenset({
    "CLOB", "NCLOB", "BLOB", "RAW", "LONG RAW", "BFILE",
    "TIMESTAMP WITH TIME ZONE", "TIMESTAMP WITH LOCAL TIME ZONE",
    "INTERVAL YEAR TO MONTH", "INTERVAL DAY TO SECOND",
    "XMLTYPE", "ANYDATA", "ANYTYPE", "URITYPE",
    "AQ$_JMS_TEXT_MESSAGE", "SYS.AQ$_JMS_TEXT_MESSAGE",
    "AQ$_SIG_PROP", "SYS.AQ$_SIG_PROP",
    "AQ$_RECIPIENTS", "SYS.AQ$_RECIPIENTS",
})

# Prefixes of Oracle-supplied types that are never user object types
SYSTEM_TYPE_PREFIXES = ("SYS_", "APEX_", "MDSYS_")

_PRECISION_PATTERN = re.compile(r'\s*\([^)]*\)')
_USER_TYPE_PATTERN = re.compile(r'^[A-Z][A-Z0-9_$#]*$')


def _strip_quotes(part: str) -> str:
    part = part.strip()
    if len(part) >= 2 and part.startswith('"') and part.endswith('"'):
        return part[1:-1]
    return part


def normalize_identifier(name: Optional[str]) -> Optional[str]:
    """
    Normalize an Oracle identifier for comparison.

    Surrounding quotes are removed and the name is upper-cased, so
    '"MyType"', 'mytype' and 'MYTYPE' all compare equal.
    """
    if name is None:
        return None
    return _strip_quotes(name).upper()


def normalize_object_type_name(name: Optional[str]) -> Optional[str]:
    """Normalize an object type name (same rules as identifiers)."""
    return normalize_identifier(name)


def normalize_data_type(data_type: Optional[str]) -> Optional[str]:
    """
    Normalize a declared data type, including schema-qualified names.

    Examples:
        'varchar2' -> 'VARCHAR2'
        '"Schema"."Type"' -> 'SCHEMA.TYPE'
        'MYSCHEMA."langdata2"' -> 'MYSCHEMA.LANGDATA2'
    """
    if data_type is None:
        return None
    stripped = data_type.strip()
    if not stripped:
        return ""
    if '"' not in stripped:
        return stripped.upper()
    return '.'.join(_strip_quotes(part).upper() for part in stripped.split('.'))


def base_data_type(data_type: Optional[str]) -> str:
    """
    Normalize a data type and drop precision/length information.

    'NUMBER(10,2)' -> 'NUMBER'
    'TIMESTAMP(6) WITH TIME ZONE' -> 'TIMESTAMP WITH TIME ZONE'
    """
    normalized = normalize_data_type(data_type)
    if not normalized:
        return ""
    without_precision = _PRECISION_PATTERN.sub('', normalized)
    return ' '.join(without_precision.split())


def is_simple_data_type(data_type: str) -> bool:
    """Check if a (base) data type can be streamed through COPY."""
    return base_data_type(data_type) in SIMPLE_DATA_TYPES


def is_complex_data_type(data_type: str) -> bool:
    """Check if a (base) data type requires per-row conversion."""
    base = base_data_type(data_type)
    return (
        base in COMPLEX_DATA_TYPES
        or base.startswith("TIMESTAMP WITH")
        or base.startswith("INTERVAL")
        or "OBJECT" in base
        or "VARRAY" in base
        or "TABLE" in base
    )


def is_object_type_pattern(data_type: str) -> bool:
    """
    Check if a data type name looks like a user-defined object type.

    Used when the type is not found in the object type registry.
    """
    base = base_data_type(data_type)
    return (
        bool(_USER_TYPE_PATTERN.match(base))
        and base not in SIMPLE_DATA_TYPES
        and not is_complex_data_type(base)
        and base not in BUILTIN_DATA_TYPES
        and not base.startswith(SYSTEM_TYPE_PREFIXES)
    )


def is_text_type(data_type: str) -> bool:
    """Character and character-LOB types."""
    base = base_data_type(data_type)
    return "CHAR" in base or "CLOB" in base


def is_numeric_type(data_type: str) -> bool:
    base = base_data_type(data_type)
    return base in ("NUMBER", "INTEGER", "INT", "FLOAT", "DOUBLE", "DECIMAL", "NUMERIC")


def is_temporal_type(data_type: str) -> bool:
    base = base_data_type(data_type)
    return base == "DATE" or base.startswith("TIMESTAMP")


def is_timezone_type(data_type: str) -> bool:
    """TIMESTAMP WITH TIME ZONE and TIMESTAMP WITH LOCAL TIME ZONE."""
    return base_data_type(data_type).startswith("TIMESTAMP WITH")
