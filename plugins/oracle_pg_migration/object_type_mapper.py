"""
Object Type Mapper Module

Converts Oracle object type instances into PostgreSQL representations:

- composite type tuple literals, e.g. (42,"Main St","2024-01-01 00:00:00")
- JSON documents with lower-cased attribute names, for JSONB columns

Source objects are python-oracledb DbObject instances. Plain mappings and
sequences are accepted as well, which is what ANYDATA payloads and tests use.
"""

from collections.abc import Mapping
from datetime import date, datetime, time as dt_time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

from oracle_pg_migration.table_metadata import ObjectTypeMetadata, ObjectTypeRegistry
from oracle_pg_migration.type_mapping import is_numeric_type, normalize_identifier

logger = logging.getLogger(__name__)


def is_db_object(value: Any) -> bool:
    """True for python-oracledb DbObject instances (and look-alikes)."""
    object_type = getattr(value, 'type', None)
    return object_type is not None and hasattr(object_type, 'attributes') and hasattr(object_type, 'iscollection')


def extract_attribute_items(obj: Any) -> List[Tuple[Optional[str], Any]]:
    """
    Return (attribute name, value) pairs of an object in declaration order.

    Names are None for positional sources (sequences and collections).

    Raises:
        TypeError: If the value is not an object, mapping or sequence
    """
    if is_db_object(obj):
        if obj.type.iscollection:
            return [(None, item) for item in obj.aslist()]
        return [(attr.name, getattr(obj, attr.name)) for attr in obj.type.attributes]
    if isinstance(obj, Mapping):
        return list(obj.items())
    if isinstance(obj, (list, tuple)):
        return [(None, item) for item in obj]
    raise TypeError(f"Unsupported Oracle object value: {type(obj).__name__}")


def extract_attributes(obj: Any, object_type: Optional[ObjectTypeMetadata] = None) -> List[Any]:
    """
    Return the attribute values of an object in declaration order.

    Mappings are matched to the object type's attributes by name
    (case-insensitive); missing attributes are None.
    """
    items = extract_attribute_items(obj)
    if object_type is None or not isinstance(obj, Mapping):
        return [value for _, value in items]

    by_name = {normalize_identifier(name): value for name, value in items}
    return [by_name.get(normalize_identifier(attr.name)) for attr in object_type.attributes]


def _quote_tuple_text(text: str) -> str:
    return '"' + text.replace('\\', '\\\\').replace('"', '\\"') + '"'


def _temporal_text(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat(sep=' ')
    return value.isoformat()


def _json_number(value: Any) -> Any:
    """Integral numbers as int, others as float; non-finite values as text."""
    if isinstance(value, (bool, int)):
        return value
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError:
        return str(value)
    if not number.is_finite():
        return str(value)
    if number == number.to_integral_value():
        return int(number)
    return float(number)


class ObjectTypeMapper:
    """
    Maps Oracle object values to PostgreSQL composite literals and JSON.

    A registry is optional; with one, attributes whose type is itself an
    object type are converted recursively with that type's layout.
    """

    def __init__(self, registry: Optional[ObjectTypeRegistry] = None):
        self.registry = registry

    def _nested_type(self, data_type: str, schema: str) -> Optional[ObjectTypeMetadata]:
        if self.registry is None:
            return None
        return self.registry.resolve_column_type(data_type, schema)

    def _check_attribute_count(self, values: List[Any], object_type: ObjectTypeMetadata) -> None:
        if len(values) != len(object_type.attributes):
            logger.warning(
                f"Attribute count mismatch for {object_type.full_name}: object has {len(values)} "
                f"attributes, type definition has {len(object_type.attributes)}"
            )

    def convert_object_to_composite_type(self, obj: Any, object_type: ObjectTypeMetadata) -> Optional[str]:
        """
        Convert an object to a PostgreSQL composite tuple literal.

        NULL attributes become empty slots, numbers are written bare and
        everything else is double quoted with backslash escaping.

        Returns:
            Tuple literal such as '(1,"abc",)', or None for a NULL object
        """
        if obj is None:
            return None

        values = extract_attributes(obj, object_type)
        self._check_attribute_count(values, object_type)

        parts = [
            self._to_tuple_value(value, attr.data_type, object_type.schema)
            for value, attr in zip(values, object_type.attributes)
        ]
        return '(' + ','.join(parts) + ')'

    def _to_tuple_value(self, value: Any, data_type: str, schema: str) -> str:
        if value is None:
            return ''

        if hasattr(value, 'read'):
            value = value.read()
            if value is None:
                return ''

        if is_numeric_type(data_type) and isinstance(value, (int, float, Decimal, str)) and not isinstance(value, bool):
            return str(value)

        if is_db_object(value) or isinstance(value, (Mapping, list, tuple)):
            nested_type = self._nested_type(data_type, schema)
            if nested_type is not None:
                nested = self.convert_object_to_composite_type(value, nested_type)
            else:
                logger.debug(f"No definition for nested type '{data_type}', storing as JSON text")
                nested = json.dumps(self._to_json_value(value, data_type, schema))
            return _quote_tuple_text(nested)

        if isinstance(value, (datetime, date, dt_time)):
            return _quote_tuple_text(_temporal_text(value))

        if isinstance(value, (bytes, bytearray)):
            return _quote_tuple_text('\\x' + bytes(value).hex())

        return _quote_tuple_text(str(value))

    def convert_object_to_dict(self, obj: Any, object_type: ObjectTypeMetadata) -> Optional[Dict[str, Any]]:
        """Convert an object to a JSON-ready dict keyed by lower-cased attribute name."""
        if obj is None:
            return None

        values = extract_attributes(obj, object_type)
        self._check_attribute_count(values, object_type)

        return {
            attr.name.lower(): self._to_json_value(value, attr.data_type, object_type.schema)
            for value, attr in zip(values, object_type.attributes)
        }

    def _to_json_value(self, value: Any, data_type: str, schema: str) -> Any:
        if value is None:
            return None

        if hasattr(value, 'read'):
            value = value.read()
            if value is None:
                return None

        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float, Decimal)):
            return _json_number(value)
        if is_numeric_type(data_type) and isinstance(value, str):
            return _json_number(value)
        if isinstance(value, (datetime, date, dt_time)):
            return _temporal_text(value)
        if isinstance(value, timedelta):
            return value.total_seconds()
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).hex()

        if is_db_object(value) or isinstance(value, Mapping) or isinstance(value, (list, tuple)):
            nested_type = self._nested_type(data_type, schema)
            if nested_type is not None and not getattr(getattr(value, 'type', None), 'iscollection', False):
                return self.convert_object_to_dict(value, nested_type)
            return self.to_generic_json(value)

        return str(value)

    def to_generic_json(self, value: Any) -> Any:
        """JSON for an object without a known type definition."""
        items = extract_attribute_items(value)
        if isinstance(value, Mapping):
            return {str(name).lower(): self._to_json_value(item, '', '') for name, item in items}
        if all(name is None for name, _ in items):
            return [self._to_json_value(item, '', '') for _, item in items]
        return {
            str(name).lower(): self._to_json_value(item, '', '')
            for name, item in items
        }
