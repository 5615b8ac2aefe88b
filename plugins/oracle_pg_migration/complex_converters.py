"""
Complex Type Converters Module

Converts Oracle types without a PostgreSQL counterpart into JSON documents
stored in JSONB columns:

- SYS.ANYDATA: self-describing values of any type
- SYS.AQ$_JMS_TEXT_MESSAGE: Advanced Queuing JMS text messages
- SYS.AQ$_SIG_PROP: AQ message signature properties
- SYS.AQ$_RECIPIENTS: AQ recipient lists

Every converter returns a JSON-ready dict (or None for NULL). Each document
carries a "metadata" object recording the original Oracle type.
"""

from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

import pendulum

from oracle_pg_migration.object_type_mapper import (
    ObjectTypeMapper,
    extract_attribute_items,
    is_db_object,
)
from oracle_pg_migration.type_mapping import normalize_identifier

logger = logging.getLogger(__name__)

_MAX_HEADER_LENGTH = 200


def _conversion_timestamp() -> str:
    return pendulum.now("UTC").to_iso8601_string()


def _read(value: Any) -> Any:
    if value is not None and hasattr(value, 'read'):
        return value.read()
    return value


def _text(value: Any) -> Optional[str]:
    value = _read(value)
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return str(value)


def _named_attributes(value: Any) -> Dict[str, Any]:
    return {
        normalize_identifier(name): item
        for name, item in extract_attribute_items(value)
        if name is not None
    }


def detect_anydata_type(value: Any) -> str:
    """Oracle type name for a value read from an ANYDATA column."""
    if value is None:
        return "NULL"
    if is_db_object(value):
        return f"{value.type.schema}.{value.type.name}"
    if isinstance(value, str):
        return "SYS.VARCHAR2"
    if isinstance(value, bool):
        return "SYS.BOOLEAN"
    if isinstance(value, (int, float, Decimal)):
        return "SYS.NUMBER"
    if isinstance(value, datetime):
        return "SYS.TIMESTAMP"
    if isinstance(value, date):
        return "SYS.DATE"
    if isinstance(value, (bytes, bytearray)):
        return "SYS.RAW"
    if isinstance(value, dict):
        return "SYS.OBJECT"
    logger.warning(f"Unknown ANYDATA value type: {type(value).__name__}")
    return "SYS.UNKNOWN"


def convert_anydata(value: Any, column_name: str, mapper: Optional[ObjectTypeMapper] = None) -> Optional[Dict[str, Any]]:
    """
    Convert an ANYDATA value to a JSON document.

    Result layout:
        {"type": "SYS.NUMBER", "value": 42,
         "metadata": {"original_type": "SYS.ANYDATA", "column_name": ...,
                      "extracted_type": "SYS.NUMBER", ...}}
    """
    value = _read(value)
    if value is None:
        return None

    type_name = detect_anydata_type(value)
    logger.debug(f"Converting ANYDATA column '{column_name}' holding {type_name}")

    if is_db_object(value) or isinstance(value, dict):
        mapper = mapper or ObjectTypeMapper()
        object_type = None
        if mapper.registry is not None and is_db_object(value):
            object_type = mapper.registry.find_object_type(value.type.schema, value.type.name)
        if object_type is not None:
            json_value = mapper.convert_object_to_dict(value, object_type)
        else:
            json_value = mapper.to_generic_json(value)
        method = "object_attributes"
    elif isinstance(value, bool):
        json_value = value
        method = "python_type_detection"
    elif isinstance(value, (int, float, Decimal)):
        json_value = value if isinstance(value, int) else float(value)
        method = "python_type_detection"
    elif isinstance(value, (datetime, date, dt_time)):
        json_value = value.isoformat(sep=' ') if isinstance(value, datetime) else value.isoformat()
        method = "python_type_detection"
    else:
        json_value = _text(value)
        method = "python_type_detection"

    return {
        "type": type_name,
        "value": json_value,
        "metadata": {
            "original_type": "SYS.ANYDATA",
            "column_name": column_name,
            "extracted_type": type_name,
            "conversion_method": method,
            "conversion_timestamp": _conversion_timestamp(),
        },
    }


def _jms_properties(properties: Any) -> Dict[str, Any]:
    """Map a collection of AQ$_JMS_USERPROPERTY objects to name -> value."""
    result: Dict[str, Any] = {}
    if properties is None:
        return result
    for _, prop in extract_attribute_items(properties):
        if prop is None:
            continue
        attrs = _named_attributes(prop)
        name = attrs.get('NAME')
        if name is None:
            continue
        str_value = attrs.get('STR_VALUE')
        num_value = attrs.get('NUM_VALUE')
        if str_value is not None:
            result[name] = _text(str_value)
        elif num_value is not None:
            result[name] = num_value if isinstance(num_value, int) else float(num_value)
        else:
            result[name] = None
    return result


def convert_aq_jms_message(value: Any) -> Optional[Dict[str, Any]]:
    """
    Convert a SYS.AQ$_JMS_TEXT_MESSAGE value to a JSON document.

    The message text comes from TEXT_VC or TEXT_LOB; the JMS header object's
    attributes become "headers" and its user properties become "properties".
    """
    if value is None:
        return None

    items = extract_attribute_items(value)
    named = {normalize_identifier(name): item for name, item in items if name is not None}

    headers: Dict[str, Any] = {}
    properties: Dict[str, Any] = {}

    if named:
        text_content = _text(named.get('TEXT_VC'))
        if text_content is None:
            text_content = _text(named.get('TEXT_LOB'))

        header = named.get('HEADER')
        if header is not None:
            for name, item in extract_attribute_items(header):
                if name is None or item is None:
                    continue
                if normalize_identifier(name) == 'PROPERTIES':
                    properties = _jms_properties(item)
                elif is_db_object(item):
                    headers[name.lower()] = ObjectTypeMapper().to_generic_json(item)
                else:
                    headers[name.lower()] = _text(item)
    else:
        # Positional attributes: text is the first non-blank of the first three
        text_content = None
        for _, item in items[:3]:
            candidate = _text(item)
            if candidate and candidate.strip():
                text_content = candidate
                break
        for index, (_, item) in enumerate(items[1:], start=1):
            candidate = _text(item)
            if candidate and len(candidate) < _MAX_HEADER_LENGTH:
                headers[f"attr_{index}"] = candidate

    return {
        "message_type": "JMS_TEXT_MESSAGE",
        "text_content": text_content or "",
        "headers": headers,
        "properties": properties,
        "metadata": {
            "original_type": "SYS.AQ$_JMS_TEXT_MESSAGE",
            "conversion_timestamp": _conversion_timestamp(),
            "attributes_count": len(items),
        },
    }


_SIGNATURE_POSITIONS = ('algorithm', 'digest', 'signature')


def convert_aq_sig_prop(value: Any) -> Optional[Dict[str, Any]]:
    """Convert a SYS.AQ$_SIG_PROP value (ALGORITHM, DIGEST, SIGNATURE) to JSON."""
    if value is None:
        return None

    items = extract_attribute_items(value)
    signature_properties: Dict[str, Any] = {}

    for index, (name, item) in enumerate(items):
        text = _text(item)
        if text is None or not text.strip():
            continue
        if name is not None:
            key = name.lower()
        elif index < len(_SIGNATURE_POSITIONS):
            key = _SIGNATURE_POSITIONS[index]
        else:
            key = f"prop_{index}"
        signature_properties[key] = text

    if not signature_properties:
        signature_properties = {"algorithm": "UNKNOWN", "digest": "", "signature": ""}

    return {
        "signature_type": "AQ_SIG_PROP",
        "signature_properties": signature_properties,
        "metadata": {
            "original_type": "SYS.AQ$_SIG_PROP",
            "conversion_timestamp": _conversion_timestamp(),
            "attributes_count": len(items),
            "validation_status": "UNKNOWN",
        },
    }


def convert_aq_recipients(value: Any) -> Optional[Dict[str, Any]]:
    """Convert a SYS.AQ$_RECIPIENTS collection of AQ$_AGENT objects to JSON."""
    if value is None:
        return None

    recipients: List[Dict[str, Any]] = []
    for _, agent in extract_attribute_items(value):
        if agent is None:
            continue
        attrs = _named_attributes(agent)
        recipients.append({
            "name": _text(attrs.get('NAME')),
            "address": _text(attrs.get('ADDRESS')),
            "protocol": attrs.get('PROTOCOL'),
        })

    return {
        "recipients_type": "AQ_RECIPIENTS",
        "recipients": recipients,
        "metadata": {
            "original_type": "SYS.AQ$_RECIPIENTS",
            "conversion_timestamp": _conversion_timestamp(),
            "recipient_count": len(recipients),
        },
    }
