"""
Table and Object Type Metadata Module

Immutable descriptors for the tables, columns and Oracle object types that the
transfer strategies consume. They are produced by the schema extraction phase
and handed over as a JSON document; this module loads that document and
provides the object type registry used to resolve column types (including
cross-schema references and synonyms).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

from oracle_pg_migration.type_mapping import (
    normalize_data_type,
    normalize_identifier,
    normalize_object_type_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnMetadata:
    """A single source column."""

    column_name: str
    data_type: str
    nullable: bool = True
    precision: Optional[int] = None
    scale: Optional[int] = None
    char_length: Optional[int] = None
    default_value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnMetadata":
        return cls(
            column_name=data['column_name'],
            data_type=data['data_type'],
            nullable=data.get('nullable', True),
            precision=data.get('precision'),
            scale=data.get('scale'),
            char_length=data.get('char_length'),
            default_value=data.get('default_value'),
        )


@dataclass(frozen=True)
class TableMetadata:
    """A source table with its ordered columns."""

    schema: str
    table_name: str
    columns: Tuple[ColumnMetadata, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any iterable of columns but store an immutable tuple
        if not isinstance(self.columns, tuple):
            object.__setattr__(self, 'columns', tuple(self.columns))

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.table_name}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableMetadata":
        return cls(
            schema=data['schema'],
            table_name=data['table_name'],
            columns=tuple(ColumnMetadata.from_dict(c) for c in data.get('columns', [])),
        )


@dataclass(frozen=True)
class ObjectTypeAttribute:
    """One attribute of an Oracle object type, in declaration order."""

    name: str
    data_type: str


@dataclass(frozen=True)
class ObjectTypeMetadata:
    """An Oracle object type (CREATE TYPE ... AS OBJECT)."""

    schema: str
    name: str
    attributes: Tuple[ObjectTypeAttribute, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.attributes, tuple):
            object.__setattr__(self, 'attributes', tuple(self.attributes))

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectTypeMetadata":
        return cls(
            schema=data['schema'],
            name=data['name'],
            attributes=tuple(
                ObjectTypeAttribute(name=a['name'], data_type=a['data_type'])
                for a in data.get('attributes', [])
            ),
        )


@dataclass(frozen=True)
class SynonymMetadata:
    """An Oracle synonym (private or PUBLIC)."""

    schema: str
    synonym_name: str
    referenced_schema: str
    referenced_object_name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SynonymMetadata":
        return cls(
            schema=data['schema'],
            synonym_name=data['synonym_name'],
            referenced_schema=data['referenced_schema'],
            referenced_object_name=data['referenced_object_name'],
        )


class ObjectTypeRegistry:
    """
    Known object types and synonyms for the current migration.

    Lookups are case- and quote-insensitive. A column type may be a plain type
    name, a schema-qualified name or a synonym that points into another schema.
    """

    def __init__(
        self,
        object_types: Optional[List[ObjectTypeMetadata]] = None,
        synonyms: Optional[List[SynonymMetadata]] = None,
    ):
        self.object_types: List[ObjectTypeMetadata] = list(object_types or [])
        self.synonyms: List[SynonymMetadata] = list(synonyms or [])

    def __len__(self) -> int:
        return len(self.object_types)

    def find_object_type(self, schema: Optional[str], type_name: str) -> Optional[ObjectTypeMetadata]:
        """
        Find an object type by schema and name.

        If type_name is schema-qualified ('HR.ADDRESS_T'), the embedded schema
        takes precedence over the schema argument.
        """
        normalized_type = normalize_data_type(type_name)
        if not normalized_type:
            return None

        if '.' in normalized_type:
            schema, normalized_type = normalized_type.split('.', 1)

        normalized_schema = normalize_identifier(schema) if schema else None
        for object_type in self.object_types:
            if normalize_object_type_name(object_type.name) != normalized_type:
                continue
            if normalized_schema is None or normalize_identifier(object_type.schema) == normalized_schema:
                return object_type
        return None

    def lookup_schema_for_object_type(self, type_name: str, schema: str) -> Optional[str]:
        """
        Resolve the schema that owns an object type referenced from a schema.

        Resolution order:
        1. A type with that name in the asking schema
        2. A synonym in the asking schema (or PUBLIC) pointing at a known type
        3. A type with that name in any schema
        """
        name = normalize_object_type_name(type_name)
        asking_schema = normalize_identifier(schema)

        for object_type in self.object_types:
            if (normalize_object_type_name(object_type.name) == name
                    and normalize_identifier(object_type.schema) == asking_schema):
                return object_type.schema

        for synonym in self.synonyms:
            if normalize_identifier(synonym.synonym_name) != name:
                continue
            if normalize_identifier(synonym.schema) not in (asking_schema, 'PUBLIC'):
                continue
            if self.find_object_type(synonym.referenced_schema, synonym.referenced_object_name):
                return synonym.referenced_schema

        for object_type in self.object_types:
            if normalize_object_type_name(object_type.name) == name:
                return object_type.schema

        return None

    def resolve_column_type(self, column_type: str, table_schema: str) -> Optional[ObjectTypeMetadata]:
        """Resolve a column's declared type to an object type, or None."""
        normalized = normalize_data_type(column_type)
        if not normalized:
            return None

        if '.' in normalized:
            owner, type_name = normalized.split('.', 1)
            found = self.find_object_type(owner, type_name)
            if found:
                return found
        else:
            type_name = normalized

        # Synonyms may point at a differently named type
        for synonym in self.synonyms:
            if (normalize_identifier(synonym.synonym_name) == type_name
                    and normalize_identifier(synonym.schema) in (normalize_identifier(table_schema), 'PUBLIC')):
                found = self.find_object_type(synonym.referenced_schema, synonym.referenced_object_name)
                if found:
                    return found

        owner_schema = self.lookup_schema_for_object_type(type_name, table_schema)
        if owner_schema is None:
            return None
        return self.find_object_type(owner_schema, type_name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectTypeRegistry":
        return cls(
            object_types=[ObjectTypeMetadata.from_dict(t) for t in data.get('object_types', [])],
            synonyms=[SynonymMetadata.from_dict(s) for s in data.get('synonyms', [])],
        )


def load_migration_metadata(path: str) -> Tuple[List[TableMetadata], ObjectTypeRegistry]:
    """
    Load tables and object types exported by the extraction phase.

    The file is a JSON document with 'tables', 'object_types' and 'synonyms'
    lists.

    Args:
        path: Path to the metadata JSON file

    Returns:
        Tuple of (tables, registry)
    """
    with open(path, encoding='utf-8') as handle:
        data = json.load(handle)

    tables = [TableMetadata.from_dict(t) for t in data.get('tables', [])]
    registry = ObjectTypeRegistry.from_dict(data)
    logger.info(
        f"Loaded metadata for {len(tables)} tables, {len(registry.object_types)} object types "
        f"and {len(registry.synonyms)} synonyms from {path}"
    )
    return tables, registry
