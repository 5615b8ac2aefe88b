"""
Tests for Table and Object Type Metadata Module

These tests validate metadata loading and object type resolution across
schemas and synonyms.
"""

import json

import pytest
from oracle_pg_migration.table_metadata import (
    ColumnMetadata,
    ObjectTypeAttribute,
    ObjectTypeMetadata,
    ObjectTypeRegistry,
    SynonymMetadata,
    TableMetadata,
    load_migration_metadata,
)


@pytest.fixture
def registry():
    """Registry with types in two schemas and a cross-schema synonym."""
    return ObjectTypeRegistry(
        object_types=[
            ObjectTypeMetadata("HR", "ADDRESS_T", [
                ObjectTypeAttribute("STREET", "VARCHAR2"),
                ObjectTypeAttribute("CITY", "VARCHAR2"),
            ]),
            ObjectTypeMetadata("SHARED", "LANGDATA2", [
                ObjectTypeAttribute("LANG", "VARCHAR2"),
            ]),
            ObjectTypeMetadata("SALES", "MONEY_T", [
                ObjectTypeAttribute("AMOUNT", "NUMBER"),
                ObjectTypeAttribute("CURRENCY", "CHAR"),
            ]),
        ],
        synonyms=[
            SynonymMetadata("APP", "LANG_SYN", "SHARED", "LANGDATA2"),
            SynonymMetadata("PUBLIC", "MONEY", "SALES", "MONEY_T"),
        ],
    )


class TestTableMetadata:
    """Test table descriptors."""

    def test_full_name(self):
        table = TableMetadata("HR", "EMPLOYEES", [ColumnMetadata("ID", "NUMBER")])
        assert table.full_name == "HR.EMPLOYEES"

    def test_columns_stored_as_tuple(self):
        """Columns given as a list should be frozen into a tuple."""
        table = TableMetadata("HR", "EMPLOYEES", [ColumnMetadata("ID", "NUMBER")])
        assert isinstance(table.columns, tuple)

    def test_from_dict(self):
        table = TableMetadata.from_dict({
            "schema": "HR",
            "table_name": "EMPLOYEES",
            "columns": [
                {"column_name": "ID", "data_type": "NUMBER", "nullable": False, "precision": 10, "scale": 0},
                {"column_name": "NAME", "data_type": "VARCHAR2", "char_length": 100},
            ],
        })
        assert [c.column_name for c in table.columns] == ["ID", "NAME"]
        assert table.columns[0].nullable is False
        assert table.columns[0].precision == 10
        assert table.columns[1].nullable is True
        assert table.columns[1].char_length == 100


class TestObjectTypeRegistry:
    """Test object type lookups."""

    def test_find_in_schema(self, registry):
        assert registry.find_object_type("HR", "ADDRESS_T").full_name == "HR.ADDRESS_T"

    def test_find_case_and_quote_insensitive(self, registry):
        assert registry.find_object_type("hr", '"address_t"') is not None

    def test_find_wrong_schema(self, registry):
        assert registry.find_object_type("SALES", "ADDRESS_T") is None

    def test_find_without_schema(self, registry):
        assert registry.find_object_type(None, "MONEY_T").schema == "SALES"

    def test_find_qualified_name_overrides_schema(self, registry):
        found = registry.find_object_type("HR", "SHARED.LANGDATA2")
        assert found.full_name == "SHARED.LANGDATA2"

    def test_lookup_schema_prefers_own_schema(self, registry):
        assert registry.lookup_schema_for_object_type("ADDRESS_T", "HR") == "HR"

    def test_lookup_schema_via_synonym(self, registry):
        assert registry.lookup_schema_for_object_type("LANG_SYN", "APP") == "SHARED"

    def test_lookup_schema_any_schema(self, registry):
        assert registry.lookup_schema_for_object_type("MONEY_T", "APP") == "SALES"

    def test_lookup_schema_unknown(self, registry):
        assert registry.lookup_schema_for_object_type("NOPE_T", "APP") is None

    def test_resolve_plain_name(self, registry):
        assert registry.resolve_column_type("ADDRESS_T", "HR").full_name == "HR.ADDRESS_T"

    def test_resolve_cross_schema_quoted(self, registry):
        """Quoted, mixed-case cross-schema references should resolve."""
        found = registry.resolve_column_type('SHARED."langdata2"', "APP")
        assert found.full_name == "SHARED.LANGDATA2"

    def test_resolve_private_synonym(self, registry):
        found = registry.resolve_column_type("LANG_SYN", "APP")
        assert found.full_name == "SHARED.LANGDATA2"

    def test_resolve_private_synonym_other_schema(self, registry):
        """A private synonym is only visible from its own schema."""
        assert registry.resolve_column_type("LANG_SYN", "HR") is None

    def test_resolve_public_synonym(self, registry):
        assert registry.resolve_column_type("MONEY", "HR").full_name == "SALES.MONEY_T"

    def test_resolve_builtin_type(self, registry):
        assert registry.resolve_column_type("VARCHAR2(10)", "HR") is None
        assert registry.resolve_column_type("", "HR") is None

    def test_len(self, registry):
        assert len(registry) == 3
        assert len(ObjectTypeRegistry()) == 0


class TestLoadMigrationMetadata:
    """Test loading the metadata export."""

    def test_load(self, tmp_path):
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps({
            "tables": [
                {"schema": "HR", "table_name": "EMPLOYEES",
                 "columns": [{"column_name": "ID", "data_type": "NUMBER"},
                             {"column_name": "HOME", "data_type": "ADDRESS_T"}]},
            ],
            "object_types": [
                {"schema": "HR", "name": "ADDRESS_T",
                 "attributes": [{"name": "STREET", "data_type": "VARCHAR2"}]},
            ],
            "synonyms": [
                {"schema": "PUBLIC", "synonym_name": "ADDR", "referenced_schema": "HR",
                 "referenced_object_name": "ADDRESS_T"},
            ],
        }))

        tables, registry = load_migration_metadata(str(path))

        assert [t.full_name for t in tables] == ["HR.EMPLOYEES"]
        assert registry.resolve_column_type("HOME_T", "HR") is None
        assert registry.resolve_column_type("ADDR", "SALES").full_name == "HR.ADDRESS_T"
        assert registry.object_types[0].attributes[0].name == "STREET"

    def test_load_tables_only(self, tmp_path):
        """Object types and synonyms are optional."""
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps({"tables": []}))

        tables, registry = load_migration_metadata(str(path))

        assert tables == []
        assert len(registry) == 0
