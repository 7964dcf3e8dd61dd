"""Unit tests for the index schema."""

import pytest

from csv_indexer.search.schema import (
    FieldType,
    KeywordField,
    Schema,
    SchemaField,
    TextField,
    build_schema,
)


@pytest.mark.unit
def test_build_schema_makes_unique_field_a_keyword():
    schema = build_schema(["id", "name", "email"], analyzer="english")

    assert schema.names == ("id", "name", "email")
    assert schema["id"].field_type is FieldType.KEYWORD
    assert schema["id"].analyzer_name == "keyword"
    assert schema["name"].field_type is FieldType.TEXT
    assert schema["name"].analyzer_name == "english"
    assert schema.default_analyzer == "english"


@pytest.mark.unit
def test_schema_requires_unique_field():
    with pytest.raises(ValueError, match="Unique field"):
        Schema(fields=[TextField("name")], unique_field="id")


@pytest.mark.unit
def test_schema_rejects_duplicate_fields():
    with pytest.raises(ValueError, match="Duplicate field"):
        Schema(fields=[KeywordField("id"), TextField("id")])


@pytest.mark.unit
def test_ensure_field_adds_text_field_once():
    schema = build_schema(["id"])

    added, created = schema.ensure_field("city")
    again, created_again = schema.ensure_field("city")

    assert created is True
    assert created_again is False
    assert added is again
    assert schema.names == ("id", "city")
    assert "city" in schema
    assert len(schema) == 2


@pytest.mark.unit
def test_schema_round_trips_through_dict():
    schema = build_schema(["id", "name"], analyzer="english-nostem")

    restored = Schema.from_dict(schema.to_dict())

    assert restored == schema
    assert restored["name"].analyzer_name == "english-nostem"
    assert restored.default_analyzer == "english-nostem"


@pytest.mark.unit
def test_schema_field_from_dict_rejects_unknown_type():
    with pytest.raises(ValueError):
        SchemaField.from_dict({"name": "x", "type": "numeric"})


@pytest.mark.unit
def test_indexed_fields_skip_unindexed_columns():
    schema = Schema(fields=[KeywordField("id"), TextField("notes", indexed=False)])

    assert [f.name for f in schema.indexed_fields] == ["id"]
    assert schema.get("missing") is None
