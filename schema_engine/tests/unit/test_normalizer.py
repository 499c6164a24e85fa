"""Unit tests for schema_engine.introspection.normalizer."""

from __future__ import annotations

import pytest

from schema_engine.introspection.normalizer import (
    normalize_default,
    normalize_type,
    normalize_view_body,
    split_type_length,
)


class TestNormalizeType:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("int4", "INTEGER"),
            ("serial", "INTEGER"),
            ("int8", "BIGINT"),
            ("bool", "BOOLEAN"),
            ("  character   varying ", "VARCHAR"),
            ("timestamp without time zone", "TIMESTAMP"),
            ("numeric(10, 2)", "NUMERIC(10,2)"),
            ("jsonb", "JSONB"),
        ],
    )
    def test_synonyms(self, raw, expected):
        assert normalize_type(raw) == expected

    def test_split_single_argument(self):
        assert split_type_length("character varying(255)") == ("VARCHAR", 255)

    def test_split_leaves_multi_argument_types(self):
        assert split_type_length("NUMERIC(10,2)") == ("NUMERIC(10,2)", None)

    def test_split_without_length(self):
        assert split_type_length("text") == ("TEXT", None)


class TestNormalizeDefault:
    def test_cast_stripped(self):
        assert normalize_default("'active'::character varying", "postgresql") == "'active'"

    def test_plain_literal_kept(self):
        assert normalize_default("0", "sqlite") == "0"

    def test_empty_values(self):
        assert normalize_default(None) is None
        assert normalize_default("   ") is None

    def test_unparseable_kept_verbatim(self):
        assert normalize_default("  (((  ") == "((("


class TestNormalizeViewBody:
    def test_create_statement_stripped(self):
        assert normalize_view_body("CREATE VIEW v AS SELECT 1;") == "SELECT 1"

    def test_body_only(self):
        assert normalize_view_body(" SELECT a FROM t; ") == "SELECT a FROM t"

    def test_temporary_view(self):
        assert normalize_view_body("create temp view v as select 1") == "select 1"
