"""Unit tests for schema_engine.diff.value_diff."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from schema_engine.diff.value_diff import changed_fields, deep_diff, values_equal

# ---------------------------------------------------------------------------
# values_equal
# ---------------------------------------------------------------------------


class TestValuesEqual:
    def test_numbers_compare_across_types(self):
        assert values_equal(1, 1.0)
        assert values_equal(Decimal("2.50"), 2.5)
        assert not values_equal(1, 2)

    def test_booleans_are_not_numbers(self):
        assert values_equal(True, True)
        assert not values_equal(True, "yes")

    def test_none_only_equals_none(self):
        assert values_equal(None, None)
        assert not values_equal(None, 0)
        assert not values_equal("", None)

    def test_driver_types_compare_as_strings(self):
        assert values_equal("2024-01-31", date(2024, 1, 31))

    def test_json_text_column_decoded(self):
        assert values_equal({"a": [1, 2]}, '{"a": [1, 2]}')
        assert values_equal([1, 2], "[1, 2]")
        assert not values_equal({"a": 1}, "not json")

    def test_nested_structures(self):
        assert values_equal({"a": {"b": [1, {"c": None}]}}, {"a": {"b": [1, {"c": None}]}})
        assert not values_equal({"a": [1, 2]}, {"a": [2, 1]})
        assert not values_equal({"a": 1}, {"a": 1, "b": 2})


# ---------------------------------------------------------------------------
# deep_diff
# ---------------------------------------------------------------------------


class TestDeepDiff:
    def test_identical_mappings_have_no_diff(self):
        assert deep_diff({"a": 1, "b": "x"}, {"a": 1, "b": "x", "c": 3}) == {}

    def test_reports_only_declared_differences(self):
        assert deep_diff({"a": 1, "b": 2}, {"a": 1, "b": 3}) == {"b": 2}

    def test_missing_key_is_a_difference(self):
        assert deep_diff({"a": 1}, {}) == {"a": 1}

    def test_recurses_into_nested_mappings(self):
        assert deep_diff({"a": {"x": 1, "y": 2}}, {"a": {"x": 1, "y": 5}}) == {"a": {"y": 2}}

    def test_scalars(self):
        assert deep_diff(1, 1) is None
        assert deep_diff(1, 2) == 1


# ---------------------------------------------------------------------------
# changed_fields
# ---------------------------------------------------------------------------


class TestChangedFields:
    def test_reports_whole_top_level_value(self):
        declared = {"id": 1, "meta": {"a": 1, "b": 2}}
        actual = {"id": 1, "meta": '{"a": 1, "b": 3}'}
        assert changed_fields(declared, actual) == {"meta": {"a": 1, "b": 2}}

    def test_no_changes(self):
        assert changed_fields({"id": 1, "name": "a"}, {"id": 1, "name": "a", "other": None}) == {}
