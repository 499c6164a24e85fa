"""Unit tests for schema_engine.diff.schema_diff."""

from __future__ import annotations

import pytest

from schema_engine.diff.schema_diff import compute_schema_diff
from schema_engine.errors import AmbiguousRenameWarning
from schema_engine.models.schema import (
    Column,
    Constraint,
    ConstraintType,
    FunctionDef,
    FunctionParameter,
    Index,
    SchemaDocument,
    ViewDef,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cols(*names: str, data_type: str = "TEXT") -> list[Column]:
    return [Column(name=n, ordinal_position=i, data_type=data_type) for i, n in enumerate(names, start=1)]


def _doc(**tables: list[Column]) -> SchemaDocument:
    return SchemaDocument(tables=dict(tables))


def _pk(table: str, *columns: str) -> Constraint:
    return Constraint(name=f"{table}_pkey", table=table, type=ConstraintType.PRIMARY_KEY, columns=list(columns))


# ---------------------------------------------------------------------------
# Tables & columns
# ---------------------------------------------------------------------------


class TestTableDiff:
    def test_identical_schemas_have_empty_diff(self, users_schema):
        diff = compute_schema_diff(users_schema, users_schema.model_copy(deep=True))
        assert diff.is_empty
        assert diff.counts() == {}

    def test_created_table(self):
        diff = compute_schema_diff(_doc(a=_cols("x")), _doc(a=_cols("x"), b=_cols("y")))
        assert [t.name for t in diff.table.create] == ["b"]
        assert diff.table.remove == []

    def test_removed_table_carries_constraints_and_indexes(self):
        old = SchemaDocument(
            tables={"a": _cols("x"), "b": _cols("id", "y")},
            constraints={"b": {"b_pkey": _pk("b", "id")}},
            indexes={"b": {"b_y_idx": Index(name="b_y_idx", table="b", columns=["y"])}},
        )
        diff = compute_schema_diff(old, _doc(a=_cols("x")))
        assert len(diff.table.remove) == 1
        removed = diff.table.remove[0]
        assert removed.name == "b"
        assert [c.name for c in removed.constraints] == ["b_pkey"]
        assert [i.name for i in removed.indexes] == ["b_y_idx"]
        # Dropping the table drops its constraints; nothing separate is emitted.
        assert diff.constraint.remove == []

    def test_added_and_dropped_columns(self):
        diff = compute_schema_diff(_doc(t=_cols("a", "b")), _doc(t=_cols("a", "c")))
        delta = diff.table.alter["t"]
        assert [c.name for c in delta.add] == ["c"]
        assert [c.name for c in delta.drop] == ["b"]

    def test_changed_column_is_unsupported(self, caplog):
        old = _doc(t=_cols("a", "b"))
        new = _doc(t=[Column(name="a", ordinal_position=1, data_type="TEXT"), Column(name="b", ordinal_position=2, data_type="INTEGER")])
        with caplog.at_level("WARNING", logger="schema_engine"):
            diff = compute_schema_diff(old, new)
        assert diff.unsupported == {"t": ["b"]}
        assert "t" not in diff.table.alter
        assert diff.is_empty
        assert any("not supported" in r.message for r in caplog.records)

    def test_reordered_columns_are_not_a_change(self):
        old = _doc(t=_cols("a", "b"))
        new = _doc(t=[Column(name="b", ordinal_position=1, data_type="TEXT"), Column(name="a", ordinal_position=2, data_type="TEXT")])
        assert compute_schema_diff(old, new).is_empty


# ---------------------------------------------------------------------------
# Rename detection
# ---------------------------------------------------------------------------


class TestRenameDetection:
    def test_single_rename(self):
        diff = compute_schema_diff(_doc(t1=_cols("a", "b")), _doc(t2=_cols("a", "b")))
        assert [(r.old_name, r.new_name) for r in diff.table.rename] == [("t1", "t2")]
        assert diff.table.create == []
        assert diff.table.remove == []

    def test_column_order_does_not_matter(self):
        diff = compute_schema_diff(_doc(t1=_cols("a", "b")), _doc(t2=_cols("b", "a")))
        assert len(diff.table.rename) == 1

    def test_rename_with_column_change_is_create_and_remove(self):
        diff = compute_schema_diff(_doc(t1=_cols("a", "b")), _doc(t2=_cols("a", "b", "c")))
        assert diff.table.rename == []
        assert [t.name for t in diff.table.create] == ["t2"]
        assert [t.name for t in diff.table.remove] == ["t1"]

    def test_initial_snapshot_skips_rename_detection(self):
        diff = compute_schema_diff(_doc(t1=_cols("a")), _doc(t2=_cols("a")), initial=True)
        assert diff.table.rename == []
        assert len(diff.table.create) == 1

    def test_ambiguous_rename_picks_first_and_warns(self):
        old = _doc(t1=_cols("a", "b"), t2=_cols("a", "b"))
        new = _doc(t3=_cols("a", "b"))
        with pytest.warns(AmbiguousRenameWarning):
            diff = compute_schema_diff(old, new)
        assert [(r.old_name, r.new_name) for r in diff.table.rename] == [("t1", "t3")]
        assert [t.name for t in diff.table.remove] == ["t2"]

    def test_renamed_table_constraints_compared_against_source(self):
        old = SchemaDocument(
            tables={"t1": _cols("id", "a")},
            constraints={"t1": {"t1_pkey": _pk("t1", "id")}},
        )
        new = SchemaDocument(
            tables={"t2": _cols("id", "a")},
            constraints={"t2": {"t2_pkey": _pk("t2", "id")}},
        )
        diff = compute_schema_diff(old, new)
        assert [c.name for c in diff.constraint.create] == ["t2_pkey"]
        removed = diff.constraint.remove
        assert [(c.name, c.table) for c in removed] == [("t1_pkey", "t1")]

    def test_renamed_table_with_unchanged_constraint_emits_nothing(self):
        old = SchemaDocument(
            tables={"t1": _cols("id")},
            indexes={"t1": {"shared_idx": Index(name="shared_idx", table="t1", columns=["id"])}},
        )
        new = SchemaDocument(
            tables={"t2": _cols("id")},
            indexes={"t2": {"shared_idx": Index(name="shared_idx", table="t2", columns=["id"])}},
        )
        diff = compute_schema_diff(old, new)
        assert diff.index.create == []
        assert diff.index.remove == []


# ---------------------------------------------------------------------------
# Constraints & indexes
# ---------------------------------------------------------------------------


class TestConstraintAndIndexDiff:
    def test_constraint_compared_by_name(self):
        old = SchemaDocument(tables={"t": _cols("id")}, constraints={"t": {"t_pkey": _pk("t", "id")}})
        new = SchemaDocument(
            tables={"t": _cols("id")},
            constraints={
                "t": {
                    "t_pkey": _pk("t", "id"),
                    "t_id_key": Constraint(name="t_id_key", table="t", type="UNIQUE", columns=["id"]),
                }
            },
        )
        diff = compute_schema_diff(old, new)
        assert [c.name for c in diff.constraint.create] == ["t_id_key"]
        assert diff.constraint.remove == []

    def test_constraints_of_created_table_are_created(self):
        new = SchemaDocument(tables={"t": _cols("id")}, constraints={"t": {"t_pkey": _pk("t", "id")}})
        diff = compute_schema_diff(SchemaDocument(), new)
        assert [c.name for c in diff.constraint.create] == ["t_pkey"]

    def test_removed_index(self):
        idx = Index(name="t_a_idx", table="t", columns=["a"])
        old = SchemaDocument(tables={"t": _cols("a")}, indexes={"t": {"t_a_idx": idx}})
        diff = compute_schema_diff(old, _doc(t=_cols("a")))
        assert [i.name for i in diff.index.remove] == ["t_a_idx"]


# ---------------------------------------------------------------------------
# Views & functions
# ---------------------------------------------------------------------------


class TestViewAndFunctionDiff:
    def test_view_body_change_is_alter(self):
        old = SchemaDocument(views={"v": ViewDef(name="v", content="SELECT 1")})
        new = SchemaDocument(views={"v": ViewDef(name="v", content="SELECT 2")})
        diff = compute_schema_diff(old, new)
        assert len(diff.view.alter) == 1
        assert diff.view.alter[0].before.content == "SELECT 1"
        assert diff.view.alter[0].after.content == "SELECT 2"

    def test_view_create_and_remove(self):
        old = SchemaDocument(views={"a": ViewDef(name="a", content="SELECT 1")})
        new = SchemaDocument(views={"b": ViewDef(name="b", content="SELECT 1")})
        diff = compute_schema_diff(old, new)
        assert [v.name for v in diff.view.create] == ["b"]
        assert [v.name for v in diff.view.remove] == ["a"]

    def test_functions_matched_by_signature(self):
        int_fn = FunctionDef(name="f", parameters=[FunctionParameter(type="integer")], body="SELECT 1")
        text_fn = FunctionDef(name="f", parameters=[FunctionParameter(type="text")], body="SELECT 1")
        changed = int_fn.model_copy(update={"body": "SELECT 2"})

        diff = compute_schema_diff(
            SchemaDocument(functions={"f": [int_fn, text_fn]}),
            SchemaDocument(functions={"f": [changed]}),
        )
        assert [c.after.body for c in diff.function.alter] == ["SELECT 2"]
        assert [fn.full_name for fn in diff.function.remove] == ["f(text)"]
        assert diff.function.create == []
