"""Unit tests for schema_engine.artifact.builder."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from schema_engine.artifact.builder import build_artifact, generate_version
from schema_engine.diff.schema_diff import compute_schema_diff
from schema_engine.models.artifact import INITIAL_SNAPSHOT_MESSAGE
from schema_engine.models.schema import Column, Constraint, Index, SchemaDocument, ViewDef


def _cols(*names: str) -> list[Column]:
    return [Column(name=n, ordinal_position=i, data_type="TEXT") for i, n in enumerate(names, start=1)]


# ---------------------------------------------------------------------------
# Version numbers
# ---------------------------------------------------------------------------


class TestGenerateVersion:
    def test_utc_timestamp(self):
        assert generate_version(datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)) == 20240102030405

    def test_aware_datetime_converted_to_utc(self):
        moment = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        assert generate_version(moment) == 20240102030405

    def test_naive_datetime_taken_as_is(self):
        assert generate_version(datetime(2023, 12, 31, 23, 59, 59)) == 20231231235959

    def test_default_is_now(self):
        assert generate_version() >= 20240101000000


# ---------------------------------------------------------------------------
# Artifact trees
# ---------------------------------------------------------------------------


class TestBuildArtifact:
    def test_initial_snapshot_cannot_be_reverted(self, users_schema):
        diff = compute_schema_diff(None, users_schema)
        artifact = build_artifact(diff, 1, "init", initial=True)
        assert artifact.down.raise_ == INITIAL_SNAPSHOT_MESSAGE
        assert not artifact.revertible
        assert [t.name for t in artifact.up.table.create] == ["users"]
        assert [c.name for c in artifact.up.constraint.create] == ["users_pkey"]
        assert artifact.comment == "init"

    def test_rename_is_swapped_in_down(self):
        diff = compute_schema_diff(SchemaDocument(tables={"a": _cols("x")}), SchemaDocument(tables={"b": _cols("x")}))
        artifact = build_artifact(diff, 2)
        assert (artifact.up.table.rename[0].from_, artifact.up.table.rename[0].to) == ("a", "b")
        assert (artifact.down.table.rename[0].from_, artifact.down.table.rename[0].to) == ("b", "a")

    def test_removed_table_recreated_with_constraints_and_indexes(self, users_schema):
        old = users_schema.model_copy(
            update={"indexes": {"users": {"users_name_idx": Index(name="users_name_idx", table="users", columns=["name"])}}}
        )
        diff = compute_schema_diff(old, SchemaDocument(tables={"other": _cols("z")}))
        artifact = build_artifact(diff, 2)

        assert [t.name for t in artifact.up.table.remove] == ["users"]
        assert [t.name for t in artifact.down.table.create] == ["users"]
        assert [c.name for c in artifact.down.constraint.create] == ["users_pkey"]
        assert [i.name for i in artifact.down.index.create] == ["users_name_idx"]

    def test_created_table_constraints_not_removed_separately_in_down(self, users_schema):
        old = SchemaDocument(tables={"other": _cols("z")})
        new = users_schema.model_copy(update={"tables": {**users_schema.tables, "other": _cols("z")}})
        artifact = build_artifact(compute_schema_diff(old, new), 2)
        assert [t.name for t in artifact.down.table.remove] == ["users"]
        assert artifact.down.constraint.remove == []

    def test_constraint_added_to_existing_table_is_removed_in_down(self):
        old = SchemaDocument(tables={"t": _cols("a")})
        unique = Constraint(name="t_a_key", table="t", type="UNIQUE", columns=["a"])
        new = old.model_copy(update={"constraints": {"t": {"t_a_key": unique}}})
        artifact = build_artifact(compute_schema_diff(old, new), 2)
        assert [(c.name, c.table) for c in artifact.down.constraint.remove] == [("t_a_key", "t")]
        assert artifact.down.constraint.remove[0].type.value == "UNIQUE"

    def test_column_changes_mirrored(self):
        diff = compute_schema_diff(SchemaDocument(tables={"t": _cols("a", "b")}), SchemaDocument(tables={"t": _cols("a", "c")}))
        artifact = build_artifact(diff, 2)
        up, down = artifact.up.table.alter[0], artifact.down.table.alter[0]
        assert [c.name for c in up.add] == ["c"]
        assert up.drop == ["b"]
        assert [c.name for c in down.add] == ["b"]
        assert down.drop == ["c"]

    def test_view_alter_keeps_both_definitions(self):
        old = SchemaDocument(views={"v": ViewDef(name="v", content="SELECT 1")})
        new = SchemaDocument(views={"v": ViewDef(name="v", content="SELECT 2")})
        artifact = build_artifact(compute_schema_diff(old, new), 2)
        assert artifact.up.view.alter[0].content == "SELECT 2"
        assert artifact.down.view.alter[0].content == "SELECT 1"
