"""Unit tests for schema_engine.manager.SchemaManager."""

from __future__ import annotations

import itertools
import json
from datetime import UTC, datetime, timedelta

import pytest

from schema_engine.artifact.serializer import serialize_schema
from schema_engine.config import Settings
from schema_engine.errors import ConfigurationError, VersionConflictError
from schema_engine.executor.memory_backend import InMemoryDatabase
from schema_engine.manager import SchemaManager
from schema_engine.models.artifact import MigrationArtifact
from schema_engine.models.diff import SchemaDiff
from schema_engine.models.schema import Column
from schema_engine.models.seed import DataRecord

V1 = 20240101000000
V2 = 20240101000001

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock():
    ticks = itertools.count()
    start = datetime(2024, 1, 1, tzinfo=UTC)
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture()
def dev_db(users_columns) -> InMemoryDatabase:
    db = InMemoryDatabase("dev")
    db.create_table("users", users_columns)
    return db


@pytest.fixture()
def prod_db() -> InMemoryDatabase:
    return InMemoryDatabase("prod")


@pytest.fixture()
def dev(dev_db, store, settings, clock) -> SchemaManager:
    return SchemaManager(dev_db, dev_db, store, settings, clock)


@pytest.fixture()
def prod(prod_db, store, settings, clock) -> SchemaManager:
    return SchemaManager(prod_db, prod_db, store, settings, clock)


@pytest.fixture()
def two_versions(dev, dev_db):
    """Snapshot the users table, then the users table with an email column."""
    assert dev.snapshot("initial") is True
    dev_db.add_column("users", Column(name="email", data_type="TEXT"))
    assert dev.snapshot("add email") is True
    return dev


def _messages(manager: SchemaManager) -> str:
    return "\n".join(entry.message for entry in manager.migration_log)


def _columns(db: InMemoryDatabase, table: str) -> list[str]:
    return [col.name for col in db.describe_table(table)]


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    def test_initial_snapshot(self, dev, store):
        assert dev.snapshot("initial") is True
        assert store.versions() == {V1: "initial"}
        assert dev.get_version() == V1
        assert dev.is_latest()
        artifact = store.load_artifact(V1)
        assert not artifact.revertible
        assert [t.name for t in artifact.up.table.create] == ["users"]
        schema = store.load_schema()
        assert schema.version == V1
        # The ledger table is never snapshotted.
        assert list(schema.tables) == ["users"]
        assert "Snapshot completed" in _messages(dev)

    def test_no_changes(self, dev, store):
        dev.snapshot()
        assert dev.snapshot() is False
        assert list(store.versions()) == [V1]
        assert "No changes detected" in _messages(dev)

    def test_second_snapshot_is_revertible(self, two_versions, store):
        assert list(store.versions()) == [V1, V2]
        artifact = store.load_artifact(V2)
        assert artifact.revertible
        assert [c.name for c in artifact.up.table.alter[0].add] == ["email"]
        assert artifact.down.table.alter[0].drop == ["email"]
        assert two_versions.get_version() == V2

    def test_dry_run_writes_nothing(self, dev, store):
        result = dev.snapshot(dry_run=True)
        assert isinstance(result, SchemaDiff)
        assert [t.name for t in result.table.create] == ["users"]
        assert not store.exists()
        assert dev.get_version() == 0

    def test_database_behind_latest_version(self, two_versions, prod, prod_db, users_columns):
        prod_db.create_table("users", users_columns)
        with pytest.raises(VersionConflictError, match="not at the latest version"):
            prod.snapshot()
        assert "Snapshot failed" in _messages(prod)

    def test_clock_behind_latest_version(self, dev, dev_db, store, settings):
        dev.snapshot()
        dev_db.add_column("users", Column(name="email", data_type="TEXT"))
        late = SchemaManager(dev_db, dev_db, store, settings, clock=lambda: datetime(2023, 1, 1, tzinfo=UTC))
        with pytest.raises(VersionConflictError, match="not newer"):
            late.snapshot()

    def test_rename_detected(self, dev, dev_db, store):
        dev.snapshot()
        dev_db.rename_table("users", "people")
        dev.snapshot("rename")
        renames = store.load_artifact(V2).up.table.rename
        assert [(r.from_, r.to) for r in renames] == [("users", "people")]


# ---------------------------------------------------------------------------
# Migrate
# ---------------------------------------------------------------------------


class TestMigrate:
    def test_bootstrap_fresh_database(self, two_versions, prod, prod_db):
        assert prod.migrate() is True
        assert _columns(prod_db, "users") == ["id", "name", "email"]
        assert prod.ledger.applied_versions() == [V1, V2]
        assert prod.is_latest()
        assert not prod.has_updates()
        assert "Initialising database" in _messages(prod)

    def test_step_by_step_and_back(self, two_versions, prod, prod_db):
        assert prod.migrate(version=V1) is True
        assert _columns(prod_db, "users") == ["id", "name"]
        assert prod.get_missing_versions() == [V2]
        assert prod.has_updates()

        assert prod.migrate() is True
        assert _columns(prod_db, "users") == ["id", "name", "email"]

        assert prod.migrate(version=V1) is True
        assert _columns(prod_db, "users") == ["id", "name"]
        assert prod.get_version() == V1

    def test_already_at_latest_version(self, two_versions):
        assert two_versions.migrate() is True
        assert "Nothing to do" in _messages(two_versions)

    def test_failure_returns_false(self, two_versions, prod, prod_db):
        prod_db.create_table("users", [Column(name="id", data_type="INTEGER")])
        assert prod.migrate() is False
        assert prod.get_version() == 0
        assert "already exists" in _messages(prod)

    def test_keep_tables_adopts_identical_objects(self, dev, prod, prod_db, users_columns):
        dev.snapshot()
        prod_db.create_table("users", users_columns)
        assert prod.migrate(keep_tables=True) is True
        assert prod.ledger.applied_versions() == [V1]
        assert "Keeping existing table 'users'" in _messages(prod)

    def test_keep_tables_rejects_differing_objects(self, dev, prod, prod_db, users_columns):
        dev.snapshot()
        prod_db.create_table("users", users_columns + [Column(name="extra", ordinal_position=3, data_type="TEXT")])
        assert prod.migrate(keep_tables=True) is False
        assert prod.get_version() == 0

    def test_dry_run(self, two_versions, prod, prod_db):
        assert prod.migrate(dry_run=True) is True
        assert prod_db.list_tables() == []
        assert "Would create table 'users'" in _messages(prod)

    def test_missing_store(self, prod_db, tmp_path, settings):
        manager = SchemaManager(prod_db, prod_db, tmp_path / "nowhere", settings)
        with pytest.raises(ConfigurationError, match="does not exist"):
            manager.migrate()

    def test_unknown_version(self, two_versions, prod):
        with pytest.raises(ConfigurationError, match="Version 1 does not exist"):
            prod.migrate(version=1)

    def test_rename_replayed(self, dev, dev_db, prod, prod_db):
        dev.snapshot()
        prod.migrate()
        dev_db.rename_table("users", "people")
        dev.snapshot("rename")
        assert prod.migrate() is True
        assert "people" in prod_db.list_tables()
        assert "users" not in prod_db.list_tables()

    def test_hand_written_artifacts_up_and_down(self, prod, prod_db, store):
        store.write_artifact(
            MigrationArtifact.model_validate(
                {
                    "version": 100,
                    "up": {
                        "table": {
                            "create": [
                                {
                                    "name": "users",
                                    "columns": [
                                        {"name": "id", "data_type": "int", "nullable": False, "primary_key": True},
                                        {"name": "name", "data_type": "text"},
                                    ],
                                }
                            ]
                        }
                    },
                    "down": {"table": {"remove": [{"name": "users"}]}},
                }
            )
        )
        store.write_artifact(
            MigrationArtifact.model_validate(
                {
                    "version": 200,
                    "up": {"table": {"alter": [{"name": "users", "add": [{"name": "email", "data_type": "text"}]}]}},
                    "down": {"table": {"alter": [{"name": "users", "drop": ["email"]}]}},
                }
            )
        )

        assert prod.migrate(version=200) is True
        assert _columns(prod_db, "users") == ["id", "name", "email"]
        assert prod.ledger.applied_versions() == [100, 200]

        assert prod.migrate(version=100) is True
        assert _columns(prod_db, "users") == ["id", "name"]
        assert prod.ledger.applied_versions() == [100]


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


class TestSeedData:
    def test_seed_data_synced_after_migration(self, two_versions, prod, prod_db, store):
        (store.root / "data.json").write_text(json.dumps([{"table": "users", "rows": [{"id": 1, "name": "admin"}]}]))
        assert prod.migrate() is True
        assert prod_db.select_rows("users") == [{"id": 1, "name": "admin", "email": None}]

    def test_no_sync_without_replay_unless_forced(self, two_versions, prod, prod_db, store):
        prod.migrate()
        (store.root / "data.json").write_text(json.dumps([{"table": "users", "rows": [{"id": 1, "name": "admin"}]}]))
        prod.migrate()
        assert prod_db.select_rows("users") == []
        prod.migrate(force_data_sync=True)
        assert len(prod_db.select_rows("users")) == 1

    def test_down_migration_does_not_sync(self, two_versions, prod, prod_db, store):
        rows = [{"id": 1, "name": "a", "email": "a@example.com"}]
        (store.root / "data.json").write_text(json.dumps([{"table": "users", "rows": rows}]))
        assert prod.migrate() is True

        assert prod.migrate(version=V1) is True
        assert _columns(prod_db, "users") == ["id", "name"]
        assert prod_db.select_rows("users") == [{"id": 1, "name": "a"}]
        assert prod.ledger.applied_versions() == [V1]
        assert "Processing 1 data sync items" not in _messages(prod)

    def test_dry_run_bootstrap_lists_seed_records(self, dev, prod, prod_db, store):
        dev.snapshot()
        (store.root / "data.json").write_text(json.dumps([{"table": "users", "rows": [{"id": 1, "name": "admin"}]}]))
        assert prod.migrate(dry_run=True) is True
        assert prod_db.list_tables() == []
        assert "Would sync data record for table 'users'" in _messages(prod)

    def test_sync_failure_returns_false(self, two_versions, prod, store):
        (store.root / "data.json").write_text(json.dumps([{"table": "ghosts", "rows": [{"id": 1}]}]))
        assert prod.migrate() is False

    def test_sync_data_with_explicit_records(self, two_versions, prod, prod_db):
        prod.migrate()
        result = prod.sync_data([DataRecord(table="users", rows=[{"id": 3, "name": "c"}])])
        assert result.inserted == 1
        assert prod.sync_data([DataRecord(table="users", rows=[{"id": 3, "name": "c"}])]).mutations == 0

    def test_seed_records_include_schema_data(self, two_versions, prod, store):
        schema = store.load_schema().model_copy(update={"data": [DataRecord(message="from schema")]})
        store.write_schema(schema)
        (store.root / "data.json").write_text(json.dumps([{"message": "from seed"}]))
        assert [r.message for r in prod.seed_records()] == ["from seed", "from schema"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_version_queries(self, two_versions, prod):
        assert prod.get_versions() == {V1: "initial", V2: "add email"}
        assert prod.get_latest_version() == V2
        assert prod.get_version() == 0
        assert not prod.is_latest()
        assert prod.get_missing_versions(V1) == [V1]

    def test_get_schema_folds_artifacts(self, two_versions):
        assert [c.name for c in two_versions.get_schema(V1).tables["users"]] == ["id", "name"]
        folded = two_versions.get_schema()
        assert folded.version == V2
        assert folded.structure() == two_versions.store.load_schema().structure()

    def test_truncate(self, two_versions, prod, prod_db):
        prod.migrate()
        prod.truncate()
        assert prod_db.list_tables() == []
        assert prod.get_version() == 0

    def test_truncate_keeps_ignored_tables(self, prod_db, store, users_columns):
        prod_db.create_table("audit", [Column(name="id", data_type="INTEGER")])
        prod_db.create_table("users", users_columns)
        manager = SchemaManager(prod_db, prod_db, store, Settings(ignore_tables=["audit"]))
        manager.truncate()
        assert prod_db.list_tables() == ["audit"]

    def test_create_schema_from_file(self, prod, prod_db, tmp_path, users_schema):
        path = tmp_path / "schema.json"
        path.write_text(serialize_schema(users_schema), encoding="utf-8")
        assert prod.create_schema_from_file(path) is True
        assert prod_db.list_tables() == ["users"]
        assert prod.get_version() == 0

    def test_create_schema_rolls_back(self, prod, prod_db, users_schema, users_columns):
        prod_db.create_table("users", users_columns)
        assert prod.create_schema(users_schema) is False

    def test_create_schema_from_missing_file(self, prod, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            prod.create_schema_from_file(tmp_path / "missing.json")
