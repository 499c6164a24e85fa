"""Integration tests running the engine against file-backed SQLite databases."""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from schema_engine.config import Settings
from schema_engine.executor.sqlalchemy_backend import SqlAlchemyExecutor, SqlAlchemyInspector, connect
from schema_engine.introspection.capture import capture_schema
from schema_engine.manager import SchemaManager
from schema_engine.models.schema import Column, FunctionDef, FunctionParameter, Index, ViewDef
from schema_engine.models.seed import DataRecord
from schema_engine.state.artifact_store import ArtifactStore
from schema_engine.state.ledger import VersionLedger
from schema_engine.sync.data_sync import DataSynchronizer

V1 = 20240101000000
V2 = 20240101000001


@pytest.fixture()
def sqlite_url(tmp_path: Path):
    def _url(name: str) -> str:
        return f"sqlite:///{tmp_path / name}.db"

    return _url


@pytest.fixture()
def pair(sqlite_url):
    inspector, executor = connect(sqlite_url("app"))
    yield inspector, executor
    executor.close()


@pytest.fixture()
def clock():
    ticks = itertools.count()
    start = datetime(2024, 1, 1, tzinfo=UTC)
    return lambda: start + timedelta(seconds=next(ticks))


def _create_users(executor: SqlAlchemyExecutor, users_columns: list[Column]) -> None:
    executor.create_table("users", users_columns)


# ---------------------------------------------------------------------------
# Executor & inspector
# ---------------------------------------------------------------------------


class TestStructure:
    def test_create_and_inspect_table(self, pair, users_columns):
        inspector, executor = pair
        _create_users(executor, users_columns)
        assert inspector.list_tables() == ["users"]
        columns = inspector.describe_table("users")
        assert [c.name for c in columns] == ["id", "name"]
        assert columns[0].primary_key
        assert not columns[0].nullable
        assert columns[1].nullable

    def test_index_and_view(self, pair, users_columns):
        inspector, executor = pair
        _create_users(executor, users_columns)
        executor.create_index(Index(name="users_name_idx", table="users", columns=["name"]))
        executor.create_view(ViewDef(name="named_users", content="SELECT id, name FROM users"))
        assert list(inspector.list_indexes("users")) == ["users_name_idx"]
        assert inspector.list_views() == ["named_users"]
        assert inspector.describe_view("named_users").content == "SELECT id, name FROM users"

    def test_add_and_drop_column(self, pair, users_columns):
        inspector, executor = pair
        _create_users(executor, users_columns)
        executor.add_column("users", Column(name="email", data_type="TEXT"))
        assert [c.name for c in inspector.describe_table("users")] == ["id", "name", "email"]
        executor.drop_column("users", "email")
        assert [c.name for c in inspector.describe_table("users")] == ["id", "name"]

    def test_functions_unsupported(self, pair):
        inspector, _ = pair
        assert inspector.list_functions() == []

    def test_function_ddl_rejected_on_sqlite(self, pair):
        _, executor = pair
        with pytest.raises(ValueError, match="not supported on sqlite"):
            executor.create_function(FunctionDef(name="add_one", parameters=[FunctionParameter(type="INTEGER")]))
        with pytest.raises(ValueError, match="not supported on sqlite"):
            executor.drop_function("add_one", ["INTEGER"])

    def test_capture_schema(self, pair, users_columns):
        inspector, executor = pair
        _create_users(executor, users_columns)
        schema = capture_schema(inspector, version=1)
        assert list(schema.tables) == ["users"]
        assert [c.type for c in schema.constraints["users"].values()] == ["PRIMARY KEY"]


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactions:
    def test_structural_changes_roll_back(self, pair, users_columns):
        inspector, executor = pair
        with pytest.raises(RuntimeError):
            with executor.transaction():
                _create_users(executor, users_columns)
                executor.insert("users", {"id": 1, "name": "a"})
                raise RuntimeError("abort")
        assert inspector.list_tables() == []

    def test_inspector_sees_uncommitted_structure(self, pair, users_columns):
        inspector, executor = pair
        with executor.transaction():
            _create_users(executor, users_columns)
            assert inspector.list_tables() == ["users"]
        assert inspector.list_tables() == ["users"]


# ---------------------------------------------------------------------------
# Ledger & data sync
# ---------------------------------------------------------------------------


class TestLedgerAndSync:
    def test_ledger(self, pair):
        inspector, executor = pair
        ledger = VersionLedger(inspector, executor)
        assert ledger.current_version() == 0
        ledger.ensure()
        ledger.insert(V2)
        ledger.insert(V1)
        assert ledger.applied_versions() == [V1, V2]
        ledger.delete(V2)
        assert ledger.current_version() == V1

    def test_sync_rows(self, pair, users_columns):
        inspector, executor = pair
        _create_users(executor, users_columns)
        sync = DataSynchronizer(inspector, executor)
        records = [DataRecord(table="users", rows=[{"id": 1, "name": "admin"}, {"id": 2, "name": "guest"}])]
        assert sync.sync(records).inserted == 2
        assert sync.sync(records).mutations == 0
        assert executor.select_rows("users", {"id": 2}) == [{"id": 2, "name": "guest"}]


# ---------------------------------------------------------------------------
# Full cycle
# ---------------------------------------------------------------------------


class TestSnapshotMigrateCycle:
    def test_snapshot_migrate_and_revert(self, sqlite_url, tmp_path, users_columns, clock):
        settings = Settings()
        store = ArtifactStore(tmp_path / "db")

        dev_inspector, dev_executor = connect(sqlite_url("dev"))
        prod_inspector, prod_executor = connect(sqlite_url("prod"))
        try:
            dev = SchemaManager(dev_inspector, dev_executor, store, settings, clock)
            prod = SchemaManager(prod_inspector, prod_executor, store, settings, clock)

            _create_users(dev_executor, users_columns)
            assert dev.snapshot("initial") is True
            dev_executor.add_column("users", Column(name="email", data_type="TEXT"))
            assert dev.snapshot("add email") is True
            assert store.versions() == {V1: "initial", V2: "add email"}

            assert prod.migrate(version=V1) is True
            assert [c.name for c in prod_inspector.describe_table("users")] == ["id", "name"]

            assert prod.migrate() is True
            assert [c.name for c in prod_inspector.describe_table("users")] == ["id", "name", "email"]
            assert prod.get_version() == V2

            assert prod.migrate(version=V1) is True
            assert [c.name for c in prod_inspector.describe_table("users")] == ["id", "name"]
            assert prod.ledger.applied_versions() == [V1]
        finally:
            dev_executor.close()
            prod_executor.close()

    def test_from_settings(self, sqlite_url, tmp_path, users_columns):
        settings = Settings(database_url=sqlite_url("configured"), artifact_dir=tmp_path / "artifacts")
        manager = SchemaManager.from_settings(settings)
        try:
            assert isinstance(manager.inspector, SqlAlchemyInspector)
            manager.executor.create_table("users", users_columns)
            assert manager.snapshot() is True
            assert manager.is_latest()
            assert (tmp_path / "artifacts" / "schema.json").is_file()
        finally:
            manager.executor.close()
