"""Shared fixtures for schema_engine tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from schema_engine.config import Settings
from schema_engine.executor.memory_backend import InMemoryDatabase
from schema_engine.models.schema import Column, Constraint, ConstraintType, SchemaDocument
from schema_engine.state.artifact_store import ArtifactStore
from schema_engine.state.ledger import VersionLedger


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep SCHEMA_* variables and a stray .env file out of every test."""
    for key in list(os.environ):
        if key.startswith("SCHEMA_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def db() -> InMemoryDatabase:
    return InMemoryDatabase("test")


@pytest.fixture()
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "db")


@pytest.fixture()
def ledger(db: InMemoryDatabase) -> VersionLedger:
    return VersionLedger(db, db)


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def users_columns() -> list[Column]:
    return [
        Column(name="id", ordinal_position=1, data_type="INTEGER", nullable=False, primary_key=True),
        Column(name="name", ordinal_position=2, data_type="TEXT"),
    ]


@pytest.fixture()
def users_schema(users_columns: list[Column]) -> SchemaDocument:
    return SchemaDocument(
        tables={"users": users_columns},
        constraints={
            "users": {
                "users_pkey": Constraint(
                    name="users_pkey",
                    table="users",
                    type=ConstraintType.PRIMARY_KEY,
                    columns=["id"],
                )
            }
        },
    )
