"""Shared fixtures for CLI tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from schema_engine.executor.sqlalchemy_backend import connect
from schema_engine.models.schema import Column


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep SCHEMA_* variables, a stray .env file and root handlers out of every test."""
    for key in list(os.environ):
        if key.startswith("SCHEMA_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("schema_cli.app.configure_logging", lambda **_: None)


@pytest.fixture()
def artifact_dir(tmp_path: Path) -> Path:
    return tmp_path / "db"


@pytest.fixture()
def dev_url(tmp_path: Path) -> str:
    """A SQLite database holding a ``users`` table."""
    url = f"sqlite:///{tmp_path / 'dev.db'}"
    _, executor = connect(url)
    try:
        executor.create_table(
            "users",
            [
                Column(name="id", ordinal_position=1, data_type="INTEGER", nullable=False, primary_key=True),
                Column(name="name", ordinal_position=2, data_type="TEXT"),
            ],
        )
    finally:
        executor.close()
    return url


@pytest.fixture()
def prod_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'prod.db'}"
