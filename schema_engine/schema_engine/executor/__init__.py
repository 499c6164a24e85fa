"""Database collaborators: inspector/executor protocols and their backends."""

from __future__ import annotations

from schema_engine.executor.base import DDLExecutor, SchemaInspector
from schema_engine.executor.database import get_engine
from schema_engine.executor.memory_backend import InMemoryDatabase, InMemoryDatabaseError
from schema_engine.executor.sqlalchemy_backend import SqlAlchemyExecutor, SqlAlchemyInspector, connect

__all__ = [
    "DDLExecutor",
    "InMemoryDatabase",
    "InMemoryDatabaseError",
    "SchemaInspector",
    "SqlAlchemyExecutor",
    "SqlAlchemyInspector",
    "connect",
    "get_engine",
]
