"""Tests for schema versioning against a recording connection pool."""

from contextlib import asynccontextmanager

import pytest

from database import DatabaseSchemaError
from database.lib.schema_manager import SchemaManager

class RecordingConnection:
    """Connection double that records SQL and reports a stored version."""

    def __init__(self, version=None):
        self.version = version
        self.statements = []

    async def execute(self, sql, *args):
        self.statements.append((" ".join(sql.split()), args))

    async def fetchrow(self, sql, *args):
        return {'version': self.version} if self.version else None

    @asynccontextmanager
    async def transaction(self):
        yield

class RecordingPool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

@pytest.mark.asyncio
async def test_fresh_install_creates_tables():
    """Test that an empty database gets the latest schema."""
    conn = RecordingConnection()
    manager = SchemaManager(RecordingPool(conn))

    await manager.initialize()

    sql = [statement for statement, _ in conn.statements]
    assert any(s.startswith("CREATE TABLE IF NOT EXISTS kv_entries") for s in sql)
    assert any("PRIMARY KEY (namespace, key)" in s for s in sql)
    assert any("idx_kv_entries_namespace" in s for s in sql)
    assert ("INSERT INTO schema_version (version) VALUES ($1)", (1,)) in conn.statements
    assert manager.current_version == 1

@pytest.mark.asyncio
async def test_current_schema_is_left_alone():
    """Test that an up to date database is not touched."""
    conn = RecordingConnection(version=1)

    await SchemaManager(RecordingPool(conn)).initialize()

    assert len(conn.statements) == 1
    assert conn.statements[0][0].startswith("CREATE TABLE IF NOT EXISTS schema_version")

@pytest.mark.asyncio
async def test_empty_schema_dir(tmp_path):
    """Test that a directory without version files is an error."""
    manager = SchemaManager(RecordingPool(RecordingConnection()), schema_dir=tmp_path)

    with pytest.raises(DatabaseSchemaError, match="No valid schema files"):
        await manager.initialize()
