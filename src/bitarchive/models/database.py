"""
DuckDB-backed key-value table for bitarchive settings.

The archive persists a single serialized configuration object under a fixed
key. On desktop and server targets that key-value store is a DuckDB file;
this module owns its connection and schema.
"""

import logging
from pathlib import Path
from typing import Any

import duckdb

logger = logging.getLogger(__name__)

KV_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


class KeyValueDatabase:
    """
    Manages the DuckDB connection and the kv_store table.
    """

    def __init__(self, db_path: str):
        """
        Initialize KeyValueDatabase.

        Args:
            db_path: Path to the DuckDB database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: duckdb.DuckDBPyConnection | None = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Get or create a database connection, creating the schema on first use.

        Returns:
            DuckDB connection object
        """
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = duckdb.connect(self.db_path)
            self._connection.execute(KV_TABLE_SCHEMA)
            logger.info(f"Connected to DuckDB key-value store at {self.db_path}")

        return self._connection

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("Closed DuckDB key-value store")

    def get(self, key: str) -> str | None:
        row = self.connect().execute("SELECT value FROM kv_store WHERE key = ?", [key]).fetchone()
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        conn = self.connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                [key, value],
            )
        except duckdb.Error as e:
            logger.error(f"Failed to write key {key}: {e}")
            raise

    def delete(self, key: str) -> None:
        self.connect().execute("DELETE FROM kv_store WHERE key = ?", [key])

    def keys(self) -> list[str]:
        rows = self.connect().execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row[0] for row in rows]

    def __enter__(self) -> "KeyValueDatabase":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
