#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Row sinks for raw event ingestion.

The pipeline only depends on RowSink.append_row(); SQLiteSink is the
bundled implementation.
"""

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional

from .domains import Domain
from .logfmt import INT64_MAX

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class RowSink(ABC):
    """Destination that stores one row per raw event."""

    @abstractmethod
    def append_row(self, record: Any):
        """Store one record. Raising aborts the stream."""

    def close(self):
        """Flush and release resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _adapt(value: Any) -> Any:
    # SQLite integers are signed 64-bit; store the uint64 bit pattern
    if isinstance(value, int) and value > INT64_MAX:
        return value - (1 << 64)
    return value


class SQLiteSink(RowSink):
    """
    Appends rows of one domain to a SQLite table.

    The table is dropped and recreated on open. Rows are inserted in
    batches and committed on flush/close.

    A batch that fails to insert is rolled back as a whole, so rows whose
    append_row() already returned can be lost along with the failing one;
    rows_written only counts committed rows.
    """

    def __init__(self, db_path: str, table: str, domain: Domain, batch_size: int = 1000):
        """
        Open the database and prepare the destination table.

        Args:
            db_path: Path to SQLite database file (':memory:' allowed)
            table: Destination table name
            domain: Domain whose columns define the table
            batch_size: Rows buffered before an executemany
        """
        if not _IDENTIFIER.match(table):
            raise ValueError(f"invalid table name: {table!r}")
        self.db_path = db_path
        self.table = table
        self.domain = domain
        self.batch_size = batch_size
        self.rows_written = 0
        self._pending: List[tuple] = []
        self.conn: Optional[sqlite3.Connection] = None

        self._ensure_directory()
        self._connect()
        self._create_table()
        placeholders = ", ".join("?" for _ in domain.columns)
        self._insert_sql = f'INSERT INTO "{table}" VALUES ({placeholders})'

    def _ensure_directory(self):
        if self.db_path == ":memory:":
            return
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self):
        try:
            self.conn = sqlite3.connect(self.db_path)
            if self.db_path != ":memory:":
                self.conn.execute("PRAGMA journal_mode=WAL")
            # Optimize for bulk inserts
            self.conn.execute("PRAGMA synchronous=NORMAL")
            logger.info(f"Connected to database: {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    def _create_table(self):
        columns = ", ".join(f'"{name}" {sql_type}' for name, sql_type in self.domain.columns)
        self.conn.execute(f'DROP TABLE IF EXISTS "{self.table}"')
        self.conn.execute(f'CREATE TABLE "{self.table}" ({columns})')
        self.conn.commit()
        logger.debug(f"Created table {self.table} for {self.domain.name} events")

    def append_row(self, record: Any):
        row = tuple(_adapt(v) for v in self.domain.row(record))
        self._pending.append(row)
        if len(self._pending) >= self.batch_size:
            self.flush()

    def flush(self):
        """Write buffered rows and commit."""
        if not self._pending:
            return
        try:
            self.conn.executemany(self._insert_sql, self._pending)
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            self._pending.clear()
            raise
        self.rows_written += len(self._pending)
        logger.debug(f"Committed batch of {len(self._pending)} rows (total: {self.rows_written})")
        self._pending.clear()

    def count(self) -> int:
        return self.conn.execute(f'SELECT COUNT(*) FROM "{self.table}"').fetchone()[0]

    def close(self):
        """Flush remaining rows and close the connection."""
        if self.conn is None:
            return
        try:
            self.flush()
        finally:
            self.conn.close()
            self.conn = None
            logger.info(f"Database connection closed ({self.rows_written} rows in {self.table})")
