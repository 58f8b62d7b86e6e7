"""Database connection management for schemashift."""

import logging
from contextlib import contextmanager
from typing import Any, List, Optional, Tuple

from schemashift.errors import ConnectivityError
from schemashift.providers import Provider, detect_provider, get_provider

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """A connection to the target database, in autocommit mode.

    Transactions are explicit through :meth:`transaction`, so DDL runs
    exactly where the engine asks for it.
    """

    def __init__(self, url: str, provider: Optional[Provider] = None):
        """Initialize database connection.

        Args:
            url: Connection URL of the database
            provider: Provider for the URL; detected from the scheme when None

        Raises:
            ConnectivityError: If the database cannot be reached
        """
        self.url = url
        self.provider = provider or get_provider(detect_provider(url))
        self.error_class = self.provider.driver_error()
        self._conn = None
        self._connect()

    def _connect(self) -> None:
        """Open the driver connection for the provider."""
        name = self.provider.name
        try:
            self._conn = self.provider.connect(self.url)
        except self.error_class as e:
            raise ConnectivityError(f"Can't reach database server for {name}: {e}") from e
        logger.debug(f"Connected to {name} database")

    @property
    def is_memory(self) -> bool:
        return self.provider.is_memory_url(self.url)

    def execute(self, sql: str, params: Optional[tuple] = None) -> None:
        """Execute a SQL statement.

        Args:
            sql: SQL statement to execute
            params: Optional parameters for parameterized queries
        """
        if not self._conn:
            raise RuntimeError("Connection is closed")

        if not self.provider.cursor_statements:
            if params:
                self._conn.execute(sql, params)
            else:
                self._conn.execute(sql)
            return

        with self._conn.cursor() as cursor:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)

    def fetch_all(self, sql: str, params: Optional[tuple] = None) -> List[Tuple[Any, ...]]:
        """Execute a query and return every row as a tuple."""
        if not self._conn:
            raise RuntimeError("Connection is closed")

        if not self.provider.cursor_statements:
            cursor = self._conn.execute(sql, params) if params else self._conn.execute(sql)
            return [tuple(row) for row in cursor.fetchall()]

        with self._conn.cursor() as cursor:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            if cursor.description is None:
                return []
            return [tuple(row) for row in cursor.fetchall()]

    @contextmanager
    def transaction(self):
        """Context manager for database transactions.

        Commits on success and rolls back on exception. On providers without
        transactional DDL the block runs statement by statement.
        """
        if not self._conn:
            raise RuntimeError("Connection is closed")

        if not self.provider.supports_transactional_ddl:
            yield self
            return

        self.execute("BEGIN")
        try:
            yield self
            self.execute("COMMIT")
        except Exception:
            self.execute("ROLLBACK")
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager."""
        _ = (exc_type, exc_val, exc_tb)
        self.close()
        return False
