"""Database connection pool for the read replica.

Uses psycopg_pool.ConnectionPool for thread-safe concurrent access.
Each thread gets its own connection via thread-local storage:
  - First execute() on a thread checks out a connection from the pool
  - release_if_held() rolls back the read transaction and returns it
  - Stale transactions (from uncaught exceptions) are auto-rolled back
    on the next access from the same thread

FastAPI runs sync endpoints on a threadpool and the gauge endpoint fans
its queries out to worker threads, so every thread must hold its own
connection. Sessions are opened read-only with a statement timeout.
"""

import logging
import threading

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from ussd_analytics.config import DatabaseConfig

logger = logging.getLogger(__name__)


class Database:
    """PostgreSQL connection pool with thread-local connection tracking."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: ConnectionPool | None = None
        self._local = threading.local()

    def _session_options(self) -> str:
        opts = ["-c default_transaction_read_only=on"]
        if self.config.statement_timeout_ms > 0:
            opts.append(f"-c statement_timeout={self.config.statement_timeout_ms}")
        return " ".join(opts)

    def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = ConnectionPool(
            self.config.dsn,
            min_size=self.config.pool_min_size,
            max_size=self.config.pool_max_size,
            kwargs={
                "row_factory": dict_row,
                "autocommit": False,
                "options": self._session_options(),
            },
        )
        # Block until min_size connections are ready
        self._pool.wait()
        logger.info(
            "Connection pool ready: %s:%s/%s (min=%d, max=%d, sslmode=%s)",
            self.config.host, self.config.port, self.config.name,
            self.config.pool_min_size, self.config.pool_max_size, self.config.sslmode,
        )

    def close(self) -> None:
        """Release current thread's connection and shut down the pool."""
        self._release()
        if self._pool:
            self._pool.close()
            self._pool = None

    @property
    def conn(self) -> psycopg.Connection:
        """Get the current thread's connection, checking out from pool if needed.

        If the thread's connection has a failed transaction (INERROR state),
        it's automatically rolled back before reuse.
        """
        existing = getattr(self._local, "conn", None)
        if existing is not None and not existing.closed:
            if existing.info.transaction_status == psycopg.pq.TransactionStatus.INERROR:
                logger.warning("Rolling back failed transaction on reused connection")
                existing.rollback()
            return existing

        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        self._local.conn = self._pool.getconn()
        return self._local.conn

    def _release(self) -> None:
        """Return the current thread's connection to the pool."""
        existing = getattr(self._local, "conn", None)
        if existing is not None and self._pool is not None:
            try:
                self._pool.putconn(existing)
            except Exception:
                logger.warning("Failed to return connection to pool", exc_info=True)
            self._local.conn = None

    def execute(self, query: str, params: tuple | list | None = None) -> list[dict]:
        """Execute a query and return results."""
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            if cur.description:
                return cur.fetchall()
            return []

    def execute_one(self, query: str, params: tuple | list | None = None) -> dict | None:
        """Execute a query and return a single result."""
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            if cur.description:
                return cur.fetchone()
            return None

    def release_if_held(self) -> None:
        """Release the current thread's connection if held with an open transaction.

        Call at request and fan-out branch boundaries to prevent pool
        exhaustion. Reads never commit, so every query leaves the connection
        checked out inside a transaction; this rolls it back and returns it.

        No-op if no connection is held.
        """
        existing = getattr(self._local, "conn", None)
        if existing is None or existing.closed:
            return
        ts = existing.info.transaction_status
        if ts in (
            psycopg.pq.TransactionStatus.INTRANS,
            psycopg.pq.TransactionStatus.INERROR,
        ):
            try:
                existing.rollback()
            except psycopg.Error:
                logger.warning("Rollback failed while releasing connection", exc_info=True)
        self._release()
