"""
Connection management for chat.db.

chat.db belongs to Messages.app, which keeps writing to it while we read.
Connections are opened per logical operation and closed right after, and are
read-only unless the caller explicitly asks for the single write we perform
(marking a chat read).
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from chime.errors import ErrorCode, StoreIOError

logger = logging.getLogger(__name__)

# Seconds to wait on a write lock held by Messages.app before giving up
DEFAULT_BUSY_TIMEOUT = 5.0


class ChatDatabase:
    """
    Connection manager for one chat.db operation.

    Usage:
        with ChatDatabase(path) as db:
            rows = db.execute_query("SELECT ...")
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        read_only: bool = True,
        timeout: float = DEFAULT_BUSY_TIMEOUT,
    ):
        """
        Initialize the connection manager.

        Args:
            path: Path to chat.db.
            read_only: Open with SQLite's mode=ro URI flag.
            timeout: Seconds to wait for locks.
        """
        self.path = Path(path).expanduser()
        self.read_only = read_only
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "ChatDatabase":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self) -> sqlite3.Connection:
        """
        Open the connection and check the store is actually readable.

        Returns:
            SQLite connection object.

        Raises:
            StoreIOError: If the file is missing, locked or not readable.
        """
        if self._connection is not None:
            return self._connection

        if not self.path.exists():
            raise StoreIOError(
                f"Database file not found: {self.path}",
                details={"path": str(self.path)},
            )

        mode = "ro" if self.read_only else "rw"
        # as_uri() percent-encodes '#', '?' and '%' so mode= is never cut off
        uri = f"{self.path.resolve().as_uri()}?mode={mode}"
        try:
            conn = sqlite3.connect(uri, uri=True, timeout=self.timeout)
        except sqlite3.Error as e:
            logger.error(f"Failed to open database: {e}")
            raise StoreIOError(
                f"Failed to open database {self.path}: {e}",
                details={"path": str(self.path)},
                cause=e,
            ) from e

        try:
            # mode=ro connects lazily; surface lock/permission problems now
            conn.execute("SELECT 1 FROM sqlite_master LIMIT 1;").fetchall()
        except sqlite3.Error as e:
            conn.close()
            logger.error(f"Database not readable: {e}")
            raise StoreIOError(
                f"Database not readable {self.path}: {e}",
                details={"path": str(self.path)},
                cause=e,
            ) from e

        self._connection = conn
        logger.debug(f"Opened database ({mode}): {self.path}")
        return conn

    def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    @property
    def connection(self) -> sqlite3.Connection:
        """
        Get database connection.

        Raises:
            RuntimeError: If connection not established.
        """
        if self._connection is None:
            raise RuntimeError("Database connection not established. Call connect() first.")
        return self._connection

    def execute_query(
        self, query: str, parameters: Optional[Tuple[Any, ...]] = None
    ) -> List[Tuple[Any, ...]]:
        """
        Execute a read query and return all rows.

        Raises:
            StoreIOError: If the query fails (locked, corrupt, missing table).
        """
        try:
            with closing(self.connection.cursor()) as cursor:
                cursor.execute(query, parameters or ())
                return cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Query failed: {e}")
            raise StoreIOError(f"Query failed: {e}", cause=e) from e

    def execute_write(self, query: str, parameters: Optional[Tuple[Any, ...]] = None) -> int:
        """
        Execute one write statement and commit it.

        Returns:
            Number of rows changed.

        Raises:
            StoreIOError: If the connection is read-only or the write fails.
        """
        if self.read_only:
            raise StoreIOError(
                "Refusing to write through a read-only connection",
                code=ErrorCode.STORE_WRITE_FAILED,
            )
        try:
            with closing(self.connection.cursor()) as cursor:
                cursor.execute(query, parameters or ())
                changed = cursor.rowcount
            self.connection.commit()
            return changed
        except sqlite3.Error as e:
            self.connection.rollback()
            logger.error(f"Write failed: {e}")
            raise StoreIOError(
                f"Write failed: {e}",
                code=ErrorCode.STORE_WRITE_FAILED,
                cause=e,
            ) from e
