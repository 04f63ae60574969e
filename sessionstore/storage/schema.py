"""
Session Schema: DDL for the SQL Session Table

Tables:
- sessions: one row per session, id plus encoded attribute blob

The DDL is idempotent and is meant to run once at deployment/startup
(`python -m sessionstore migrate`), not per operation.
"""

from __future__ import annotations

import logging
import re
import sqlite3

from sessionstore.core import constants as C
from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, Err

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SessionSchema:
    """Schema manager for the session table."""

    SESSIONS_DDL = """
    CREATE TABLE IF NOT EXISTS {table} (
        id CHAR({id_length}) NOT NULL PRIMARY KEY,
        a_session TEXT
    );
    """

    def __init__(self, table: str = C.DEFAULT_TABLE_NAME) -> None:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Table name {table!r} is not a plain SQL identifier")
        self._table = table

    @property
    def table(self) -> str:
        return self._table

    @property
    def ddl(self) -> str:
        return self.SESSIONS_DDL.format(
            table=self._table,
            id_length=C.SESSION_ID_LENGTH,
        )

    def create_all(self, conn: sqlite3.Connection) -> Result[None, StorageError]:
        """Create the session table if it does not exist."""
        try:
            conn.execute(self.ddl)
        except sqlite3.Error as e:
            logger.error(
                "Session table provisioning failed",
                extra={"table": self._table, "error": str(e)},
            )
            return Err(StorageError.provision_failed(self._table, cause=e))

        logger.info("Session schema ready", extra={"table": self._table})
        return Ok(None)
