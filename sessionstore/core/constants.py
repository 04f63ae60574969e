"""
System-Wide Constants for the Session Store

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024

SECOND_MS: Final[int] = 1000

# =============================================================================
# SESSION IDENTITY
# =============================================================================
SESSION_ID_LENGTH: Final[int] = 32
NULL_SESSION_ID: Final[str] = "null"
DEFAULT_TOKEN_NAME: Final[str] = "session_id"

# =============================================================================
# STORAGE
# =============================================================================
DEFAULT_TABLE_NAME: Final[str] = "sessions"
DEFAULT_DB_PATH: Final[str] = "./data/sessions.db"
DEFAULT_LOCK_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
DEFAULT_LOCK_TTL_MS: Final[int] = 30 * SECOND_MS
MAX_CREATE_ATTEMPTS: Final[int] = 5  # id collisions on insert

REDIS_KEY_PREFIX: Final[str] = "session:"
REDIS_LOCK_SUFFIX: Final[str] = ":lock"

# Tie failure reasons carried in StorageLockError.context["reason"]
REASON_NOT_FOUND: Final[str] = "session does not exist"
REASON_LOCK_TIMEOUT: Final[str] = "timed out waiting for row lock"
NEW_SESSION_LABEL: Final[str] = "<new>"

# =============================================================================
# CODEC
# =============================================================================
COMPRESSION_THRESHOLD_BYTES: Final[int] = 1 * KB
PLAIN_MARKER: Final[str] = "j:"
COMPRESSED_MARKER: Final[str] = "z:"

FIELD_SESSION_ID: Final[str] = "_session_id"
FIELD_CREATED_AT: Final[str] = "_created_at"
FIELD_DATA: Final[str] = "data"
