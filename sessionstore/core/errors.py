"""
Error Hierarchy for the Session Store

Design Principles:
- Forbid exceptions for control flow on the write path (use Result types)
- Never swallow errors silently: fail-open reads still log the error
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with request logs

Usage:
    result = store.update(session_id, {"cart": items})
    match result:
        case Ok(_):
            ...
        case Err(StorageLockError() as e):
            handle_contention(e)
        case Err(e):
            raise e
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sessionstore.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Storage errors
    - 2xxx: Codec errors
    - 3xxx: Validation errors
    """

    # Storage errors (1xxx)
    STORAGE_CONNECTION_FAILED = 1001
    STORAGE_CORRUPTION = 1006
    STORAGE_PROVISION_FAILED = 1008
    STORAGE_LOCK_FAILED = 1009

    # Codec errors (2xxx)
    CODEC_ENCODE_FAILED = 2001
    CODEC_DECODE_FAILED = 2002

    # Validation errors (3xxx)
    VALIDATION_INVALID_ATTRIBUTES = 3001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class SessionStoreError(Exception):
    """
    Base class for all session store errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Initialize Exception base class with message
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> SessionStoreError:
        """
        Add context to error (returns new instance of the same class).

        Context should not contain session attribute values.
        """
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class StorageError(SessionStoreError):
    """
    Errors from the persistence backends (SQLite, Redis, in-memory).

    Covers connection issues, lock contention, provisioning and
    corrupted rows.
    """

    @classmethod
    def connection_failed(
        cls,
        target: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Backend connection could not be obtained or used."""
        return StorageError(
            code=ErrorCode.STORAGE_CONNECTION_FAILED,
            message=f"Failed to use backend connection to {target}",
            cause=cause,
            context={"target": target},
        )

    @classmethod
    def provision_failed(
        cls,
        table: str,
        cause: Optional[Exception] = None,
    ) -> StorageProvisionError:
        """Schema provisioning (CREATE TABLE) failed."""
        return StorageProvisionError(
            code=ErrorCode.STORAGE_PROVISION_FAILED,
            message=f"Failed to provision session table '{table}'",
            cause=cause,
            context={"table": table},
        )

    @classmethod
    def lock_failed(
        cls,
        session_id: str,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> StorageLockError:
        """Could not tie to (lock and load) a session row."""
        return StorageLockError(
            code=ErrorCode.STORAGE_LOCK_FAILED,
            message=f"Failed to tie session {session_id}: {reason}",
            cause=cause,
            context={"session_id": session_id, "reason": reason},
        )

    @classmethod
    def corruption(
        cls,
        session_id: str,
        details: str,
    ) -> StorageError:
        """Stored row is unreadable."""
        return StorageError(
            code=ErrorCode.STORAGE_CORRUPTION,
            message=f"Session row {session_id} is corrupted: {details}",
            context={"session_id": session_id, "details": details},
        )


@dataclass
class StorageProvisionError(StorageError):
    """Table creation failed. Logged; fatal only if writes then fail."""


@dataclass
class StorageLockError(StorageError):
    """Tie to an existing or new row failed (missing row, contention, I/O)."""


# =============================================================================
# CODEC ERRORS
# =============================================================================
@dataclass
class CodecError(SessionStoreError):
    """Errors converting attribute mappings to and from stored blobs."""

    @classmethod
    def encode_failed(
        cls,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> CodecError:
        return cls(
            code=ErrorCode.CODEC_ENCODE_FAILED,
            message=f"Failed to encode session attributes: {reason}",
            cause=cause,
            context={"reason": reason},
        )

    @classmethod
    def decode_failed(
        cls,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> CodecError:
        return cls(
            code=ErrorCode.CODEC_DECODE_FAILED,
            message=f"Failed to decode session blob: {reason}",
            cause=cause,
            context={"reason": reason},
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================
@dataclass
class ValidationError(SessionStoreError):
    """Caller supplied arguments of the wrong shape."""

    @classmethod
    def invalid_attributes(cls, details: str) -> ValidationError:
        return cls(
            code=ErrorCode.VALIDATION_INVALID_ATTRIBUTES,
            message=f"Invalid session attributes: {details}",
            context={"details": details},
        )
