"""
Core Type Definitions for the Session Store

Implements Result/Either monads for zero-exception control flow on the
write path, plus the identity and time types every layer shares.

Design Principles:
- Never use null for absence of a session (use the NULL sentinel id)
- Validate identifiers at the boundary, once
- Immutable value types (frozen dataclasses with __slots__)
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    TypeVar,
    Union,
)
from uuid import uuid4

from sessionstore.core import constants as C

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries the full error object so callers can branch on its code.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# SESSION IDENTITY
# =============================================================================
_SESSION_ID_PATTERN = re.compile(rf"^[0-9a-f]{{{C.SESSION_ID_LENGTH}}}$")


@dataclass(frozen=True, slots=True, order=True)
class SessionId:
    """
    Opaque, fixed-format session identifier.

    Generated ids are 32 lowercase hex characters, matching the CHAR(32)
    primary key of the sessions table. The reserved value "null" is the
    sentinel meaning "no session bound to this request"; it never matches
    a stored row.
    """

    value: str

    @classmethod
    def generate(cls) -> SessionId:
        """Mint a fresh random id."""
        return cls(value=uuid4().hex)

    @classmethod
    def parse(cls, raw: str) -> Result[SessionId, str]:
        """
        Parse and validate an id coming from outside (cookie, URL, caller).

        Upper-case hex is normalized to lower case. The sentinel parses
        successfully so that callers can hold it like any other id.

        Returns:
            Ok[SessionId]: Valid identifier (possibly NULL)
            Err[str]: Validation error message
        """
        if not isinstance(raw, str):
            return Err(f"Session id must be a string, got {type(raw).__name__}")
        if raw == C.NULL_SESSION_ID:
            return Ok(NULL_SESSION)
        candidate = raw.strip().lower()
        if not _SESSION_ID_PATTERN.match(candidate):
            return Err(f"Invalid session id format: {raw!r}")
        return Ok(cls(value=candidate))

    @property
    def is_null(self) -> bool:
        """True for the "no session" sentinel."""
        return self.value == C.NULL_SESSION_ID

    def __str__(self) -> str:
        return self.value


NULL_SESSION = SessionId(C.NULL_SESSION_ID)


# =============================================================================
# TIMESTAMPS
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision timestamp stored as nanoseconds since the Unix epoch.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())
