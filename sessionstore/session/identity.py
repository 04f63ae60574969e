"""
Identity Resolution: Correlation Token -> Session Id

The token (cookie value) always wins over an explicit id. With neither,
the "no session" sentinel is returned; the store treats it as not-found.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Union, runtime_checkable

from sessionstore.core.types import NULL_SESSION, SessionId

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenStore(Protocol):
    """Cookie-equivalent: named client-held tokens."""

    def get(self, name: str) -> Optional[str]:
        ...

    def set(self, name: str, value: str) -> None:
        ...

    def delete(self, name: str) -> None:
        ...


class DictTokenStore:
    """
    In-process token jar standing in for a cookie transport.

    Usage:
        tokens = DictTokenStore()
        tokens.set("session_id", sid)
    """

    __slots__ = ("_tokens", "_lock")

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._tokens: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[str]:
        with self._lock:
            return self._tokens.get(name)

    def set(self, name: str, value: str) -> None:
        with self._lock:
            self._tokens[name] = value

    def delete(self, name: str) -> None:
        with self._lock:
            self._tokens.pop(name, None)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._tokens


class IdentityResolver:
    """Picks the effective session id for a request."""

    __slots__ = ("_tokens",)

    def __init__(self, tokens: TokenStore) -> None:
        self._tokens = tokens

    def resolve(
        self,
        name: str,
        explicit_id: Union[str, SessionId, None] = None,
    ) -> SessionId:
        """
        Resolve the session id to operate on.

        Order:
            1. Token named `name`, when present and non-empty
            2. `explicit_id`, when given
            3. The sentinel NULL_SESSION

        A malformed token or id still resolves (to the sentinel) rather
        than raising, so every downstream operation reports not-found.
        """
        token = self._tokens.get(name)
        if token:
            return self._parse(token, source="token")

        if isinstance(explicit_id, SessionId):
            return explicit_id
        if explicit_id:
            return self._parse(explicit_id, source="explicit")

        return NULL_SESSION

    @staticmethod
    def _parse(raw: str, source: str) -> SessionId:
        result = SessionId.parse(raw)
        if result.is_err():
            logger.debug(
                "Unparseable session id treated as no session",
                extra={"source": source, "error": result.error},
            )
            return NULL_SESSION
        return result.unwrap()
