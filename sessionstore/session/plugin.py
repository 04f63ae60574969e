"""
Session Plugin: Token-Correlated Session Access for Request Handlers

The request-facing veneer over SessionStore. Handlers address sessions by
token name (the cookie holding the id); the plugin resolves the id and
keeps the token in step with the row:

    create  ->  new row, token set to its id (bind=True)
    delete  ->  row removed, token deleted
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from sessionstore.core.errors import SessionStoreError
from sessionstore.core.types import Result, SessionId
from sessionstore.observability.logging import StructuredLogger
from sessionstore.session.identity import IdentityResolver, TokenStore
from sessionstore.session.store import SessionStore

logger = StructuredLogger(__name__)


class SessionPlugin:
    """
    Usage:
        plugin = SessionPlugin(store, tokens)
        plugin.create("session_id", {"user": "ada"})
        plugin.update("session_id", {"theme": "dark"})
        attrs = plugin.get("session_id")
        plugin.delete("session_id")
    """

    __slots__ = ("_store", "_tokens", "_resolver")

    def __init__(
        self,
        store: SessionStore,
        tokens: TokenStore,
        resolver: Optional[IdentityResolver] = None,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._resolver = resolver or IdentityResolver(tokens)

    @property
    def store(self) -> SessionStore:
        return self._store

    def _name(self, name: Optional[str]) -> str:
        return name or self._store.config.token_name

    def create(
        self,
        name: Optional[str],
        attributes: Mapping[str, Any],
        bind: bool = True,
    ) -> Result[str, SessionStoreError]:
        """Create a session; with bind=True the token `name` is set to its id."""
        result = self._store.create(attributes)
        if result.is_ok() and bind:
            token_name = self._name(name)
            self._tokens.set(token_name, result.unwrap())
            logger.debug("Session token bound", token_name=token_name)
        return result

    def get(
        self,
        name: Optional[str],
        session_id: Union[str, SessionId, None] = None,
    ) -> Optional[dict[str, Any]]:
        sid = self._resolver.resolve(self._name(name), session_id)
        return self._store.get(sid)

    def update(
        self,
        name: Optional[str],
        attributes: Mapping[str, Any],
        session_id: Union[str, SessionId, None] = None,
    ) -> Result[None, SessionStoreError]:
        sid = self._resolver.resolve(self._name(name), session_id)
        return self._store.update(sid, attributes)

    def delete(
        self,
        name: Optional[str],
        session_id: Union[str, SessionId, None] = None,
    ) -> bool:
        """
        Delete the resolved session and drop its token.

        The token is only removed when a row was actually deleted, so a
        failed tie leaves the client's token intact.
        """
        token_name = self._name(name)
        sid = self._resolver.resolve(token_name, session_id)
        deleted = self._store.delete(sid)
        if deleted:
            self._tokens.delete(token_name)
            logger.debug("Session token removed", token_name=token_name)
        return deleted
