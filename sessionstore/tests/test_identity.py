"""
Unit Tests: Identity Resolution

Tests:
    - Token-first precedence
    - Explicit id fallback
    - Sentinel when neither is present or the value is malformed
"""

from sessionstore.core.types import NULL_SESSION, SessionId
from sessionstore.session.identity import DictTokenStore, IdentityResolver, TokenStore

TOKEN = "session_id"


class TestDictTokenStore:
    """Tests for the in-process token jar."""

    def test_get_set_delete(self):
        tokens = DictTokenStore()
        assert tokens.get(TOKEN) is None

        tokens.set(TOKEN, "abc")
        assert tokens.get(TOKEN) == "abc"
        assert TOKEN in tokens

        tokens.delete(TOKEN)
        assert tokens.get(TOKEN) is None
        tokens.delete(TOKEN)  # idempotent

    def test_satisfies_protocol(self):
        assert isinstance(DictTokenStore(), TokenStore)


class TestIdentityResolver:
    """Tests for id precedence."""

    def test_token_wins_over_explicit(self):
        from_token = SessionId.generate()
        explicit = SessionId.generate()
        resolver = IdentityResolver(DictTokenStore({TOKEN: from_token.value}))

        assert resolver.resolve(TOKEN, explicit.value) == from_token
        assert resolver.resolve(TOKEN, explicit) == from_token

    def test_explicit_without_token(self):
        explicit = SessionId.generate()
        resolver = IdentityResolver(DictTokenStore())

        assert resolver.resolve(TOKEN, explicit.value) == explicit
        assert resolver.resolve(TOKEN, explicit) == explicit

    def test_neither_gives_sentinel(self):
        resolved = IdentityResolver(DictTokenStore()).resolve(TOKEN)
        assert resolved is NULL_SESSION
        assert resolved.is_null

    def test_empty_token_is_absent(self):
        explicit = SessionId.generate()
        resolver = IdentityResolver(DictTokenStore({TOKEN: ""}))
        assert resolver.resolve(TOKEN, explicit.value) == explicit

    def test_other_token_names_ignored(self):
        resolver = IdentityResolver(DictTokenStore({"other": SessionId.generate().value}))
        assert resolver.resolve(TOKEN) is NULL_SESSION

    def test_malformed_token_gives_sentinel(self):
        resolver = IdentityResolver(DictTokenStore({TOKEN: "'; DROP TABLE sessions"}))
        assert resolver.resolve(TOKEN, SessionId.generate().value) is NULL_SESSION

    def test_malformed_explicit_gives_sentinel(self):
        assert IdentityResolver(DictTokenStore()).resolve(TOKEN, "xyz") is NULL_SESSION

    def test_token_case_normalized(self):
        sid = SessionId.generate()
        resolver = IdentityResolver(DictTokenStore({TOKEN: sid.value.upper()}))
        assert resolver.resolve(TOKEN) == sid
