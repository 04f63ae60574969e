"""
Session module: codec, identity resolution, store and request plugin.
"""

from sessionstore.session.codec import SessionCodec, SessionRecord
from sessionstore.session.identity import DictTokenStore, IdentityResolver, TokenStore
from sessionstore.session.store import SessionStore
from sessionstore.session.plugin import SessionPlugin

__all__ = [
    "SessionCodec",
    "SessionRecord",
    "DictTokenStore",
    "IdentityResolver",
    "TokenStore",
    "SessionStore",
    "SessionPlugin",
]
