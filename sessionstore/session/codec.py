"""
Session Codec: Attribute Mapping <-> Stored Text Blob

Stored document (JSON object):
    {
        "_session_id": "<32 hex>",      bookkeeping, checked on decode
        "_created_at": "<ISO-8601>",    bookkeeping, fixed at creation
        "data": { ...attributes... },   caller-visible mapping
        ...                             unknown keys, preserved verbatim
    }

Blob framing:
    "j:" + json                         plain
    "z:" + base64(lz4-frame(json))      compressed, above the threshold
    json                                unframed, written by other tools

Attributes live under their own key so bookkeeping fields can never
collide with caller keys. Documents without a "data" key are read as a
flat mapping where underscore-prefixed keys are bookkeeping.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import lz4.frame

from sessionstore.core import constants as C
from sessionstore.core.config import CodecConfig
from sessionstore.core.errors import CodecError
from sessionstore.core.types import Result, Ok, Err


@dataclass
class SessionRecord:
    """
    Decoded session row.

    Only `attributes` is handed to callers; the rest rides along so a
    read-modify-write cycle rewrites exactly what it found.
    """

    session_id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    extra: dict[str, Any] = field(default_factory=dict)

    def merge(self, updates: Mapping[str, Any]) -> None:
        """Copy every supplied key over the existing attributes."""
        for key, value in updates.items():
            self.attributes[key] = value


def _check_keys(value: Any, path: str) -> Optional[str]:
    """Return a description of the first non-string mapping key, if any."""
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"non-string key {key!r} at {path}"
            problem = _check_keys(item, f"{path}.{key}")
            if problem:
                return problem
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            problem = _check_keys(item, f"{path}[{i}]")
            if problem:
                return problem
    return None


class SessionCodec:
    """
    Symmetric encoder/decoder for session blobs.

    Usage:
        codec = SessionCodec()
        blob = codec.encode(SessionRecord(session_id=sid, attributes={"a": 1})).unwrap()
        record = codec.decode(blob, sid).unwrap()
    """

    __slots__ = ("_config",)

    def __init__(self, config: Optional[CodecConfig] = None) -> None:
        self._config = config or CodecConfig()

    def encode(self, record: SessionRecord) -> Result[str, CodecError]:
        try:
            problem = _check_keys(record.attributes, "data")
        except RecursionError as e:
            return Err(CodecError.encode_failed("attributes nested too deeply", cause=e))
        if problem:
            return Err(CodecError.encode_failed(problem))

        document = {
            **record.extra,
            C.FIELD_SESSION_ID: record.session_id,
            C.FIELD_CREATED_AT: record.created_at,
            C.FIELD_DATA: record.attributes,
        }

        try:
            text = json.dumps(document, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            return Err(CodecError.encode_failed(str(e), cause=e))
        except RecursionError as e:
            return Err(CodecError.encode_failed("attributes nested too deeply", cause=e))

        raw = text.encode("utf-8")
        if (
            self._config.compression_enabled
            and len(raw) > self._config.compression_threshold_bytes
        ):
            packed = base64.b64encode(lz4.frame.compress(raw)).decode("ascii")
            return Ok(C.COMPRESSED_MARKER + packed)

        return Ok(C.PLAIN_MARKER + text)

    def decode(self, blob: Optional[str], session_id: str) -> Result[SessionRecord, CodecError]:
        if not blob:
            return Err(CodecError.decode_failed("empty blob"))

        text_result = self._unframe(blob)
        if text_result.is_err():
            return text_result

        try:
            document = json.loads(text_result.unwrap())
        except ValueError as e:
            return Err(CodecError.decode_failed("invalid JSON", cause=e))
        except RecursionError as e:
            return Err(CodecError.decode_failed("document nested too deeply", cause=e))

        if not isinstance(document, dict):
            return Err(CodecError.decode_failed(
                f"expected JSON object, got {type(document).__name__}"
            ))

        stored_id = document.pop(C.FIELD_SESSION_ID, None)
        if stored_id is not None and stored_id != session_id:
            return Err(CodecError.decode_failed(
                f"blob belongs to session {stored_id!r}, not {session_id!r}"
            ))

        created_at = document.pop(C.FIELD_CREATED_AT, None)

        if C.FIELD_DATA in document:
            attributes = document.pop(C.FIELD_DATA)
            if not isinstance(attributes, dict):
                return Err(CodecError.decode_failed("'data' is not an object"))
            extra = document
        else:
            attributes = {k: v for k, v in document.items() if not k.startswith("_")}
            extra = {k: v for k, v in document.items() if k.startswith("_")}

        record = SessionRecord(session_id=session_id, attributes=attributes, extra=extra)
        if created_at is not None:
            record.created_at = created_at
        return Ok(record)

    @staticmethod
    def _unframe(blob: str) -> Result[str, CodecError]:
        if blob.startswith(C.COMPRESSED_MARKER):
            try:
                packed = base64.b64decode(blob[len(C.COMPRESSED_MARKER):], validate=True)
                return Ok(lz4.frame.decompress(packed).decode("utf-8"))
            except (binascii.Error, RuntimeError, UnicodeDecodeError) as e:
                return Err(CodecError.decode_failed("corrupt compressed blob", cause=e))

        if blob.startswith(C.PLAIN_MARKER):
            return Ok(blob[len(C.PLAIN_MARKER):])

        return Ok(blob)
