"""
Fact and comment records, plus the JSON envelope used to put them in blobs.

Every entity is written to the blob backend as

    {"kind": "fact" | "comment", "version": 1, "data": {...}}

so that blobs replayed from a backend manifest can be classified without any
side index.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import Field, ValidationError as PydanticValidationError

from nocap.errors import ValidationError
from nocap.schemas import WireModel, utcnow
from nocap.walrus.schemas import BlobMetadata


FactStatus = Literal["unverified", "review", "verified", "flagged"]
EntityKind = Literal["fact", "comment"]

ENVELOPE_VERSION = 1


class Fact(WireModel):
    id: str = Field(min_length=1)
    title: str = ""
    summary: str = ""
    status: FactStatus = "unverified"
    author: str = "anonymous"
    votes: int = 0
    comments: int = 0
    full_content: Optional[str] = None
    sources: List[str] = Field(default_factory=list)
    # Free-form payload: tags, keywords, region, version, timestamps...
    metadata: Dict[str, Any] = Field(default_factory=dict)
    # Set once the fact has been written; changes on every update.
    blob_id: Optional[str] = None


class ContextComment(WireModel):
    id: str = Field(min_length=1)
    fact_id: str = Field(min_length=1)
    text: str = ""
    author: str = "anonymous"
    created: datetime = Field(default_factory=utcnow)
    votes: int = Field(default=0, ge=0)
    # Set for threaded replies.
    parent_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StoredFactRecord(WireModel):
    fact: Fact
    blob_id: str
    blob_metadata: BlobMetadata
    availability_certificate: Optional[str] = None


class StoredCommentRecord(WireModel):
    comment: ContextComment
    blob_id: str
    blob_metadata: BlobMetadata
    availability_certificate: Optional[str] = None


def _errors_text(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def parse_fact(payload: Dict[str, Any]) -> Fact:
    try:
        return Fact.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid fact: {_errors_text(exc)}") from exc


def parse_comment(payload: Dict[str, Any]) -> ContextComment:
    try:
        return ContextComment.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid comment: {_errors_text(exc)}") from exc


def canon_json(obj: Dict[str, Any]) -> bytes:
    # Stable encoding so identical entities serialize to identical bytes.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("utf-8")


def encode_fact(fact: Fact) -> bytes:
    data = fact.model_dump(mode="json", by_alias=True, exclude={"blob_id"})
    return canon_json({"kind": "fact", "version": ENVELOPE_VERSION, "data": data})


def encode_comment(comment: ContextComment) -> bytes:
    data = comment.model_dump(mode="json", by_alias=True)
    return canon_json({"kind": "comment", "version": ENVELOPE_VERSION, "data": data})


def decode_envelope(payload: bytes) -> Tuple[EntityKind, Dict[str, Any]]:
    """Split a stored blob into its kind and raw entity dict."""
    try:
        obj = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"blob is not a JSON envelope: {exc}") from exc
    if not isinstance(obj, dict):
        raise ValidationError("blob envelope must be a JSON object")
    kind = obj.get("kind")
    data = obj.get("data")
    if kind not in ("fact", "comment") or not isinstance(data, dict):
        raise ValidationError(f"unknown blob envelope kind={kind!r}")
    return kind, data
