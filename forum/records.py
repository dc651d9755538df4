# forum/records.py
"""
Record schemas for the four board collections.

Values fetched from a repository are untrusted: anyone can write arbitrary
JSON into `app.echosky.board.*`. Every value goes through `parse_record`, which
returns the matching model or None (and logs) when the shape is wrong.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, model_validator
from pydantic import ValidationError as PydanticValidationError

from atp.types import RecordEntry

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    THREAD = "app.echosky.board.thread"
    POST = "app.echosky.board.post"
    REACTION = "app.echosky.board.reaction"
    BOARD_INFO = "app.echosky.board.info"


class ReactionKind(str, Enum):
    LIKE = "like"
    LAUGH = "laugh"
    SAD = "sad"
    ANGRY = "angry"
    STAR = "star"


REACTION_KINDS: tuple[str, ...] = tuple(k.value for k in ReactionKind)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StrongRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uri: str
    cid: str


class BoardRecord(BaseModel):
    """Common behaviour for the record types stored in a repository."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    collection: ClassVar[Collection]

    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _stored_records_need_timestamp(cls, data: Any, info: ValidationInfo) -> Any:
        # The createdAt default is for records we write; fetched ones must carry their own.
        if info.context and info.context.get("stored") and isinstance(data, dict) and "createdAt" not in data:
            raise ValueError("stored record has no createdAt")
        return data

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        data["$type"] = self.collection.value
        return data


class ThreadRecord(BoardRecord):
    collection: ClassVar[Collection] = Collection.THREAD

    title: str
    board: Optional[str] = None


class PostRecord(BoardRecord):
    collection: ClassVar[Collection] = Collection.POST

    thread: str
    text: str
    facets: Optional[List[Any]] = None
    ref_post: Optional[StrongRef] = Field(default=None, alias="refPost")

    def to_wire(self) -> Dict[str, Any]:
        data = super().to_wire()
        # Top-level posts carry an explicit null refPost.
        data.setdefault("refPost", None)
        return data


class ReactionRecord(BoardRecord):
    collection: ClassVar[Collection] = Collection.REACTION

    subject: StrongRef
    # Kept as a plain string so that unknown kinds survive parsing and can be
    # ignored by the tally instead of dropping the record.
    reaction: str


class BoardInfoRecord(BoardRecord):
    collection: ClassVar[Collection] = Collection.BOARD_INFO

    board_id: str = Field(alias="boardId")
    name: str
    description: Optional[str] = None
    thumbnail: Optional[Any] = None
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


RECORD_TYPES: Dict[Collection, Type[BoardRecord]] = {
    Collection.THREAD: ThreadRecord,
    Collection.POST: PostRecord,
    Collection.REACTION: ReactionRecord,
    Collection.BOARD_INFO: BoardInfoRecord,
}


def parse_record(collection: Collection, value: Any, uri: str = "") -> Optional[BoardRecord]:
    """Decode a raw record value into its model, or None if it does not fit."""
    model = RECORD_TYPES[collection]
    if not isinstance(value, dict):
        logger.warning("Quarantined %s record %s: value is %s, not an object.", collection.value, uri, type(value).__name__)
        return None

    declared = value.get("$type")
    if declared and declared != collection.value:
        logger.warning("Quarantined %s record %s: declared $type %r.", collection.value, uri, declared)
        return None

    try:
        return model.model_validate(value, context={"stored": True})
    except PydanticValidationError as e:
        logger.warning("Quarantined %s record %s: %d schema error(s): %s", collection.value, uri, e.error_count(), e.errors()[:3])
        return None


def parse_entries(collection: Collection, raw_records: Iterable[RecordEntry]) -> List[RecordEntry]:
    """Replace each entry's raw value with its decoded model, dropping the ones that fail."""
    parsed: List[RecordEntry] = []
    for raw in raw_records:
        record = parse_record(collection, raw.value, raw.uri)
        if record is not None:
            parsed.append(RecordEntry(uri=raw.uri, cid=raw.cid, value=record))
    return parsed
