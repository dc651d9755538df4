# atp/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class RecordEntry:
    """A record as listed from a repository.

    uri:    at:// URI of the record (at://<did>/<collection>/<rkey>)
    cid:    content hash of this revision
    value:  the record body; a plain dict straight from the agent,
            a decoded model once it has passed through forum.records
    """

    uri: str
    cid: str
    value: Any


@dataclass
class ListPage:
    """One page of `listRecords`. `cursor` is None when there is nothing more."""

    records: List[RecordEntry] = field(default_factory=list)
    cursor: Optional[str] = None


@dataclass(frozen=True)
class CreatedRecord:
    """Identity assigned by the repository to a newly written record."""

    uri: str
    cid: str

    def as_strong_ref(self) -> dict:
        return {"uri": self.uri, "cid": self.cid}


def parse_at_uri(uri: str) -> tuple[str, str, str]:
    """
    Parse an at:// URI:
      at://did:plc:XXXX/app.echosky.board.thread/3m4abc... -> (repo_did, collection, rkey)
    """
    if not uri.startswith("at://"):
        raise ValueError(f"Not an at:// uri: {uri}")
    parts = uri[5:].split("/")
    if len(parts) < 3:
        raise ValueError(f"Malformed at:// uri: {uri}")
    return parts[0], "/".join(parts[1:-1]), parts[-1]
