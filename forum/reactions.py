# forum/reactions.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from atp.context import ForumContext
from atp.types import RecordEntry
from forum.codec import build_reaction_key
from forum.errors import ValidationError
from forum.records import REACTION_KINDS, Collection, ReactionRecord, StrongRef, parse_entries

logger = logging.getLogger(__name__)

LIST_LIMIT_MAX = 100


@dataclass
class ReactionPage:
    """Reactions on one subject from a single listRecords page, plus the cursor for the next page."""

    records: List[RecordEntry] = field(default_factory=list)
    cursor: Optional[str] = None


def _kind_value(kind: Any) -> str:
    return getattr(kind, "value", kind)


def count_reactions(records: Iterable[Any]) -> Dict[str, int]:
    """
    Tally reactions per kind.

    Every known kind is present (zero when absent); kinds outside the known
    set are ignored. Accepts RecordEntry objects (decoded or raw value),
    ReactionRecord models, or plain dicts.
    """
    counts = {kind: 0 for kind in REACTION_KINDS}
    for record in records:
        value = getattr(record, "value", record)
        kind = value.get("reaction") if isinstance(value, dict) else getattr(value, "reaction", None)
        if kind in counts:
            counts[kind] += 1
    return counts


class ReactionLedger:
    """
    Reactions keyed by build_reaction_key(subject, kind, actor).

    Because the key is deterministic, toggle_reaction is a putRecord upsert:
    reacting twice with the same kind leaves a single record. There is no
    removal.
    """

    def __init__(self, context: ForumContext):
        self.context = context

    @property
    def agent(self):
        return self.context.agent

    def toggle_reaction(self, subject: Any, kind: Any) -> str:
        """Upsert the caller's `kind` reaction on `subject` ({uri, cid}). Returns the record key."""
        kind = _kind_value(kind)
        if kind not in REACTION_KINDS:
            raise ValidationError(f"Unknown reaction {kind!r}; expected one of {', '.join(REACTION_KINDS)}.")

        if isinstance(subject, dict):
            uri, cid = subject.get("uri"), subject.get("cid")
        else:
            uri, cid = getattr(subject, "uri", None), getattr(subject, "cid", None)
        if not uri or not cid:
            raise ValidationError("Reaction subject needs both `uri` and `cid`.")

        did = self.context.require_did()
        key = build_reaction_key(uri, kind, did)
        record = ReactionRecord(subject=StrongRef(uri=uri, cid=cid), reaction=kind)

        self.agent.put_record(did, Collection.REACTION, key, record.to_wire())
        logger.info("Reaction %s on %s stored under %s", kind, uri, key)
        return key

    def list_reactions_for_subject(
        self,
        subject_uri: str,
        repo: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: int = LIST_LIMIT_MAX,
    ) -> ReactionPage:
        """
        One page of `repo`'s reactions (default: the caller's), keeping only
        those whose subject URI equals `subject_uri`. The filter runs locally,
        so a page can come back empty while `cursor` still points further.
        """
        repo = repo or self.context.require_did()
        limit = max(1, min(int(limit), LIST_LIMIT_MAX))

        page = self.agent.list_records(repo, Collection.REACTION, limit=limit, cursor=cursor)
        entries = parse_entries(Collection.REACTION, page.records)
        matching = [e for e in entries if e.value.subject.uri == subject_uri]
        logger.debug("Reactions page for %s in %s: %d/%d matched", subject_uri, repo, len(matching), len(entries))
        return ReactionPage(records=matching, cursor=page.cursor)

    def count_reactions(self, records: Iterable[Any]) -> Dict[str, int]:
        return count_reactions(records)
