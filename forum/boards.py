# forum/boards.py
"""
Boards, threads and posts across the caller's repository and, optionally,
the repositories of the accounts the caller follows.

A "board" is not stored anywhere on its own: it is the set of board ids that
show up either in `app.echosky.board.info` records or in the `board` field of
`app.echosky.board.thread` records.
"""

from __future__ import annotations

import logging
import random
import string
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional, Set, TypeVar

from atp.context import ForumContext
from atp.types import CreatedRecord, RecordEntry, parse_at_uri
from forum.errors import ForumError, ValidationError
from forum.records import BoardInfoRecord, Collection, PostRecord, StrongRef, ThreadRecord, parse_entries
from forum.validation import (
    check_board_description,
    check_board_id,
    check_board_name,
    check_post_text,
    check_thread_title,
    require,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOARD_ID_ALPHABET = string.ascii_lowercase + string.digits
BOARD_ID_LENGTH = 8
BOARD_ID_MAX_ATTEMPTS = 10
PAGE_LIMIT = 100

_BASE36_DIGITS = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    digits = []
    while True:
        n, rem = divmod(n, 36)
        digits.append(_BASE36_DIGITS[rem])
        if n == 0:
            break
    return "".join(reversed(digits))


def generate_board_id(
    existing: Set[str],
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.time,
    length: int = BOARD_ID_LENGTH,
    max_attempts: int = BOARD_ID_MAX_ATTEMPTS,
) -> str:
    """
    Random lowercase alphanumeric id not present in `existing`.

    After `max_attempts` collisions the last candidate gets a base36
    millisecond-timestamp suffix instead of looping further. This only avoids
    collisions with ids we have seen; two clients creating boards at the same
    moment can still race.
    """
    rng = rng or random.SystemRandom()
    candidate = ""
    for _ in range(max_attempts):
        candidate = "".join(rng.choice(BOARD_ID_ALPHABET) for _ in range(length))
        if candidate not in existing:
            return candidate

    fallback = f"{candidate}-{_base36(int(clock() * 1000))}"
    logger.warning("Board id space collided %d times; using time-suffixed id %s", max_attempts, fallback)
    return fallback


def _newest_first(entries: List[RecordEntry]) -> List[RecordEntry]:
    entries.sort(key=lambda e: (e.value.created_at, e.uri))
    entries.reverse()
    return entries


class BoardAggregator:
    """
    Read and write boards / threads / posts for the logged-in account.

    `include_follows` on the list methods overrides the `forum.include_follows`
    config switch for a single call. Follows are scanned `fanout_batch_size`
    accounts at a time; an account whose fetch fails is logged and skipped.
    """

    def __init__(self, context: ForumContext, rng: Optional[random.Random] = None):
        self.context = context
        forum_cfg = context.config.get("forum", {}) or {}
        self.include_follows = bool(forum_cfg.get("include_follows", False))
        self.batch_size = max(1, int(forum_cfg.get("fanout_batch_size", 5)))
        self.follows_limit = max(0, int(forum_cfg.get("follows_limit", 100)))
        self.rng = rng

    @property
    def agent(self):
        return self.context.agent

    # ---------------- Fetch helpers ----------------

    def _fetch(self, repo: str, collection: Collection) -> List[RecordEntry]:
        page = self.agent.list_records(repo, collection, limit=PAGE_LIMIT)
        return parse_entries(collection, page.records)

    def _board_ids(self, repo: str) -> Set[str]:
        ids = {e.value.board_id for e in self._fetch(repo, Collection.BOARD_INFO)}
        ids.update(e.value.board for e in self._fetch(repo, Collection.THREAD) if e.value.board)
        return ids

    def _follows(self, did: str) -> List[str]:
        try:
            follows = self.agent.get_follows(did, limit=self.follows_limit)
        except ForumError as e:
            logger.warning("Could not load follows for %s (%s); using own repository only.", did, e)
            return []

        # Own repo is always fetched first; keep order, drop repeats.
        seen = {did}
        unique = []
        for follow in follows:
            if follow not in seen:
                seen.add(follow)
                unique.append(follow)
        return unique

    def _fan_out(self, fetch: Callable[[str], T], include_follows: Optional[bool]) -> List[T]:
        """
        Run `fetch` for the caller's repo, then (when enabled) for each followed
        repo in batches. Results come back in repo order; failed follows are
        left out.
        """
        did = self.context.require_did()
        results = [fetch(did)]

        if not (self.include_follows if include_follows is None else include_follows):
            return results

        follows = self._follows(did)
        if not follows:
            return results

        failed = 0
        with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix="fanout") as executor:
            for start in range(0, len(follows), self.batch_size):
                batch = follows[start : start + self.batch_size]
                futures = [(repo, executor.submit(fetch, repo)) for repo in batch]
                for repo, future in futures:
                    try:
                        results.append(future.result())
                    except Exception as e:
                        failed += 1
                        logger.warning("Skipping followed repo %s: %s", repo, e)

        logger.info("Fan-out over %d follows done (%d failed).", len(follows), failed)
        return results

    # ---------------- Boards ----------------

    def list_boards(self, include_follows: Optional[bool] = None) -> List[str]:
        """Sorted, de-duplicated board ids."""
        return dedupe_board_ids(*self._fan_out(self._board_ids, include_follows))

    def list_board_infos(self, include_follows: Optional[bool] = None) -> List[RecordEntry]:
        """BoardInfo records (decoded), newest first."""
        entries: List[RecordEntry] = []
        for chunk in self._fan_out(lambda repo: self._fetch(repo, Collection.BOARD_INFO), include_follows):
            entries.extend(chunk)
        return _newest_first(entries)

    def create_board(self, name: str, description: Optional[str] = None, thumbnail: Any = None) -> RecordEntry:
        """
        Write a BoardInfo record with a freshly generated board id.

        Returns the stored entry; `entry.value.board_id` is the new id.
        """
        require(check_board_name(name), check_board_description(description))
        did = self.context.require_did()

        try:
            existing = self._board_ids(did)
        except ForumError as e:
            logger.warning("Duplicate check for new board failed (%s); assuming no existing boards.", e)
            existing = set()

        board_id = generate_board_id(existing, rng=self.rng)
        record = BoardInfoRecord(board_id=board_id, name=name, description=description, thumbnail=thumbnail)
        created = self.agent.create_record(did, Collection.BOARD_INFO, record.to_wire())
        logger.info("Created board %s (%r) at %s", board_id, name, created.uri)
        return RecordEntry(uri=created.uri, cid=created.cid, value=record)

    # ---------------- Threads ----------------

    def list_threads(self, board: Optional[str] = None, include_follows: Optional[bool] = None) -> List[RecordEntry]:
        """Threads newest first; equal timestamps are ordered by URI (descending)."""

        def fetch(repo: str) -> List[RecordEntry]:
            entries = self._fetch(repo, Collection.THREAD)
            if board is not None:
                entries = [e for e in entries if e.value.board == board]
            return entries

        threads: List[RecordEntry] = []
        for chunk in self._fan_out(fetch, include_follows):
            threads.extend(chunk)
        return _newest_first(threads)

    def create_thread(self, title: str, board: Optional[str] = None) -> CreatedRecord:
        checks = [check_thread_title(title)]
        if board is not None:
            checks.append(check_board_id(board))
        require(*checks)
        did = self.context.require_did()

        record = ThreadRecord(title=title, board=board)
        created = self.agent.create_record(did, Collection.THREAD, record.to_wire())
        logger.info("Created thread %r on board %s at %s", title, board or "-", created.uri)
        return created

    # ---------------- Posts ----------------

    def list_posts(self, thread_uri: Optional[str] = None, repo: Optional[str] = None) -> List[RecordEntry]:
        """Posts of one repository (default: caller's), oldest first with URI tie-break."""
        repo = repo or self.context.require_did()
        posts = self._fetch(repo, Collection.POST)
        if thread_uri is not None:
            posts = [p for p in posts if p.value.thread == thread_uri]
        posts.sort(key=lambda e: (e.value.created_at, e.uri))
        return posts

    def create_post(self, thread_uri: str, text: str, ref_post: Any = None) -> CreatedRecord:
        require(check_post_text(text))
        try:
            parse_at_uri(thread_uri)
        except ValueError as e:
            raise ValidationError(f"Thread reference must be an at:// URI: {e}") from e

        ref = _strong_ref(ref_post)
        did = self.context.require_did()

        record = PostRecord(thread=thread_uri, text=text, ref_post=ref)
        created = self.agent.create_record(did, Collection.POST, record.to_wire())
        logger.info("Created post in %s at %s", thread_uri, created.uri)
        return created


def _strong_ref(value: Any) -> Optional[StrongRef]:
    """Accept a StrongRef, a CreatedRecord / RecordEntry, or a {uri, cid} mapping."""
    if value is None or isinstance(value, StrongRef):
        return value
    if isinstance(value, dict):
        uri, cid = value.get("uri"), value.get("cid")
    else:
        uri, cid = getattr(value, "uri", None), getattr(value, "cid", None)
    if not uri or not cid:
        raise ValidationError("A strong reference needs both `uri` and `cid`.")
    return StrongRef(uri=uri, cid=cid)


def dedupe_board_ids(*sources: Iterable[Optional[str]]) -> List[str]:
    """Merge board id iterables into one sorted list without blanks or repeats."""
    merged: Set[str] = set()
    for source in sources:
        merged.update(b for b in source if b)
    return sorted(merged)
