"""Shared pytest fixtures and configuration

This file contains fixtures that can be used across all test files.
Pytest automatically discovers this file and makes fixtures available.
"""

import copy
import json
import tempfile
import threading
from collections import defaultdict
from datetime import datetime
from pathlib import Path

import pytest

from atp.context import ForumContext
from atp.session import SessionState, SessionStore
from atp.types import CreatedRecord, ListPage, RecordEntry
from forum.errors import RemoteError, TransientRemoteError
from utils.config import DEFAULT_CONFIG

ME = "did:plc:me"
ALICE = "did:plc:alice"
BOB = "did:plc:bob"
CAROL = "did:plc:carol"

# ==================== Fake Repository Agent ====================


class FakeAgent:
    """
    In-memory RepoAgent.

    repos[did][collection][rkey] = (cid, value)

    - failing: repos whose list_records raises TransientRemoteError
    - failing_follows: actors whose get_follows raises RemoteError
    """

    def __init__(self):
        self.repos = defaultdict(lambda: defaultdict(dict))
        self.follows = {}
        self.failing = set()
        self.failing_follows = set()
        self.calls = []
        self._seq = 0
        self._lock = threading.Lock()

    @staticmethod
    def _nsid(collection):
        return getattr(collection, "value", collection)

    def add(self, repo, collection, rkey, value, cid=None):
        nsid = self._nsid(collection)
        self.repos[repo][nsid][rkey] = (cid or f"cid-{rkey}", copy.deepcopy(value))
        return f"at://{repo}/{nsid}/{rkey}"

    def stored(self, repo, collection):
        return {rkey: value for rkey, (_, value) in self.repos[repo][self._nsid(collection)].items()}

    def list_records(self, repo, collection, limit=100, cursor=None):
        nsid = self._nsid(collection)
        self.calls.append(("list_records", repo, nsid, limit, cursor))
        if repo in self.failing:
            raise TransientRemoteError(f"list_records failed for {repo}", status=502)

        items = sorted(self.repos[repo][nsid].items())
        start = int(cursor) if cursor else 0
        page = items[start : start + limit]
        next_cursor = str(start + limit) if start + limit < len(items) else None
        records = [
            RecordEntry(uri=f"at://{repo}/{nsid}/{rkey}", cid=cid, value=copy.deepcopy(value))
            for rkey, (cid, value) in page
        ]
        return ListPage(records=records, cursor=next_cursor)

    def create_record(self, repo, collection, record):
        with self._lock:
            self._seq += 1
            rkey = f"new{self._seq:04d}"
        self.calls.append(("create_record", repo, self._nsid(collection), record))
        uri = self.add(repo, collection, rkey, record)
        return CreatedRecord(uri=uri, cid=f"cid-{rkey}")

    def put_record(self, repo, collection, key, record):
        self.calls.append(("put_record", repo, self._nsid(collection), key, record))
        uri = self.add(repo, collection, key, record)
        return CreatedRecord(uri=uri, cid=f"cid-{key}")

    def get_follows(self, actor, limit=100):
        self.calls.append(("get_follows", actor, limit))
        if actor in self.failing_follows:
            raise RemoteError(f"get_follows failed for {actor}", status=400)
        return list(self.follows.get(actor, []))[:limit]

    def remote_calls(self):
        return [c for c in self.calls if c[0] != "get_follows"]


# ==================== Context Fixtures ====================


@pytest.fixture
def fake_agent():
    return FakeAgent()


@pytest.fixture
def config():
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def logged_in_state():
    return SessionState(
        did=ME,
        handle="me.test",
        access_jwt="access-token",
        refresh_jwt="refresh-token",
        pds_url="https://pds.example.com",
        loaded=True,
    )


@pytest.fixture
def make_context(fake_agent, config, logged_in_state):
    """Factory fixture building a ForumContext around the FakeAgent"""

    def _create(logged_in=True, **forum_overrides):
        cfg = copy.deepcopy(config)
        cfg["forum"].update(forum_overrides)
        store = SessionStore()
        if logged_in:
            store.set(logged_in_state)
        return ForumContext(cfg, store, agent_factory=lambda service_url, on_change: fake_agent)

    return _create


@pytest.fixture
def context(make_context):
    return make_context()


# ==================== Record Builders ====================


@pytest.fixture
def thread_value():
    def _build(title="A thread", board=None, created_at="2025-01-01T00:00:00.000Z"):
        value = {"$type": "app.echosky.board.thread", "title": title, "createdAt": created_at}
        if board is not None:
            value["board"] = board
        return value

    return _build


@pytest.fixture
def board_info_value():
    def _build(board_id, name="A board", created_at="2025-01-01T00:00:00.000Z", description=None):
        value = {"$type": "app.echosky.board.info", "boardId": board_id, "name": name, "createdAt": created_at}
        if description is not None:
            value["description"] = description
        return value

    return _build


# ==================== File System Fixtures ====================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def assert_valid_json():
    """Fixture that provides a helper to validate JSON files"""

    def _assert_valid_json(file_path):
        """Validate that a file contains valid JSON"""
        with open(file_path) as f:
            return json.load(f)  # Will raise if invalid

    return _assert_valid_json


# ==================== Time Fixtures ====================


@pytest.fixture
def frozen_time():
    """Freeze time for testing (requires freezegun)"""
    from freezegun import freeze_time

    frozen = freeze_time("2025-10-31 20:00:00")
    frozen.start()

    yield datetime(2025, 10, 31, 20, 0, 0)

    frozen.stop()


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow")
    config.addinivalue_line("markers", "api: mark test as requiring API access")
