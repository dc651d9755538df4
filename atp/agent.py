# atp/agent.py
# pylint: disable=wrong-import-position

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

# Silence noisy Pydantic v2 + atproto_client schema warnings
from pydantic.warnings import UnsupportedFieldAttributeWarning

warnings.filterwarnings("ignore", category=UnsupportedFieldAttributeWarning)

from atproto import Client
from atproto_client.client.session import Session, SessionEvent
from atproto_client.exceptions import AtProtocolError, NetworkError

from atp.session import SessionState
from atp.types import CreatedRecord, ListPage, RecordEntry
from forum.errors import RemoteError, TransientRemoteError
from utils.retry import RetryPolicy, retry_call

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_URL = "https://bsky.social"
LIST_LIMIT_MAX = 100


class RepoAgent(Protocol):
    """
    Everything the board logic needs from a remote repository.

    MUST:
      - Raise TransientRemoteError for rate limits / server errors / dropped connections
      - Raise RemoteError for every other remote failure
      - Return plain dict record values from list_records
    """

    def list_records(self, repo: str, collection: Any, limit: int = LIST_LIMIT_MAX, cursor: Optional[str] = None) -> ListPage: ...

    def create_record(self, repo: str, collection: Any, record: Dict[str, Any]) -> CreatedRecord: ...

    def put_record(self, repo: str, collection: Any, key: str, record: Dict[str, Any]) -> CreatedRecord: ...

    def get_follows(self, actor: str, limit: int = LIST_LIMIT_MAX) -> List[str]: ...


@dataclass
class AtprotoConfig:
    service_url: str = DEFAULT_SERVICE_URL
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def _nsid(collection: Any) -> str:
    return getattr(collection, "value", collection)


def _as_dict(value: Any) -> Any:
    """Record values come back as DotDict / SDK models for unknown lexicons; flatten them."""
    if isinstance(value, dict):
        return value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if hasattr(value, "model_dump"):
        return value.model_dump(by_alias=True, exclude_none=True)
    return value


def classify_error(exc: Exception, action: str) -> RemoteError:
    """Map an SDK exception onto RemoteError / TransientRemoteError."""
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    detail = getattr(response, "content", None) or exc
    message = f"{action} failed ({status or type(exc).__name__}): {detail}"

    if isinstance(exc, NetworkError) or status == 429 or (status is not None and 500 <= status < 600):
        return TransientRemoteError(message, status=status)
    return RemoteError(message, status=status)


class AtprotoAgent:
    """
    RepoAgent backed by `atproto.Client`.

      - Every call goes through retry_call with the configured RetryPolicy.
      - SDK exceptions are translated into the forum error taxonomy.
      - Session changes (login, import, token refresh) are reported to
        `on_session_change` as a SessionState so they can be persisted.
    """

    def __init__(
        self,
        cfg: Optional[AtprotoConfig] = None,
        on_session_change: Optional[Callable[[SessionState], None]] = None,
    ):
        self.cfg = cfg or AtprotoConfig()
        self.service_url = self.cfg.service_url or DEFAULT_SERVICE_URL
        self.client = Client(self.service_url)
        self.session_state: Optional[SessionState] = None
        self._listener = on_session_change
        self.client.on_session_change(self._session_changed)

    # ---------------- Session helpers ----------------

    def _session_changed(self, event: SessionEvent, session: Session) -> None:
        self.session_state = SessionState(
            did=session.did,
            handle=session.handle,
            access_jwt=session.access_jwt,
            refresh_jwt=session.refresh_jwt,
            pds_url=self.service_url,
            loaded=True,
        )
        logger.info("atproto session %s for %s", getattr(event, "value", event), session.handle)
        if self._listener is not None:
            self._listener(self.session_state)

    @property
    def did(self) -> Optional[str]:
        me = getattr(self.client, "me", None)
        return getattr(me, "did", None) or (self.session_state.did if self.session_state else None)

    def login(self, identifier: str, password: str) -> SessionState:
        self._call("login", self.client.login, identifier, password)
        return self.session_state

    def resume(self, state: SessionState) -> SessionState:
        """Re-import stored tokens; the SDK refreshes them if the access token expired."""
        session = Session(
            handle=state.handle or "",
            did=state.did or "",
            access_jwt=state.access_jwt or "",
            refresh_jwt=state.refresh_jwt or "",
            pds_endpoint=state.pds_url or self.service_url,
        )
        self._call("resume_session", self.client.login, session_string=session.encode())
        return self.session_state

    # ---------------- Remote calls ----------------

    def _call(self, action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        def attempt() -> Any:
            try:
                return func(*args, **kwargs)
            except AtProtocolError as e:
                raise classify_error(e, action) from e

        attempt.__name__ = action
        return retry_call(attempt, policy=self.cfg.retry)

    def list_records(self, repo: str, collection: Any, limit: int = LIST_LIMIT_MAX, cursor: Optional[str] = None) -> ListPage:
        params: Dict[str, Any] = {
            "repo": repo,
            "collection": _nsid(collection),
            "limit": max(1, min(int(limit), LIST_LIMIT_MAX)),
        }
        if cursor:
            params["cursor"] = cursor

        resp = self._call("list_records", self.client.com.atproto.repo.list_records, params=params)
        records = [RecordEntry(uri=r.uri, cid=r.cid, value=_as_dict(r.value)) for r in resp.records]
        return ListPage(records=records, cursor=getattr(resp, "cursor", None))

    def create_record(self, repo: str, collection: Any, record: Dict[str, Any]) -> CreatedRecord:
        data = {"repo": repo, "collection": _nsid(collection), "record": record}
        resp = self._call("create_record", self.client.com.atproto.repo.create_record, data=data)
        return CreatedRecord(uri=str(resp.uri), cid=str(resp.cid))

    def put_record(self, repo: str, collection: Any, key: str, record: Dict[str, Any]) -> CreatedRecord:
        data = {"repo": repo, "collection": _nsid(collection), "rkey": key, "record": record}
        resp = self._call("put_record", self.client.com.atproto.repo.put_record, data=data)
        return CreatedRecord(uri=str(resp.uri), cid=str(resp.cid))

    def get_follows(self, actor: str, limit: int = LIST_LIMIT_MAX) -> List[str]:
        """DIDs of up to `limit` accounts `actor` follows, following cursors as needed."""
        dids: List[str] = []
        cursor: Optional[str] = None
        while len(dids) < limit:
            page_size = min(LIST_LIMIT_MAX, limit - len(dids))
            resp = self._call("get_follows", self.client.get_follows, actor, cursor=cursor, limit=page_size)
            dids.extend(f.did for f in resp.follows)
            cursor = getattr(resp, "cursor", None)
            if not cursor or not resp.follows:
                break
        return dids[:limit]
