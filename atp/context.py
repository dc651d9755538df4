# atp/context.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlsplit

from atp.agent import DEFAULT_SERVICE_URL, AtprotoAgent, AtprotoConfig, RepoAgent
from atp.session import SessionState, SessionStore, is_logged_in
from definitions import ROOT_DIR
from forum.errors import ForumError, NotLoggedInError
from utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

AgentFactory = Callable[[str, Callable[[SessionState], None]], RepoAgent]


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


class ForumContext:
    """
    Explicit handle on the session and the remote agent, passed to every
    board / reaction operation instead of module-level singletons.

    Lifecycle:
      - `agent` is created on first use.
      - It is replaced whenever the effective service origin changes
        (session PDS URL, else config `atproto.service_url`, else bsky.social).
      - Session changes reported by the agent (login, token refresh) are
        written through the SessionStore, which persists them.

    `agent_factory(service_url, on_session_change)` exists so tests (or other
    transports) can supply their own RepoAgent.
    """

    def __init__(
        self,
        config: dict,
        store: Optional[SessionStore] = None,
        agent_factory: Optional[AgentFactory] = None,
    ):
        self.config = config
        self.store = store or SessionStore()
        self.retry_policy = RetryPolicy.from_config(config)
        self._agent_factory = agent_factory or self._default_agent_factory
        self._agent: Optional[RepoAgent] = None
        self._agent_origin: Optional[str] = None

    @classmethod
    def from_config(cls, config: dict, agent_factory: Optional[AgentFactory] = None) -> "ForumContext":
        session_file = (config.get("script", {}) or {}).get("session_file")
        if session_file and not Path(session_file).is_absolute():
            session_file = ROOT_DIR / session_file
        return cls(config, SessionStore.load(session_file), agent_factory=agent_factory)

    def _default_agent_factory(self, service_url: str, on_session_change: Callable[[SessionState], None]) -> RepoAgent:
        return AtprotoAgent(AtprotoConfig(service_url=service_url, retry=self.retry_policy), on_session_change)

    # ---------- session ----------

    @property
    def session(self) -> SessionState:
        return self.store.state

    @property
    def service_url(self) -> str:
        return self.session.pds_url or (self.config.get("atproto", {}) or {}).get("service_url") or DEFAULT_SERVICE_URL

    def require_did(self) -> str:
        if not is_logged_in(self.session):
            raise NotLoggedInError()
        return self.session.did

    def _record_session(self, state: SessionState) -> None:
        self.store.set(state)

    # ---------- agent ----------

    def agent_for(self, service_url: Optional[str] = None) -> RepoAgent:
        service = service_url or self.service_url
        origin = _origin(service)
        if self._agent is None or self._agent_origin != origin:
            if self._agent is not None:
                logger.info("Service changed (%s -> %s); replacing agent.", self._agent_origin, origin)
            self._agent = self._agent_factory(service, self._record_session)
            self._agent_origin = origin
        return self._agent

    @property
    def agent(self) -> RepoAgent:
        return self.agent_for()

    # ---------- transitions ----------

    def login_with_password(self, identifier: str, password: str, service: Optional[str] = None) -> SessionState:
        """Log in against `service` (default: configured service) and persist the new session."""
        service = service or (self.config.get("atproto", {}) or {}).get("service_url") or DEFAULT_SERVICE_URL
        agent = self.agent_for(service)
        state = agent.login(identifier, password)
        state = self.store.set(
            SessionState(
                did=state.did,
                handle=state.handle,
                access_jwt=state.access_jwt,
                refresh_jwt=state.refresh_jwt,
                pds_url=service,
            )
        )
        logger.info("Logged in as %s (%s) on %s.", state.handle, state.did, service)
        return state

    def resume_session(self) -> bool:
        """Re-import the stored tokens into the agent. False when there is nothing usable."""
        state = self.session
        if not state.refresh_jwt or not state.pds_url:
            return False
        try:
            self.agent_for(state.pds_url).resume(state)
        except ForumError as e:
            logger.warning("Failed to resume session for %s (%s).", state.handle or state.did, e)
            return False
        return True

    def logout(self) -> SessionState:
        self._agent = None
        self._agent_origin = None
        return self.store.clear()
