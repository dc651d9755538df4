# atp/session.py
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from forum.errors import ForumError

logger = logging.getLogger(__name__)

STORAGE_KEY = "echosky.session.v1"

# SessionState attribute -> persisted JSON key
_PERSISTED_FIELDS = {
    "did": "did",
    "handle": "handle",
    "access_jwt": "accessJwt",
    "refresh_jwt": "refreshJwt",
    "pds_url": "pdsUrl",
}


@dataclass(frozen=True)
class SessionState:
    """
    Authentication state for the current process.

    Frozen so a reader can never observe a half-updated session; transitions
    build a new value and hand it to SessionStore.set().
    """

    did: Optional[str] = None
    handle: Optional[str] = None
    access_jwt: Optional[str] = None
    refresh_jwt: Optional[str] = None
    pds_url: Optional[str] = None
    loaded: bool = False

    def to_persisted(self) -> Dict[str, Optional[str]]:
        """Everything except the transient `loaded` flag, with the stored key names."""
        return {key: getattr(self, attr) for attr, key in _PERSISTED_FIELDS.items()}

    @classmethod
    def from_persisted(cls, data: Dict[str, Any]) -> "SessionState":
        values = {}
        for attr, key in _PERSISTED_FIELDS.items():
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"Session field {key!r} is {type(value).__name__}, expected string")
            values[attr] = value or None
        return cls(loaded=True, **values)

    def with_tokens(self, access_jwt: str, refresh_jwt: str) -> "SessionState":
        return replace(self, access_jwt=access_jwt, refresh_jwt=refresh_jwt)


def empty_session() -> SessionState:
    return SessionState(loaded=True)


def is_logged_in(state: Optional[SessionState]) -> bool:
    return bool(state and state.did and state.access_jwt)


class SessionStore:
    """
    Single writer for the process-wide SessionState, persisted as JSON.

    The session file holds one object keyed by STORAGE_KEY:
      {"echosky.session.v1": {"did": ..., "handle": ..., "accessJwt": ..., ...}}

    Every transition (login, token refresh, logout) rewrites the whole value
    atomically (temp file + os.replace). Passing path=None keeps the session
    in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._state = SessionState()

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "SessionStore":
        store = cls(path)
        store._state = store._read()
        return store

    @property
    def state(self) -> SessionState:
        return self._state

    def set(self, state: SessionState) -> SessionState:
        """Persist `state`, then make it current. A failed write leaves the old state in place."""
        state = replace(state, loaded=True)
        with self._lock:
            try:
                self._write(state)
            except OSError as e:
                raise ForumError(f"Could not save session to {self.path}: {e}") from e
            self._state = state
        return state

    def clear(self) -> SessionState:
        """Log out: every field back to None, `loaded` stays True."""
        logger.info("Clearing session for %s.", self._state.handle or self._state.did or "<anonymous>")
        return self.set(empty_session())

    # ---------- persistence ----------

    def _read(self) -> SessionState:
        if self.path is None or not self.path.exists():
            return empty_session()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            stored = data[STORAGE_KEY]
            if not isinstance(stored, dict):
                raise ValueError("stored session is not an object")
            state = SessionState.from_persisted(stored)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable session file %s (%s). Starting logged out.", self.path, e)
            return empty_session()

        logger.info("Session restored from %s (%s).", self.path, state.handle or state.did or "logged out")
        return state

    def _write(self, state: SessionState) -> None:
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({STORAGE_KEY: state.to_persisted()}, f, ensure_ascii=False, separators=(",", ":"))
            os.replace(tmp, self.path)  # atomic on POSIX
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)
        logger.debug("Session saved to %s", self.path)
