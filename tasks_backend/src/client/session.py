from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]


@dataclass(frozen=True)
class SessionState:
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.user is not None


class Session:
    """
    The single holder of the client's credentials.

    - `set(user, token)` after login/register, `clear()` on logout or a 401
    - optionally persisted as JSON at `path` so it survives restarts
    - listeners registered with `subscribe` are called after every change
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._state = SessionState()
        self._listeners: List[SessionListener] = []
        self._load()

    # ---- public API ----

    def get(self) -> SessionState:
        return self._state

    @property
    def token(self) -> Optional[str]:
        return self._state.token

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self._state.user

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    def set(self, user: Dict[str, Any], token: str) -> None:
        self._state = SessionState(token=token, user=dict(user))
        self._save()
        self._notify()

    def clear(self) -> None:
        if self._state == SessionState():
            return
        self._state = SessionState()
        self._save()
        self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register `listener`; returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- persistence ----

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self._path)
            return
        token = data.get("token") if isinstance(data, dict) else None
        user = data.get("user") if isinstance(data, dict) else None
        if isinstance(token, str) and isinstance(user, dict):
            self._state = SessionState(token=token, user=user)

    def _save(self) -> None:
        if self._path is None:
            return
        if not self._state.is_authenticated:
            self._path.unlink(missing_ok=True)
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"token": self._state.token, "user": self._state.user}
        # Holds a bearer token: owner read/write only, set before the token lands.
        self._path.touch(mode=0o600, exist_ok=True)
        self._path.chmod(0o600)
        self._path.write_text(json.dumps(payload), encoding="utf-8")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Session listener failed")
