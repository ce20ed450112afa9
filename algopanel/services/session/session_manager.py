"""Bearer session lifecycle (login, logout, invalidation on 401).

The token is the only process-wide mutable state the panel shares between
components. It is written here and nowhere else; every outgoing call reads it
at send time, so an invalidation is visible to the very next call.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from algopanel.infrastructure.engine.errors import AuthError
from algopanel.infrastructure.logging.logging import get_logger
from algopanel.infrastructure.utils.timeutils import utc_now


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


@dataclass
class SessionState:
    token: Optional[str] = None
    issued_at_iso: Optional[str] = None


Authenticator = Callable[[Credentials], Awaitable[str]]
InvalidationListener = Callable[[str], None]


class SessionManager:
    def __init__(self, token_path: Optional[Path] = None) -> None:
        self._logger = get_logger("session")
        self._path = token_path
        self._state = SessionState()
        self._generation = 0
        self._authenticate: Optional[Authenticator] = None
        self._listeners: List[InvalidationListener] = []
        self.load()

    @property
    def token(self) -> Optional[str]:
        return self._state.token

    @property
    def generation(self) -> int:
        """Changes every time a session starts or ends."""
        return self._generation

    @property
    def state(self) -> SessionState:
        return self._state

    def is_authenticated(self) -> bool:
        return self._state.token is not None

    def attach_authenticator(self, authenticate: Authenticator) -> None:
        self._authenticate = authenticate

    def add_listener(self, listener: InvalidationListener) -> None:
        self._listeners.append(listener)

    # ---- persistence ----
    def load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            self._logger.warning("session_file_unreadable", path=str(self._path), error=str(e))
            return
        token = data.get("token") if isinstance(data, dict) else None
        if token:
            self._state = SessionState(token=str(token), issued_at_iso=data.get("issued_at_iso"))
            self._generation += 1

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(self._state.__dict__, indent=2, sort_keys=True),
            encoding="utf-8",
        )

    def _forget_file(self) -> None:
        if self._path is not None and self._path.exists():
            self._path.unlink()

    # ---- lifecycle ----
    async def login(self, credentials: Credentials) -> str:
        """Exchange credentials for a token. Raises AuthError on rejection."""
        if self._authenticate is None:
            raise RuntimeError("No authenticator attached to the session manager")
        if not credentials.username or not credentials.password:
            raise AuthError("Username and password are required")

        token = await self._authenticate(credentials)
        if not token:
            raise AuthError("Login response did not contain an access token")

        self._state = SessionState(token=token, issued_at_iso=utc_now().isoformat())
        self._generation += 1
        self.save()
        self._logger.info("session_started", username=credentials.username, token_len=len(token))
        return token

    def logout(self) -> None:
        self.invalidate("logout")

    def invalidate(self, reason: str, generation: Optional[int] = None) -> bool:
        """Drop the token and notify listeners.

        `generation` is the session generation a failing request was sent under;
        a late 401 from an older session must not end a newer one.
        """
        if generation is not None and generation != self._generation:
            self._logger.debug("stale_invalidation_ignored", reason=reason, generation=generation)
            return False
        if self._state.token is None:
            return False

        self._state = SessionState()
        self._generation += 1
        self._forget_file()
        self._logger.warning("session_invalidated", reason=reason)

        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception as e:
                self._logger.error("session_listener_error", reason=reason, error=str(e))
        return True
