"""Panel error taxonomy.

Every failure the operator can see is one of these. None of them is fatal to
the process; only losing the session token resets the panel.
"""

from __future__ import annotations

from typing import List, Optional


class PanelError(RuntimeError):
    pass


class AuthError(PanelError):
    """Login rejected (bad credentials)."""


class Unauthenticated(AuthError):
    """Session missing or expired (HTTP 401, or no token to send)."""


class RemoteError(PanelError):
    """Network error, timeout, non-2xx answer or malformed payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class ValidationError(PanelError):
    """Engine reported configuration rule violations; the save was not sent."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Configuration has errors: " + "; ".join(self.errors) if self.errors else "Configuration is invalid")


class PreconditionError(PanelError):
    """Action attempted in a state that does not allow it. Nothing was sent."""
