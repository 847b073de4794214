"""Exception hierarchy for the barcode agent."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AgentError(Exception):
    """Base class for all agent errors."""


class BackendError(AgentError):
    """The backend answered, but with an HTTP error status."""

    def __init__(self, status: int, payload: Optional[Dict[str, Any]] = None, message: Optional[str] = None):
        self.status = status
        self.payload: Dict[str, Any] = payload or {}
        detail = message or self.payload.get("error") or f"HTTP {status}"
        super().__init__(str(detail))

    @property
    def error(self) -> str:
        return str(self.payload.get("error") or self)

    @property
    def tts_message(self) -> Optional[str]:
        return self.payload.get("tts_message")


class BackendUnavailableError(AgentError):
    """The backend could not be reached (connection failure or timeout)."""


class RegistrationError(AgentError):
    """Device registration failed; the agent cannot continue."""


class InvalidTransitionError(AgentError):
    """A lifecycle transition outside the allowed table was requested."""


__all__ = [
    "AgentError",
    "BackendError",
    "BackendUnavailableError",
    "RegistrationError",
    "InvalidTransitionError",
]
