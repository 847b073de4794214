"""Response shapes returned by the backend session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RegistrationResponse:
    auth_token: str
    status: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RegistrationResponse":
        return cls(auth_token=str(payload.get("auth_token") or ""), status=payload.get("status"))


@dataclass(frozen=True)
class BarcodeResponse:
    success: bool
    error: Optional[str] = None
    tts_message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BarcodeResponse":
        return cls(
            success=payload.get("success") is True,
            error=payload.get("error"),
            tts_message=payload.get("tts_message"),
        )


__all__ = ["RegistrationResponse", "BarcodeResponse"]
