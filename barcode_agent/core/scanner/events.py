"""Events published by the scanner link to whoever owns its queue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LinkEventType(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    BARCODE = "barcode"
    ERROR = "error"


@dataclass(frozen=True)
class LinkEvent:
    type: LinkEventType
    barcode: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def connected(cls) -> "LinkEvent":
        return cls(LinkEventType.CONNECTED)

    @classmethod
    def disconnected(cls) -> "LinkEvent":
        return cls(LinkEventType.DISCONNECTED)

    @classmethod
    def scanned(cls, barcode: str) -> "LinkEvent":
        return cls(LinkEventType.BARCODE, barcode=barcode)

    @classmethod
    def failed(cls, error: BaseException) -> "LinkEvent":
        return cls(LinkEventType.ERROR, error=error)


def new_event_queue() -> asyncio.Queue:
    """Unbounded channel from the link to the lifecycle controller."""
    return asyncio.Queue()


__all__ = ["LinkEvent", "LinkEventType", "new_event_queue"]
