"""
Scanner package.

The link frames raw serial bytes into barcodes, sends LED feedback and
falls back to stdin/HTTP sources in test mode.
"""

from .discovery import probe_serial_devices
from .events import LinkEvent, LinkEventType, new_event_queue
from .link import ScannerLink
from .protocol import FeedbackPattern, ScannerMode

__all__ = [
    "FeedbackPattern",
    "LinkEvent",
    "LinkEventType",
    "ScannerLink",
    "ScannerMode",
    "new_event_queue",
    "probe_serial_devices",
]
