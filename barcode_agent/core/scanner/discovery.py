"""Best-effort listing of attached USB serial devices, reported at registration."""

from __future__ import annotations

import asyncio
import os
from typing import List

import serial.tools.list_ports

from ..logging_utils import get_module_logger
from .protocol import SERIAL_DEVICE_PREFIXES

logger = get_module_logger("DeviceProbe")


def _is_scanner_candidate(device: str) -> bool:
    return os.path.basename(device).startswith(SERIAL_DEVICE_PREFIXES)


async def probe_serial_devices() -> List[str]:
    """
    Return the ``/dev/ttyACM*`` and ``/dev/ttyUSB*`` devices present now.

    Never raises; an enumeration failure yields an empty list.
    """
    try:
        ports = await asyncio.to_thread(serial.tools.list_ports.comports)
    except Exception as e:
        logger.error("Error listing USB devices: %s", e)
        return []

    devices = sorted(
        port.device for port in ports
        if port.device and _is_scanner_candidate(port.device)
    )
    logger.info("Found USB devices: %s", devices)
    return devices


__all__ = ["probe_serial_devices"]
