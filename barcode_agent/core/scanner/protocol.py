"""
Scanner Protocol Constants

Serial parameters, LED feedback command bytes and the echo signature the
scanner sends back after it has flashed its LED.
"""

from enum import Enum

import serial

# =============================================================================
# Serial link
# =============================================================================

DEFAULT_BAUDRATE = 9600
DEFAULT_BYTESIZE = serial.EIGHTBITS
DEFAULT_PARITY = serial.PARITY_NONE
DEFAULT_STOPBITS = serial.STOPBITS_ONE
DEFAULT_WRITE_TIMEOUT = 1.0

# A frame ends once the line has been quiet this long (seconds)
DEFAULT_FRAME_INTERVAL = 0.05

DEFAULT_DEVICE_PATH = '/dev/ttyACM0'

# Device name prefixes reported at registration time
SERIAL_DEVICE_PREFIXES = ('ttyACM', 'ttyUSB')

# =============================================================================
# LED feedback
# =============================================================================

# Flash-LED command understood by the scanner, followed by its data string
LED_COMMAND = bytes([0x16, 0x4D, 0x0D])
LED_DATA = b'AISGDT10.'

# The scanner echoes the command back; frames containing this are not scans
LED_ECHO_SIGNATURE = 'AISGDT10'

# =============================================================================
# Test substitutes
# =============================================================================

DEFAULT_HTTP_HOST = '0.0.0.0'
DEFAULT_HTTP_PORT = 8080
HTTP_SCAN_PATH = '/scan'


class ScannerMode(Enum):
    """Where barcodes come from."""
    HARDWARE = "hardware"
    STDIN = "stdin"
    HTTP = "http"

    @classmethod
    def parse(cls, value: object) -> "ScannerMode":
        """Map a TEST_MODE style value ("false", "stdin", "http") to a mode."""
        if isinstance(value, ScannerMode):
            return value
        text = str(value or "").strip().lower()
        if text in ("", "false", "0", "no", "off", "hardware"):
            return cls.HARDWARE
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown test mode '{value}'") from None

    @property
    def is_substitute(self) -> bool:
        return self is not ScannerMode.HARDWARE


class FeedbackPattern(Enum):
    """Symbolic LED patterns. All share the same wire command."""
    PROCESSING = "processing"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
