"""Unit test fixtures for isolated, fast test execution.

The root conftest provides the mock scanner, the serial factory and the
fake backend. This file adds ready-made agent building blocks on top.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from barcode_agent.core.backend.models import BarcodeResponse, RegistrationResponse
from barcode_agent.core.identity import DeviceConfig, DeviceContext, DeviceIdentity, IdentityStore
from barcode_agent.core.scanner.protocol import ScannerMode


@pytest.fixture
def device_context(identity_path) -> DeviceContext:
    """Context with an identity already loaded (no token)."""
    context = DeviceContext(IdentityStore(identity_path))
    context._identity = DeviceIdentity(device_id="device-1")
    return context


@pytest.fixture
def mock_session() -> MagicMock:
    """BackendSession double whose calls all succeed."""
    session = MagicMock()
    session.register = AsyncMock(return_value=RegistrationResponse(auth_token="token-123", status="pending"))
    session.fetch_config = AsyncMock(return_value=DeviceConfig(is_approved=True))
    session.send_heartbeat = AsyncMock(return_value=None)
    session.submit_barcode = AsyncMock(return_value=BarcodeResponse(success=True))
    session.log_event = AsyncMock(return_value=True)
    session.close = AsyncMock(return_value=None)
    return session


@pytest.fixture
def mock_link() -> MagicMock:
    """ScannerLink double that records feedback patterns."""
    link = MagicMock()
    link.mode = ScannerMode.HARDWARE
    link.is_connected = True
    link.open = AsyncMock(return_value=True)
    link.close = AsyncMock(return_value=None)
    link.send_feedback = AsyncMock(return_value=True)
    return link
