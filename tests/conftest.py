"""Shared pytest configuration and fixtures for the barcode agent test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring a physical scanner"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical scanner",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def clean_agent_env(monkeypatch):
    """Keep the developer's BACKEND_URL/TEST_MODE/etc. out of the tests."""
    for name in ("BACKEND_URL", "LOG_LEVEL", "TEST_MODE", "BARCODE_AGENT_STATE_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def identity_path(tmp_path) -> Path:
    """Location for a throwaway identity document."""
    return tmp_path / "state" / "device.json"


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_scanner():
    """A scripted serial scanner (no port opened)."""
    from tests.infrastructure.mocks.serial_mocks import MockScannerDevice
    return MockScannerDevice()


@pytest.fixture
def mock_serial_factory(mock_scanner):
    """serial.Serial replacement that hands out ``mock_scanner``."""
    from tests.infrastructure.mocks.serial_mocks import MockSerialFactory
    return MockSerialFactory(mock_scanner)


@pytest.fixture
def fake_backend():
    """In-memory device management backend (not yet serving)."""
    from tests.infrastructure.mocks.backend_mocks import FakeBackend
    return FakeBackend()
