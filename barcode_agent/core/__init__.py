from .config import AgentConfig
from .errors import (
    AgentError,
    BackendError,
    BackendUnavailableError,
    InvalidTransitionError,
    RegistrationError,
)
from .identity import DeviceConfig, DeviceContext, DeviceIdentity, IdentityStore
from .lifecycle import AgentController, AgentState
from .processor import BarcodeProcessor, ProcessingResult
from .scheduler import BackgroundScheduler
from .shutdown_coordinator import ShutdownCoordinator

__all__ = [
    'AgentConfig',
    'AgentController',
    'AgentError',
    'AgentState',
    'BackendError',
    'BackendUnavailableError',
    'BackgroundScheduler',
    'BarcodeProcessor',
    'DeviceConfig',
    'DeviceContext',
    'DeviceIdentity',
    'IdentityStore',
    'InvalidTransitionError',
    'ProcessingResult',
    'RegistrationError',
    'ShutdownCoordinator',
]
