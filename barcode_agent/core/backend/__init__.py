"""Client for the device management backend."""

from .models import BarcodeResponse, RegistrationResponse
from .session import BackendSession

__all__ = ["BackendSession", "BarcodeResponse", "RegistrationResponse"]
