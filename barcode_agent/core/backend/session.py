"""
Backend Session - JSON/HTTP client for the device management backend.

Stateless request/response wrapper around an ``aiohttp.ClientSession``.
The bearer token and device id are read from the shared ``DeviceContext``
on every request, so a token issued mid-run is picked up immediately.

Error mapping:
- connection failures and timeouts raise ``BackendUnavailableError``
- HTTP error statuses raise ``BackendError`` carrying the JSON payload
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Sequence

import aiohttp

from ..errors import BackendError, BackendUnavailableError, RegistrationError
from ..identity import DeviceConfig, DeviceContext
from ..logging_utils import get_module_logger
from .models import BarcodeResponse, RegistrationResponse

logger = get_module_logger("BackendSession")

REGISTER_PATH = "/api/devices/register"
CONFIG_PATH = "/api/devices/config"
HEARTBEAT_PATH = "/api/devices/heartbeat"
BARCODE_PATH = "/api/items/barcode"
EVENTS_PATH = "/api/devices/events"

DEFAULT_TIMEOUT = 30.0


class BackendSession:
    """Client for the register / config / heartbeat / barcode / events API."""

    def __init__(
        self,
        context: DeviceContext,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the session.

        Args:
            context: Shared device context (device id and auth token)
            base_url: Backend root, e.g. 'http://localhost:3000'
            timeout: Ceiling for a whole request in seconds
            http_session: Optional pre-built aiohttp session (tests)
        """
        self.context = context
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_session
        self._owns_http = http_session is None
        self._closed = False

    # =========================================================================
    # Plumbing
    # =========================================================================

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _get_http(self) -> aiohttp.ClientSession:
        # Never reopen after close(); a new session here would leak
        if self._closed:
            raise BackendUnavailableError("Backend session is closed")
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_http = True
        return self._http

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.context.auth_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._get_http().request(method, url, json=body, headers=self._headers()) as resp:
                payload = await self._read_payload(resp)
                if resp.status >= 400:
                    raise BackendError(resp.status, payload)
                return payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            message = str(e) or type(e).__name__
            raise BackendUnavailableError(f"{method} {path} failed: {message}") from e

    @staticmethod
    async def _read_payload(resp: aiohttp.ClientResponse) -> Dict[str, Any]:
        try:
            data = await resp.json(content_type=None)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def close(self) -> None:
        """Close the underlying HTTP session if this object created it.

        Later requests fail with ``BackendUnavailableError``.
        """
        self._closed = True
        if self._http is not None and self._owns_http and not self._http.closed:
            await self._http.close()
        self._http = None

    # =========================================================================
    # API
    # =========================================================================

    async def register(self, usb_devices: Sequence[str] = ()) -> RegistrationResponse:
        """Register this device. Any failure is a ``RegistrationError``."""
        device_id = self.context.device_id
        logger.info("Registering device: %s", device_id)
        try:
            payload = await self._request("POST", REGISTER_PATH, {
                "device_id": device_id,
                "usb_devices": list(usb_devices),
            })
        except (BackendError, BackendUnavailableError) as e:
            logger.error("Registration failed: %s", e)
            raise RegistrationError(str(e)) from e

        result = RegistrationResponse.from_payload(payload)
        if not result.auth_token:
            logger.error("Registration response did not contain an auth token")
            raise RegistrationError("Registration response did not contain an auth token")

        logger.info("Device registered successfully. Status: %s", result.status)
        return result

    async def fetch_config(self) -> DeviceConfig:
        payload = await self._request("GET", CONFIG_PATH)
        config = DeviceConfig.from_payload(payload)
        logger.info("Device config fetched. Approved: %s", config.is_approved)
        return config

    async def send_heartbeat(self, status: str = "online") -> None:
        await self._request("POST", HEARTBEAT_PATH, {"status": status})
        logger.debug("Heartbeat sent (%s)", status)

    async def submit_barcode(self, barcode: str) -> BarcodeResponse:
        """
        Send a scanned barcode.

        Application-level failures (HTTP error with a JSON body) come back as
        an unsuccessful ``BarcodeResponse``; an unreachable backend raises
        ``BackendUnavailableError``.
        """
        logger.info("Sending barcode: %s", barcode)
        try:
            payload = await self._request("POST", BARCODE_PATH, {
                "barcode": barcode,
                "device_id": self.context.device_id,
            })
        except BackendError as e:
            logger.error("Barcode processing failed: %s", e.error)
            return BarcodeResponse(success=False, error=e.error, tts_message=e.tts_message)

        result = BarcodeResponse.from_payload(payload)
        logger.info("Barcode processed: %s", "success" if result.success else "not found")
        if result.tts_message:
            logger.info("TTS message: %s", result.tts_message)
        return result

    async def log_event(
        self,
        event_type: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record an event on the backend. Best-effort: never raises.

        Returns:
            True if the backend accepted the event
        """
        if self._closed:
            logger.debug("Session closed, dropping event: %s - %s", event_type, message)
            return False
        try:
            await self._request("POST", EVENTS_PATH, {
                "type": event_type,
                "message": message,
                "metadata": metadata,
                "device_id": self.context.device_id,
            })
        except (BackendError, BackendUnavailableError) as e:
            logger.debug("Failed to log event: %s", e)
            return False

        logger.debug("Event logged: %s - %s", event_type, message)
        return True


__all__ = ["BackendSession"]
