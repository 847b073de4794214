"""
Device Identity - persisted credentials and the latest backend config.

``DeviceContext`` is constructed once at startup and handed to every
component that needs the device id, the auth token or the scanner path.
Only the lifecycle controller (and backend calls made on its behalf)
mutate it; everything else reads.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles

from .logging_utils import get_module_logger
from .scanner.protocol import DEFAULT_DEVICE_PATH

logger = get_module_logger("DeviceIdentity")


@dataclass
class DeviceIdentity:
    """The installation's stable id plus the credential issued at registration."""
    device_id: str
    auth_token: Optional[str] = None

    @classmethod
    def generate(cls) -> "DeviceIdentity":
        return cls(device_id=str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {"device_id": self.device_id, "auth_token": self.auth_token}


@dataclass
class DeviceConfig:
    """Backend-side settings for this device, as of the last successful fetch."""
    is_approved: bool = False
    usb_device_path: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DeviceConfig":
        extra = {k: v for k, v in payload.items() if k not in ("is_approved", "usb_device_path")}
        return cls(
            is_approved=payload.get("is_approved") is True,
            usb_device_path=payload.get("usb_device_path") or None,
            extra=extra,
        )


class IdentityStore:
    """Reads and writes the identity JSON document."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._write_lock = asyncio.Lock()
        self.write_count = 0

    async def load(self) -> Optional[DeviceIdentity]:
        """Return the stored identity, or None if missing or unusable."""
        if not await asyncio.to_thread(self.path.exists):
            return None

        try:
            async with aiofiles.open(self.path, 'r', encoding='utf-8') as f:
                data = json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.error("Error loading identity %s: %s", self.path, e)
            return None

        device_id = data.get("device_id") if isinstance(data, dict) else None
        if not device_id:
            logger.warning("Identity file %s has no device_id, ignoring it", self.path)
            return None
        return DeviceIdentity(device_id=str(device_id), auth_token=data.get("auth_token") or None)

    async def save(self, identity: DeviceIdentity) -> None:
        """Replace the stored identity atomically.

        The document is written to a temp file in the same directory, synced
        and renamed over the old one, so a crash mid-write leaves the previous
        identity intact.
        """
        text = json.dumps(identity.to_dict(), indent=2)
        async with self._write_lock:
            await asyncio.to_thread(self._write_atomic, text)
            self.write_count += 1
        logger.debug("Saved identity to %s", self.path)

    def _write_atomic(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=str(self.path.parent),
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())

            os.replace(tmp_path, self.path)
            tmp_path = None
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except FileNotFoundError:
                    pass


class DeviceContext:
    """Shared session state: identity, latest backend config and defaults."""

    def __init__(self, store: IdentityStore, default_device_path: str = DEFAULT_DEVICE_PATH):
        self.store = store
        self.default_device_path = default_device_path
        self._identity: Optional[DeviceIdentity] = None
        self._config: Optional[DeviceConfig] = None

    @property
    def identity(self) -> DeviceIdentity:
        if self._identity is None:
            raise RuntimeError("Device identity has not been loaded")
        return self._identity

    @property
    def device_id(self) -> str:
        return self.identity.device_id

    @property
    def auth_token(self) -> Optional[str]:
        return self._identity.auth_token if self._identity else None

    @property
    def config(self) -> Optional[DeviceConfig]:
        return self._config

    @property
    def is_approved(self) -> bool:
        return self._config is not None and self._config.is_approved

    @property
    def usb_device_path(self) -> str:
        if self._config and self._config.usb_device_path:
            return self._config.usb_device_path
        return self.default_device_path

    async def ensure_identity(self) -> DeviceIdentity:
        """Load the persisted identity, generating and saving one if absent."""
        identity = await self.store.load()
        if identity is None:
            identity = DeviceIdentity.generate()
            await self.store.save(identity)
            logger.info("Generated new device ID: %s", identity.device_id)
        else:
            logger.info("Using existing device ID: %s", identity.device_id)
        self._identity = identity
        return identity

    async def set_auth_token(self, token: str) -> None:
        """Store a newly issued token and persist it if it changed."""
        identity = self.identity
        if identity.auth_token == token:
            return
        identity.auth_token = token
        await self.store.save(identity)

    def update_config(self, config: DeviceConfig) -> None:
        self._config = config


__all__ = ["DeviceIdentity", "DeviceConfig", "IdentityStore", "DeviceContext"]
