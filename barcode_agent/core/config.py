"""Typed configuration for the barcode agent."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .config_manager import get_config_manager
from .paths import CONFIG_PATH, IDENTITY_FILE, LOG_FILE
from .scanner.protocol import (
    DEFAULT_BAUDRATE,
    DEFAULT_DEVICE_PATH,
    DEFAULT_FRAME_INTERVAL,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    ScannerMode,
)

# Environment variables recognised on top of config.txt
ENV_BACKEND_URL = "BACKEND_URL"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_TEST_MODE = "TEST_MODE"


@dataclass(slots=True)
class AgentConfig:
    """Settings for one agent process. Built once at startup."""

    # Backend
    backend_url: str = "http://localhost:3000"
    request_timeout: float = 30.0

    # Logging
    log_level: str = "info"
    console_output: bool = True
    log_file: Path = field(default_factory=lambda: LOG_FILE)

    # Scanner
    test_mode: ScannerMode = ScannerMode.HARDWARE
    default_device_path: str = DEFAULT_DEVICE_PATH
    baudrate: int = DEFAULT_BAUDRATE
    frame_interval: float = DEFAULT_FRAME_INTERVAL
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT

    # Timers (seconds)
    heartbeat_interval: float = 300.0
    config_poll_interval: float = 300.0
    approval_poll_interval: float = 30.0
    reconnect_delay: float = 10.0

    # Persisted identity
    identity_path: Path = field(default_factory=lambda: IDENTITY_FILE)

    @classmethod
    def from_sources(
        cls,
        file_values: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        args: Any = None,
    ) -> "AgentConfig":
        """Layer defaults < config.txt values < environment < CLI arguments."""
        cm = get_config_manager()
        defaults = cls()
        values = dict(file_values or {})
        env = os.environ if environ is None else environ

        for env_key, config_key in (
            (ENV_BACKEND_URL, "backend_url"),
            (ENV_LOG_LEVEL, "log_level"),
            (ENV_TEST_MODE, "test_mode"),
        ):
            if env.get(env_key):
                values[config_key] = env[env_key]

        config = cls(
            backend_url=cm.get_str(values, "backend_url", defaults.backend_url).rstrip("/"),
            request_timeout=cm.get_float(values, "request_timeout", defaults.request_timeout),
            log_level=cm.get_str(values, "log_level", defaults.log_level).lower(),
            console_output=cm.get_bool(values, "console_output", defaults.console_output),
            log_file=Path(cm.get_str(values, "log_file", str(defaults.log_file))),
            test_mode=ScannerMode.parse(values.get("test_mode", defaults.test_mode)),
            default_device_path=cm.get_str(values, "default_device_path", defaults.default_device_path),
            baudrate=cm.get_int(values, "baudrate", defaults.baudrate),
            frame_interval=cm.get_float(values, "frame_interval", defaults.frame_interval),
            http_host=cm.get_str(values, "http_host", defaults.http_host),
            http_port=cm.get_int(values, "http_port", defaults.http_port),
            heartbeat_interval=cm.get_float(values, "heartbeat_interval", defaults.heartbeat_interval),
            config_poll_interval=cm.get_float(values, "config_poll_interval", defaults.config_poll_interval),
            approval_poll_interval=cm.get_float(values, "approval_poll_interval", defaults.approval_poll_interval),
            reconnect_delay=cm.get_float(values, "reconnect_delay", defaults.reconnect_delay),
            identity_path=Path(cm.get_str(values, "identity_path", str(defaults.identity_path))),
        )

        if args is not None:
            config = config._apply_args_override(args)

        return config

    @classmethod
    def load(cls, config_path: Path = CONFIG_PATH, args: Any = None) -> "AgentConfig":
        """Read config.txt (if present), the environment and ``args``."""
        file_values = get_config_manager().read_config(config_path)
        return cls.from_sources(file_values, args=args)

    def _apply_args_override(self, args: Any) -> "AgentConfig":
        """Apply CLI argument overrides to config values."""
        values = asdict(self)

        arg_mappings = {
            "backend_url": "backend_url",
            "log_level": "log_level",
            "console_output": "console_output",
            "test_mode": "test_mode",
            "identity_file": "identity_path",
        }

        for arg_name, config_key in arg_mappings.items():
            if hasattr(args, arg_name):
                val = getattr(args, arg_name)
                if val is not None:
                    values[config_key] = val

        values["backend_url"] = str(values["backend_url"]).rstrip("/")
        values["test_mode"] = ScannerMode.parse(values["test_mode"])
        values["identity_path"] = Path(values["identity_path"])
        return AgentConfig(**values)

    def to_dict(self) -> dict[str, Any]:
        """Export config values as dictionary."""
        return asdict(self)


__all__ = ["AgentConfig", "ENV_BACKEND_URL", "ENV_LOG_LEVEL", "ENV_TEST_MODE"]
