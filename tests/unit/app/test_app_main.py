"""Tests for command-line parsing and controller wiring."""

from pathlib import Path

import pytest

from barcode_agent.app.main import build_controller, parse_args
from barcode_agent.core.config import AgentConfig
from barcode_agent.core.lifecycle import AgentState
from barcode_agent.core.paths import CONFIG_PATH
from barcode_agent.core.scanner import ScannerMode


class TestParseArgs:

    def test_defaults_fall_through(self):
        args = parse_args([])

        assert args.config == CONFIG_PATH
        assert args.backend_url is None
        assert args.log_level is None
        assert args.test_mode is None
        assert args.identity_file is None
        assert args.console_output is None

    def test_flags(self, tmp_path):
        args = parse_args([
            "--backend-url", "http://inventory.local:8080/",
            "--log-level", "debug",
            "--test-mode", "http",
            "--identity-file", str(tmp_path / "id.json"),
            "--no-console",
        ])

        assert args.backend_url == "http://inventory.local:8080/"
        assert args.log_level == "debug"
        assert args.test_mode == "http"
        assert args.identity_file == tmp_path / "id.json"
        assert args.console_output is False

    def test_unknown_test_mode_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["--test-mode", "bluetooth"])

    def test_args_override_file_and_env(self, tmp_path):
        args = parse_args(["--backend-url", "http://cli:1/", "--test-mode", "stdin"])

        config = AgentConfig.from_sources(
            {"backend_url": "http://file:2", "log_level": "warning"},
            environ={"BACKEND_URL": "http://env:3"},
            args=args,
        )

        assert config.backend_url == "http://cli:1"
        assert config.test_mode is ScannerMode.STDIN
        assert config.log_level == "warning"


class TestBuildController:

    def test_wiring_follows_config(self, identity_path):
        config = AgentConfig(
            backend_url="http://backend:3000",
            test_mode=ScannerMode.HTTP,
            http_port=9123,
            frame_interval=0.2,
            heartbeat_interval=42,
            config_poll_interval=43,
            default_device_path="/dev/ttyUSB3",
            identity_path=identity_path,
        )

        controller = build_controller(config)

        assert controller.state is AgentState.INIT
        assert controller.session.base_url == "http://backend:3000"
        assert controller.link.mode is ScannerMode.HTTP
        assert controller.link.http_port == 9123
        assert controller.link.frame_interval == 0.2
        assert controller.link.events is controller.events
        assert controller.scheduler.heartbeat.interval == 42
        assert controller.scheduler.config_refresh.interval == 43
        assert controller.context.usb_device_path == "/dev/ttyUSB3"
        assert Path(controller.context.store.path) == identity_path
