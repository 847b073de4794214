import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence, TextIO

from barcode_agent.core import (
    AgentConfig,
    AgentController,
    BackgroundScheduler,
    BarcodeProcessor,
    DeviceContext,
    IdentityStore,
)
from barcode_agent.core.backend import BackendSession
from barcode_agent.core.logging_config import configure_logging
from barcode_agent.core.logging_utils import get_module_logger
from barcode_agent.core.paths import CONFIG_PATH, ensure_directories
from barcode_agent.core.scanner import ScannerLink, new_event_queue, probe_serial_devices
from barcode_agent.core.scanner.link import TransportFactory


logger = get_module_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Flags left unset fall through to the environment, then config.txt.
    """
    parser = argparse.ArgumentParser(
        description="Barcode agent - forwards USB scanner reads to the inventory backend"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to config.txt (default: project root)"
    )

    parser.add_argument(
        "--backend-url",
        type=str,
        default=None,
        help="Backend base URL (default: http://localhost:3000)"
    )

    parser.add_argument(
        "--log-level",
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default=None,
        help="Logging level (default: info)"
    )

    parser.add_argument(
        "--test-mode",
        choices=['false', 'stdin', 'http'],
        default=None,
        help="Read barcodes from stdin or an HTTP listener instead of the scanner"
    )

    parser.add_argument(
        "--identity-file",
        type=Path,
        default=None,
        help="Where the device id and auth token are stored"
    )

    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=None,
        help="Also log to console"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only"
    )

    return parser.parse_args(argv)


def build_controller(
    config: AgentConfig,
    *,
    transport_factory: Optional[TransportFactory] = None,
    stdin: Optional[TextIO] = None,
    probe=probe_serial_devices,
) -> AgentController:
    """Wire up one agent session from ``config``."""
    events = new_event_queue()
    context = DeviceContext(IdentityStore(config.identity_path), config.default_device_path)
    session = BackendSession(context, config.backend_url, timeout=config.request_timeout)
    link = ScannerLink(
        events,
        config.test_mode,
        baudrate=config.baudrate,
        frame_interval=config.frame_interval,
        http_host=config.http_host,
        http_port=config.http_port,
        transport_factory=transport_factory,
        stdin=stdin,
    )
    processor = BarcodeProcessor(session, link)
    scheduler = BackgroundScheduler(
        session,
        context,
        heartbeat_interval=config.heartbeat_interval,
        config_poll_interval=config.config_poll_interval,
    )
    return AgentController(config, context, session, link, events, processor, scheduler, probe=probe)


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the barcode agent.

    Shutdown Sequence:
    1. SIGINT/SIGTERM calls AgentController.request_shutdown()
    2. The controller leaves whatever phase it is in
    3. Its ShutdownCoordinator runs the cleanup steps once, in order
    4. The exit status is returned (0 graceful, 1 fatal)
    """
    args = parse_args(argv)
    config = AgentConfig.load(args.config, args=args)

    ensure_directories()

    configure_logging(
        config.log_level,
        force=True,
        console=config.console_output,
        log_file=config.log_file,
    )
    logger.info("Log file: %s", config.log_file)
    logger.info("Identity file: %s", config.identity_path)

    controller = build_controller(config)

    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.request_shutdown, sig.name)
            installed.append(sig)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler

    try:
        return await controller.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def run(argv: Optional[Sequence[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
