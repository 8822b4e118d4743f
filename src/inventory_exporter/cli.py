"""Command-line interface for the inventory exporter."""

import argparse
import logging
import platform
import signal
import sys
import threading

import distro

from . import __version__
from .collectors import CollectionError
from .config import DEFAULT_CONFIG_PATH, ConfigManager, ExporterConfig, parse_duration
from .engine import CollectionEngine
from .server import make_exporter_server

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("inventory-exporter")


def setup_logging(level: str) -> None:
    """Configure root logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_config(args: argparse.Namespace) -> ExporterConfig:
    """Load the config file, then apply command-line overrides."""
    config = ConfigManager(args.config).load_or_default()

    # Only override if explicitly provided
    if args.scrape_interval is not None:
        config.scrape_interval = args.scrape_interval
    if args.exclude_packages_file is not None:
        config.exclude_packages_file = args.exclude_packages_file
    if args.web_listen_address is not None:
        config.listen_address = args.web_listen_address
    if args.resolve_interfaces:
        config.resolve_interfaces = True
    if args.log_level is not None:
        config.log_level = args.log_level

    return config.load_exclusions()


def cmd_once(engine: CollectionEngine) -> int:
    """Run a single pass and print the exposition."""
    try:
        engine.run_pass()
    except CollectionError:
        return 1

    output, _ = engine.render()
    sys.stdout.write(output.decode("utf-8"))
    return 0


def cmd_serve(engine: CollectionEngine, config: ExporterConfig) -> int:
    """Collect periodically and serve /metrics until SIGINT or SIGTERM."""
    try:
        server = make_exporter_server(engine, config.listen_address)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot listen on {config.listen_address}: {e}")
        return 1

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    # First snapshot right away rather than after a full interval
    try:
        engine.run_pass()
    except CollectionError as e:
        logger.warning(f"Initial collection failed: {e}")

    loop = engine.start_periodic(config.scrape_interval, stop_event)

    server_thread = threading.Thread(target=server.serve_forever, name="http-server", daemon=True)
    server_thread.start()
    logger.info(f"Listening on {config.listen_address}")

    stop_event.wait()

    server.shutdown()
    server.server_close()
    loop.join()
    logger.info("Exporter stopped")
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Inventory exporter - installed packages and network ports as Prometheus metrics",
    )
    parser.add_argument("--version", action="version", version=f"inventory-exporter {__version__}")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"JSON configuration file (default: {DEFAULT_CONFIG_PATH}, optional)",
    )
    parser.add_argument(
        "--scrape-interval",
        type=parse_duration,
        help="Interval between collections (e.g. 15s, 5m, 12h; default 5m)",
    )
    parser.add_argument(
        "--exclude-packages-file",
        help="File listing package names to exclude, one per line",
    )
    parser.add_argument(
        "--web-listen-address",
        help="Address to listen on for /metrics and /refresh (default :9100)",
    )
    parser.add_argument(
        "--resolve-interfaces",
        action="store_true",
        help="Fill the interface label of open ports from local addresses",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default INFO)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect once, print metrics to stdout and exit",
    )

    args = parser.parse_args()

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        setup_logging("INFO")
        logger.error(f"Failed to load configuration: {e}")
        return 1

    setup_logging(config.log_level)

    os_name = distro.name() or platform.system()
    os_version = distro.version() or platform.release()
    logger.info(f"Starting inventory-exporter {__version__} on {os_name} {os_version}")
    if config.exclude_packages:
        logger.info(f"Excluding {len(config.exclude_packages)} packages")

    engine = CollectionEngine(config)

    if args.once:
        return cmd_once(engine)
    return cmd_serve(engine, config)


if __name__ == "__main__":
    sys.exit(main())
