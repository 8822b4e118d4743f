"""Collection engine: serialised reset-and-repopulate passes."""

import logging
import threading
import time
from functools import partial
from typing import Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from .collectors import CollectionError, PackageCollector, PortCollector
from .collectors.ports import FirewallFactory
from .config import ExporterConfig
from .firewalld import FirewallDClient

logger = logging.getLogger(__name__)


class CollectionEngine:
    """
    Owns the metric registry and both collectors.

    Every pass (periodic or on demand) and every exposition read runs under
    the same lock, so a scrape sees either the previous snapshot or the new
    one, never a half-reset gauge.
    """

    def __init__(
        self,
        config: ExporterConfig,
        registry: Optional[CollectorRegistry] = None,
        firewall_factory: Optional[FirewallFactory] = None,
    ):
        self.config = config
        self.registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.Lock()

        self.package_collector = PackageCollector(
            self.registry,
            exclude_packages=config.exclude_packages,
            command_timeout=config.command_timeout,
        )

        if firewall_factory is None:
            firewall_factory = partial(FirewallDClient.open_system_bus, timeout=config.dbus_timeout)

        self.port_collector = PortCollector(
            self.registry,
            firewall_factory=firewall_factory,
            resolve_interfaces=config.resolve_interfaces,
        )

    def run_pass(self) -> None:
        """
        Reset every gauge and collect packages, then ports.

        Raises:
            CollectionError: If the package step fails; ports are then left
                empty for this pass
        """
        with self._lock:
            logger.info("Starting collection pass...")
            start_time = time.time()

            self.package_collector.reset()
            self.port_collector.reset()

            try:
                self.package_collector.collect()
            except CollectionError as e:
                logger.error(f"Failed to collect installed packages: {e}")
                raise

            self.port_collector.collect()

            logger.info(f"Collection pass finished in {time.time() - start_time:.2f}s")

    def render(self) -> Tuple[bytes, str]:
        """Return the text exposition of the current snapshot and its content type."""
        with self._lock:
            return generate_latest(self.registry), CONTENT_TYPE_LATEST

    def start_periodic(self, interval: float, stop_event: threading.Event) -> threading.Thread:
        """
        Run a pass every ``interval`` seconds on a background thread.

        The loop exits once ``stop_event`` is set. A pass already running is
        allowed to finish.

        Args:
            interval: Seconds between passes
            stop_event: Cancellation signal

        Returns:
            The started thread
        """
        thread = threading.Thread(
            target=self._periodic_loop,
            args=(interval, stop_event),
            name="collection-loop",
            daemon=True,
        )
        thread.start()
        return thread

    def _periodic_loop(self, interval: float, stop_event: threading.Event) -> None:
        logger.info(f"Periodic collection every {interval}s")
        # Fixed-rate schedule: ticks missed during a long pass are dropped
        next_tick = time.monotonic() + interval
        while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.run_pass()
            except CollectionError as e:
                logger.error(f"Periodic collection failed: {e}")
            except Exception as e:
                logger.error(f"Unexpected error during periodic collection: {e}")

            next_tick += interval
            now = time.monotonic()
            if next_tick <= now:
                next_tick += ((now - next_tick) // interval + 1) * interval
        logger.info("Periodic collection stopped")
