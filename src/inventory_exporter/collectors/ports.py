"""Open and firewall-authorized ports collector."""

import logging
from typing import Callable, Dict, Optional

import psutil
from prometheus_client import CollectorRegistry, Gauge

from ..firewalld import FirewallDClient, FirewallError
from ..parsing import interface_for_address, protocol_name, split_port_protocol

logger = logging.getLogger(__name__)

FirewallFactory = Callable[[], FirewallDClient]


def get_process_name(pid: Optional[int], cache: Optional[Dict[int, str]] = None) -> str:
    """
    Resolve a process name from its PID.

    Args:
        pid: Process ID (0 or None for kernel-owned sockets)
        cache: Optional per-pass cache of already resolved names

    Returns:
        Process name, or "" if the PID is unset or the process is gone
    """
    if not pid:
        return ""
    if cache is not None and pid in cache:
        return cache[pid]

    try:
        name = psutil.Process(pid).name()
    except psutil.Error:
        # Process exited or belongs to another user
        name = ""

    if cache is not None:
        cache[pid] = name
    return name


class PortCollector:
    """Publishes ports_open_info and ports_authorized_info."""

    def __init__(
        self,
        registry: CollectorRegistry,
        firewall_factory: Optional[FirewallFactory] = None,
        resolve_interfaces: bool = False,
    ):
        self.firewall_factory = firewall_factory or FirewallDClient.open_system_bus
        self.resolve_interfaces = resolve_interfaces

        self.open_ports = Gauge(
            "ports_open_info",
            "Information about open ports",
            ["protocol", "port", "address", "pid", "process", "interface"],
            registry=registry,
        )
        self.authorized_ports = Gauge(
            "ports_authorized_info",
            "Information about authorized ports (e.g., firewalld)",
            ["port", "protocol", "zone"],
            registry=registry,
        )

    def reset(self) -> None:
        """Drop every open and authorized port label set."""
        self.open_ports.clear()
        self.authorized_ports.clear()

    def collect(self) -> None:
        """
        Collect open ports, then authorized ports.

        Each source is independent: a failure is logged and the other source
        still runs. Nothing is raised to the caller.
        """
        try:
            self.collect_open_ports()
        except (OSError, psutil.Error) as e:
            logger.error(f"Failed to collect open ports: {e}")

        try:
            self.collect_authorized_ports()
        except FirewallError as e:
            logger.error(f"Failed to collect authorized ports: {e}")

    def collect_open_ports(self) -> int:
        """
        Publish one label set per live TCP/UDP socket.

        Returns:
            Number of connections seen
        """
        connections = psutil.net_connections(kind="inet")
        names: Dict[int, str] = {}

        for conn in connections:
            if conn.laddr:
                address, port = conn.laddr.ip, conn.laddr.port
            else:
                address, port = "", 0
            pid = conn.pid or 0

            interface = interface_for_address(address) if self.resolve_interfaces else ""

            self.open_ports.labels(
                protocol=protocol_name(conn.type),
                port=str(port),
                address=address,
                pid=str(pid),
                process=get_process_name(pid, names),
                interface=interface,
            ).set(1)

        return len(connections)

    def collect_authorized_ports(self) -> int:
        """
        Publish the ports authorized in each firewalld zone.

        Returns:
            Number of authorized port entries published

        Raises:
            FirewallError: If the bus or the zone list is unavailable
        """
        count = 0

        with self.firewall_factory() as firewall:
            zones = firewall.get_zones()

            for zone in zones:
                try:
                    entries = firewall.get_zone_ports(zone)
                except FirewallError as e:
                    logger.warning(f"Failed to list ports for zone {zone}: {e}")
                    continue

                for entry in entries:
                    parsed = split_port_protocol(entry)
                    if parsed is None:
                        logger.warning(f"Invalid port format: {entry}")
                        continue
                    port, protocol = parsed
                    self.authorized_ports.labels(port=port, protocol=protocol, zone=zone).set(1)
                    count += 1

        return count
