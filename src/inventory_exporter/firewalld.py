"""D-Bus client for the firewalld service."""

import logging
from typing import Any, List, Optional, Sequence

from jeepney import DBusAddress, new_method_call
from jeepney.io.blocking import DBusConnection, open_dbus_connection
from jeepney.wrappers import DBusErrorResponse, unwrap_msg

logger = logging.getLogger(__name__)

FIREWALLD_BUS_NAME = "org.fedoraproject.FirewallD1"
FIREWALLD_OBJECT_PATH = "/org/fedoraproject/FirewallD1"
FIREWALLD_ZONE_INTERFACE = "org.fedoraproject.FirewallD1.zone"


class FirewallError(Exception):
    """Base exception for firewalld errors."""
    pass


class FirewallConnectionError(FirewallError):
    """The system bus could not be reached."""
    pass


class FirewallCallError(FirewallError):
    """A firewalld method call failed or returned an error reply."""
    pass


def format_port_entry(entry: Any) -> str:
    """
    Normalise a firewalld port entry to "port/protocol".

    firewalld returns ports as (port, protocol) pairs; plain strings are
    passed through untouched so malformed entries stay detectable downstream.
    """
    if isinstance(entry, str):
        return entry
    return "/".join(str(part) for part in entry)


class FirewallDClient:
    """Synchronous firewalld client over the system bus."""

    def __init__(self, connection: DBusConnection, timeout: float = 5.0):
        self.connection = connection
        self.timeout = timeout
        self.zone_address = DBusAddress(
            FIREWALLD_OBJECT_PATH,
            bus_name=FIREWALLD_BUS_NAME,
            interface=FIREWALLD_ZONE_INTERFACE,
        )

    @classmethod
    def open_system_bus(cls, timeout: float = 5.0) -> "FirewallDClient":
        """
        Connect to the system bus.

        Raises:
            FirewallConnectionError: If the bus is unavailable
        """
        try:
            connection = open_dbus_connection(bus="SYSTEM")
        except (OSError, KeyError, ValueError) as e:
            raise FirewallConnectionError(f"Cannot connect to system bus: {e}") from e
        return cls(connection, timeout=timeout)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "FirewallDClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _call(self, method: str, signature: Optional[str] = None, body: Sequence[Any] = ()) -> tuple:
        """
        Call a method on the firewalld zone interface.

        Args:
            method: Method name
            signature: D-Bus signature of the arguments
            body: Method arguments

        Returns:
            Reply body

        Raises:
            FirewallCallError: On error replies, timeouts or transport failures
        """
        message = new_method_call(self.zone_address, method, signature, tuple(body))
        try:
            reply = self.connection.send_and_get_reply(message, timeout=self.timeout)
            return unwrap_msg(reply)
        except DBusErrorResponse as e:
            raise FirewallCallError(f"{method} failed: {e.name}: {e.data}") from e
        except (OSError, TimeoutError) as e:
            raise FirewallCallError(f"{method} failed: {e}") from e

    def get_zones(self) -> List[str]:
        """List the configured firewall zones."""
        (zones,) = self._call("getZones")
        return list(zones)

    def get_zone_ports(self, zone: str) -> List[str]:
        """List the authorized ports of a zone as "port/protocol" strings."""
        (ports,) = self._call("getPorts", "s", (zone,))
        return [format_port_entry(entry) for entry in ports]
