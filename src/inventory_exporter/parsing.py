"""Parsers for socket, process and firewall text encodings."""

import os
from typing import Optional, Tuple

import psutil


PROTOCOL_NAMES = {
    1: "tcp",  # SOCK_STREAM
    2: "udp",  # SOCK_DGRAM
}


def protocol_name(socket_type: int) -> str:
    """Map a socket type number to a protocol label ("unknown" if unmapped)."""
    return PROTOCOL_NAMES.get(int(socket_type), "unknown")


def split_address_port(addr_port: str) -> Tuple[str, str]:
    """
    Split an "address:port" string.

    Supports the IPv4 form ("10.0.0.1:22") and the bracketed IPv6 form
    ("[::1]:443").

    Args:
        addr_port: Combined address and port

    Returns:
        Tuple of (address, port), or ("", "") if the string matches neither form
    """
    if "[" in addr_port:
        parts = addr_port.split("]:")
        if len(parts) == 2:
            address = parts[0]
            if address.startswith("["):
                address = address[1:]
            return address, parts[1]
    else:
        parts = addr_port.split(":")
        if len(parts) == 2:
            return parts[0], parts[1]

    return "", ""


def split_pid_process(descriptor: str) -> Tuple[str, str]:
    """
    Extract the PID and executable name from a process descriptor.

    Handles descriptors such as ``users:(pid=123,exe="/usr/sbin/sshd")``.
    The executable is reduced to its base name.

    Args:
        descriptor: Process descriptor as printed by socket tools

    Returns:
        Tuple of (pid, process); missing fields are empty strings
    """
    if descriptor in ("", "-"):
        # No owning process
        return "", ""

    pid = ""
    process = ""

    if descriptor.startswith("users:("):
        descriptor = descriptor[len("users:("):]
        if descriptor.endswith(")"):
            descriptor = descriptor[:-1]

    for part in descriptor.split(","):
        part = part.strip()
        if part.startswith("pid="):
            pid = part[len("pid="):].strip('"')
        elif part.startswith("exe="):
            exe = part[len("exe="):].strip('"')
            process = os.path.basename(exe) if exe else ""

    return pid, process


def split_port_protocol(entry: str) -> Optional[Tuple[str, str]]:
    """Split a firewall "port/protocol" entry, or return None if malformed."""
    parts = entry.split("/")
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def interface_for_address(address: str) -> str:
    """
    Find the local network interface bound to an IP address.

    Args:
        address: IP address in textual form

    Returns:
        Name of the first interface carrying that address, or "" when the
        address is empty, interfaces cannot be listed, or nothing matches
    """
    if not address:
        return ""

    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, psutil.Error):
        return ""

    for iface_name, addresses in interfaces.items():
        for addr in addresses:
            # IPv6 link-local addresses carry a "%scope" suffix
            candidate = (addr.address or "").split("%", 1)[0]
            if candidate == address:
                return iface_name

    return ""
