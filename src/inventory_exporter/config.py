"""Configuration management for the inventory exporter."""

import json
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import FrozenSet, Optional, Tuple, Union

DEFAULT_CONFIG_PATH = "/etc/inventory-exporter/config.json"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


@dataclass
class ExporterConfig:
    """Exporter configuration."""

    scrape_interval: float = 300  # seconds
    listen_address: str = ":9100"
    exclude_packages_file: Optional[str] = None
    resolve_interfaces: bool = False
    command_timeout: float = 60
    dbus_timeout: float = 5
    log_level: str = "INFO"
    exclude_packages: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if isinstance(self.scrape_interval, str):
            self.scrape_interval = parse_duration(self.scrape_interval)
        if self.scrape_interval <= 0:
            raise ValueError(f"scrape_interval must be positive, got {self.scrape_interval}")
        self.exclude_packages = frozenset(self.exclude_packages)

    def load_exclusions(self) -> "ExporterConfig":
        """Read exclude_packages_file into exclude_packages."""
        self.exclude_packages = load_exclude_packages(self.exclude_packages_file)
        return self


class ConfigManager:
    """Loads exporter configuration from a JSON file."""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def load(self) -> ExporterConfig:
        """
        Load configuration from file.

        Returns:
            Parsed configuration

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: On malformed JSON or unknown keys
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid config file {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Invalid config file {self.config_path}: expected an object")

        known = {f.name for f in fields(ExporterConfig)} - {"exclude_packages"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys in {self.config_path}: {', '.join(sorted(unknown))}")

        return ExporterConfig(**data)

    def load_or_default(self) -> ExporterConfig:
        """Load configuration if the file exists, defaults otherwise."""
        if not self.exists():
            return ExporterConfig()
        return self.load()


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration such as "15s", "5m", "12h" or "1h30m" into seconds.

    Bare numbers are taken as seconds.

    Raises:
        ValueError: If the value is malformed or not positive
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos == 0 or pos != len(text):
                raise ValueError(f"Invalid duration: {value!r}")

    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


def load_exclude_packages(file_path: Optional[str]) -> FrozenSet[str]:
    """
    Load package names to exclude, one per line.

    Blank lines and lines starting with "#" are ignored.

    Args:
        file_path: Path to the exclusion list, or None/"" for no exclusions

    Returns:
        Set of package names

    Raises:
        OSError: If the file cannot be read
    """
    if not file_path:
        return frozenset()

    packages = set()
    with open(file_path, "r") as f:
        for line in f:
            name = line.strip()
            if name and not name.startswith("#"):
                packages.add(name)

    return frozenset(packages)


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a "host:port" listen address.

    An empty host (":9100") binds every interface.

    Raises:
        ValueError: If the port is missing or not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)
