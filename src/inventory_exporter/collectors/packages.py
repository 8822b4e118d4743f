"""Installed packages collector."""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import AbstractSet, Iterator, List, Optional, Tuple

from prometheus_client import CollectorRegistry, Gauge

logger = logging.getLogger(__name__)


class CollectionError(Exception):
    """Base exception for failures that abort a collection pass."""
    pass


class PackageQueryError(CollectionError):
    """Package manager is installed but could not be queried."""
    pass


@dataclass(frozen=True)
class PackageManager:
    """A package manager that can dump installed packages as "name|version" lines."""

    name: str
    binary: str
    args: Tuple[str, ...]

    @property
    def command(self) -> List[str]:
        return [self.binary, *self.args]

    def is_present(self) -> bool:
        return shutil.which(self.binary) is not None


# Checked in order; the first one found on PATH wins
PACKAGE_MANAGERS: Tuple[PackageManager, ...] = (
    PackageManager("rpm", "rpm", ("-qa", "--queryformat", "%{NAME}|%{VERSION}\\n")),
    PackageManager("dpkg", "dpkg-query", ("-W", "-f=${Package}|${Version}\\n")),
)


def detect_package_manager(
    managers: Tuple[PackageManager, ...] = PACKAGE_MANAGERS,
) -> Optional[PackageManager]:
    """Return the first available package manager, or None."""
    for manager in managers:
        if manager.is_present():
            return manager
    return None


def parse_package_lines(output: str) -> Iterator[Tuple[str, str]]:
    """
    Parse "name|version" lines.

    Blank lines and lines without exactly two fields are skipped.

    Args:
        output: Raw package manager output

    Yields:
        (name, version) tuples
    """
    for line in output.strip().split("\n"):
        if not line:
            continue
        parts = line.split("|")
        if len(parts) != 2:
            logger.debug(f"Skipping malformed package line: {line!r}")
            continue
        yield parts[0], parts[1]


class PackageCollector:
    """Publishes installed packages as package_installed_info{name,version}."""

    def __init__(
        self,
        registry: CollectorRegistry,
        exclude_packages: AbstractSet[str] = frozenset(),
        command_timeout: float = 60,
        managers: Tuple[PackageManager, ...] = PACKAGE_MANAGERS,
    ):
        self.exclude_packages = frozenset(exclude_packages)
        self.command_timeout = command_timeout
        self.managers = managers
        self.installed = Gauge(
            "package_installed_info",
            "Information about installed packages",
            ["name", "version"],
            registry=registry,
        )

    def reset(self) -> None:
        """Drop every package label set."""
        self.installed.clear()

    def collect(self) -> int:
        """
        Query the package manager and set one gauge per installed package.

        Returns:
            Number of packages published

        Raises:
            PackageQueryError: The package manager exists but failed to run
        """
        manager = detect_package_manager(self.managers)
        if manager is None:
            names = ", ".join(m.binary for m in self.managers)
            logger.warning(f"No supported package manager found ({names})")
            return 0

        output = self._query(manager)

        published = set()
        for name, version in parse_package_lines(output):
            if name in self.exclude_packages:
                continue
            self.installed.labels(name=name, version=version).set(1)
            published.add((name, version))

        logger.debug(f"Published {len(published)} packages from {manager.name}")
        return len(published)

    def _query(self, manager: PackageManager) -> str:
        try:
            result = subprocess.run(
                manager.command,
                capture_output=True,
                text=True,
                # Package metadata is not guaranteed to be valid UTF-8
                errors="replace",
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise PackageQueryError(f"{manager.binary} timed out after {e.timeout}s") from e
        except OSError as e:
            raise PackageQueryError(f"Failed to run {manager.binary}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise PackageQueryError(
                f"{manager.binary} exited with status {result.returncode}: {stderr}"
            )

        return result.stdout
