"""Pytest configuration and shared fixtures"""
import subprocess
from types import SimpleNamespace
from typing import Dict, List

import psutil
import pytest
from prometheus_client import CollectorRegistry

from inventory_exporter.config import ExporterConfig
from inventory_exporter.firewalld import FirewallCallError


def label_sets(registry: CollectorRegistry, metric: str) -> List[Dict[str, str]]:
    """Return the label dicts of every sample of a metric, sorted."""
    found = [
        dict(sample.labels)
        for family in registry.collect()
        for sample in family.samples
        if sample.name == metric
    ]
    return sorted(found, key=lambda labels: sorted(labels.items()))


def make_conn(socket_type=1, ip="0.0.0.0", port=22, pid=100):
    """Fake psutil connection; ip=None gives an empty local address."""
    laddr = SimpleNamespace(ip=ip, port=port) if ip is not None else ()
    return SimpleNamespace(type=socket_type, laddr=laddr, raddr=(), pid=pid)


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class FakeFirewall:
    """Stands in for FirewallDClient."""

    def __init__(self, zones=None, zones_error=None, failing_zones=()):
        self.zones = zones or {}
        self.zones_error = zones_error
        self.failing_zones = set(failing_zones)
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True

    def get_zones(self):
        if self.zones_error is not None:
            raise self.zones_error
        return list(self.zones)

    def get_zone_ports(self, zone):
        if zone in self.failing_zones:
            raise FirewallCallError(f"getPorts failed for {zone}")
        return list(self.zones[zone])


class FakeProcess:
    names = {}

    def __init__(self, pid):
        if pid not in self.names:
            raise psutil.NoSuchProcess(pid)
        self.pid = pid

    def name(self):
        return self.names[self.pid]


@pytest.fixture
def registry():
    """Isolated metrics registry"""
    return CollectorRegistry()


@pytest.fixture
def config():
    return ExporterConfig(scrape_interval=60, exclude_packages={"gpg-pubkey"})


@pytest.fixture
def fake_packages(monkeypatch):
    """Pretend rpm is installed and returns the given output."""
    state = {"stdout": "", "returncode": 0, "calls": []}

    def which(binary):
        return "/usr/bin/rpm" if binary == "rpm" else None

    def run(command, **kwargs):
        state["calls"].append(command)
        return completed(state["stdout"], state["returncode"], "boom" if state["returncode"] else "")

    monkeypatch.setattr("inventory_exporter.collectors.packages.shutil.which", which)
    monkeypatch.setattr("inventory_exporter.collectors.packages.subprocess.run", run)
    return state


@pytest.fixture
def fake_system(monkeypatch):
    """Fake socket table and process table."""
    state = {"connections": [], "error": None}

    def net_connections(kind="inet"):
        assert kind == "inet"
        if state["error"] is not None:
            raise state["error"]
        return list(state["connections"])

    FakeProcess.names = {100: "sshd", 200: "nginx"}
    monkeypatch.setattr("inventory_exporter.collectors.ports.psutil.net_connections", net_connections)
    monkeypatch.setattr("inventory_exporter.collectors.ports.psutil.Process", FakeProcess)
    return state
