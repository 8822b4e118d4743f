"""Unit tests for the open and authorized ports collector"""
import psutil
import pytest

from conftest import FakeFirewall, label_sets, make_conn
from inventory_exporter.collectors.ports import PortCollector, get_process_name
from inventory_exporter.firewalld import FirewallCallError, FirewallConnectionError, format_port_entry


@pytest.fixture
def firewall():
    return FakeFirewall(zones={"public": ["22/tcp", "8080/tcp"], "internal": ["53/udp"]})


def make_collector(registry, firewall, **kwargs):
    return PortCollector(registry, firewall_factory=lambda: firewall, **kwargs)


class TestOpenPorts:

    def test_connections_published(self, registry, fake_system, firewall):
        fake_system["connections"] = [
            make_conn(1, "0.0.0.0", 22, 100),
            make_conn(2, "::", 5353, 200),
            make_conn(1, "127.0.0.1", 631, None),
        ]

        make_collector(registry, firewall).collect_open_ports()

        assert label_sets(registry, "ports_open_info") == [
            {"protocol": "tcp", "port": "22", "address": "0.0.0.0", "pid": "100", "process": "sshd", "interface": ""},
            {"protocol": "tcp", "port": "631", "address": "127.0.0.1", "pid": "0", "process": "", "interface": ""},
            {"protocol": "udp", "port": "5353", "address": "::", "pid": "200", "process": "nginx", "interface": ""},
        ]

    def test_identical_connections_collapse(self, registry, fake_system, firewall):
        fake_system["connections"] = [make_conn(1, "10.0.0.1", 443, 200)] * 3

        count = make_collector(registry, firewall).collect_open_ports()

        assert count == 3
        assert len(label_sets(registry, "ports_open_info")) == 1

    def test_unknown_protocol_and_empty_address(self, registry, fake_system, firewall):
        fake_system["connections"] = [make_conn(5, None, 0, 0)]

        make_collector(registry, firewall).collect_open_ports()

        (labels,) = label_sets(registry, "ports_open_info")
        assert labels["protocol"] == "unknown"
        assert labels["address"] == ""
        assert labels["port"] == "0"

    def test_vanished_process_gives_empty_name(self, registry, fake_system, firewall):
        fake_system["connections"] = [make_conn(1, "0.0.0.0", 9000, 4242)]

        make_collector(registry, firewall).collect_open_ports()

        (labels,) = label_sets(registry, "ports_open_info")
        assert labels["pid"] == "4242"
        assert labels["process"] == ""

    def test_interface_resolution_when_enabled(self, registry, fake_system, firewall, monkeypatch):
        fake_system["connections"] = [make_conn(1, "10.0.0.5", 22, 100)]
        monkeypatch.setattr(
            "inventory_exporter.collectors.ports.interface_for_address",
            lambda address: "eth0" if address == "10.0.0.5" else "",
        )

        make_collector(registry, firewall, resolve_interfaces=True).collect_open_ports()

        (labels,) = label_sets(registry, "ports_open_info")
        assert labels["interface"] == "eth0"


class TestAuthorizedPorts:

    def test_zones_published(self, registry, fake_system, firewall):
        count = make_collector(registry, firewall).collect_authorized_ports()

        assert count == 3
        assert label_sets(registry, "ports_authorized_info") == [
            {"port": "22", "protocol": "tcp", "zone": "public"},
            {"port": "53", "protocol": "udp", "zone": "internal"},
            {"port": "8080", "protocol": "tcp", "zone": "public"},
        ]
        assert firewall.closed

    def test_malformed_entries_skipped(self, registry, fake_system):
        firewall = FakeFirewall(zones={"public": ["invalid", "443/tcp", "1/2/3"]})

        make_collector(registry, firewall).collect_authorized_ports()

        assert label_sets(registry, "ports_authorized_info") == [
            {"port": "443", "protocol": "tcp", "zone": "public"},
        ]

    def test_failing_zone_skipped(self, registry, fake_system):
        firewall = FakeFirewall(
            zones={"block": ["1/tcp"], "public": ["22/tcp"]},
            failing_zones={"block"},
        )

        make_collector(registry, firewall).collect_authorized_ports()

        assert label_sets(registry, "ports_authorized_info") == [
            {"port": "22", "protocol": "tcp", "zone": "public"},
        ]

    def test_zone_list_failure_raises(self, registry, fake_system):
        firewall = FakeFirewall(zones_error=FirewallCallError("getZones failed"))

        with pytest.raises(FirewallCallError):
            make_collector(registry, firewall).collect_authorized_ports()
        assert firewall.closed


class TestCollectIsolation:

    def test_zone_list_failure_keeps_open_ports(self, registry, fake_system):
        fake_system["connections"] = [make_conn(1, "0.0.0.0", 22, 100)]
        firewall = FakeFirewall(zones_error=FirewallCallError("getZones failed"))

        make_collector(registry, firewall).collect()

        assert len(label_sets(registry, "ports_open_info")) == 1
        assert label_sets(registry, "ports_authorized_info") == []

    def test_bus_unavailable_keeps_open_ports(self, registry, fake_system):
        fake_system["connections"] = [make_conn(1, "0.0.0.0", 22, 100)]

        def factory():
            raise FirewallConnectionError("no system bus")

        PortCollector(registry, firewall_factory=factory).collect()

        assert len(label_sets(registry, "ports_open_info")) == 1

    def test_connection_failure_keeps_authorized_ports(self, registry, fake_system, firewall):
        fake_system["error"] = psutil.AccessDenied()

        make_collector(registry, firewall).collect()

        assert label_sets(registry, "ports_open_info") == []
        assert len(label_sets(registry, "ports_authorized_info")) == 3

    def test_reset_clears_both(self, registry, fake_system, firewall):
        fake_system["connections"] = [make_conn(1, "0.0.0.0", 22, 100)]
        collector = make_collector(registry, firewall)
        collector.collect()

        collector.reset()

        assert label_sets(registry, "ports_open_info") == []
        assert label_sets(registry, "ports_authorized_info") == []


def test_get_process_name(fake_system):
    cache = {}
    assert get_process_name(100, cache) == "sshd"
    assert cache == {100: "sshd"}
    assert get_process_name(0) == ""
    assert get_process_name(None) == ""
    assert get_process_name(999) == ""


def test_format_port_entry():
    assert format_port_entry(["22", "tcp"]) == "22/tcp"
    assert format_port_entry("8080/udp") == "8080/udp"
