"""Inventory exporter - installed packages and network ports as Prometheus gauges."""

__version__ = "0.1.0"
