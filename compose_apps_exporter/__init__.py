"""
Compose Apps Exporter for Prometheus

Discovers docker-compose applications on disk and exposes the runtime state
and health of every declared service as Prometheus gauges.
"""

__version__ = "1.0.0"
