"""
fleetdock - Multi-host container control and telemetry plane

This package aggregates several container-runtime endpoints (local socket,
TCP or SSH tunnel) into one logical view and exposes real-time container
introspection and lifecycle alerting on top of them.

Main modules:
- runtime: endpoint connector and fan-out queries across hosts
- logs: log demultiplexing, parsing and streaming
- stats: resource-usage decoding and derived metrics
- terminal: interactive exec sessions bridged to a duplex transport
- alerts: threshold and lifecycle alert monitoring
- reconcile: environment updates by container recreation
- plane: facade wiring everything together
"""

__version__ = "0.3.0"
__author__ = "fleetdock maintainers"

import logging
import os
from typing import Any, Dict, Optional

# Environment configuration defaults
DEFAULT_CONFIG: Dict[str, Any] = {
    "docker_hosts": "local=unix:///var/run/docker.sock",
    "log_level": "INFO",
    "alert_source": "fleetdock",
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for services and the CLI.

    Priority order for the level:
    1. Explicit ``level`` argument
    2. LOG_LEVEL environment variable
    3. Default (INFO)
    """
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", DEFAULT_CONFIG["log_level"])).upper(),
        format=LOG_FORMAT,
    )


__all__ = ["__version__", "__author__", "DEFAULT_CONFIG", "LOG_FORMAT", "configure_logging"]
