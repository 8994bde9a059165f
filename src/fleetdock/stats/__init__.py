"""
Stats telemetry engine.

Decodes raw runtime resource snapshots into container stats with derived
CPU and memory percentages, for single reads, live streams and per-host
sweeps.
"""

__all__ = ["models", "calculator", "service"]
