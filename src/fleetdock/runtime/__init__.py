"""
Runtime endpoint connector and fan-out query engine.

This module turns a list of configured hosts into connected endpoints and
runs queries across all of them with per-host failure isolation.
"""

__all__ = ["models", "endpoint", "connector", "fanout"]
