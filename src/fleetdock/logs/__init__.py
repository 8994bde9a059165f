"""
Container log pipeline.

Demultiplexes interleaved stdout/stderr frames, assembles lines, extracts
timestamps and severities, and exposes both bounded historical reads and
live streams.
"""

__all__ = ["models", "parser", "demux", "pipeline", "ndjson"]
