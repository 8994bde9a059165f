"""
Alert monitor.

Periodically scans every container on every host, raises edge-triggered
alerts for lifecycle transitions and CPU/memory threshold violations,
keeps a bounded newest-first history and posts new alerts to a webhook.
"""

__all__ = ["models", "history", "webhook", "monitor"]
