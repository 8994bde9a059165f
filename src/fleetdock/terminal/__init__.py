"""
Exec/terminal bridge.

Attaches an interactive TTY shell inside a container to a remote duplex
transport (typically a WebSocket) and relays bytes both ways.
"""

__all__ = ["models", "transport", "bridge"]
