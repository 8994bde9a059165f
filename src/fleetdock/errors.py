"""
Exception hierarchy for fleetdock.

Per-host failures inside multi-host calls are reported as HostError values
(see fleetdock.runtime.models) and never raised; the classes below cover
the failures that do propagate to a caller.
"""

from typing import Optional


class FleetdockError(Exception):
    """Base class for all fleetdock errors."""
    pass


class HostConnectionError(FleetdockError):
    """Raised at startup when a configured host cannot be reached."""

    def __init__(self, host_name: str, endpoint_uri: str, cause: Optional[BaseException] = None):
        self.host_name = host_name
        self.endpoint_uri = endpoint_uri
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"failed to connect to host {host_name} ({endpoint_uri}){detail}")


class HostNotFoundError(FleetdockError):
    """Raised when a host name is not part of the configured host table."""

    def __init__(self, host_name: str):
        self.host_name = host_name
        super().__init__(f"host {host_name} not found")


class LogStreamError(FleetdockError):
    """Raised when a multiplexed log stream is malformed or reports an error."""
    pass


class StatsDecodeError(FleetdockError):
    """Raised when a stats snapshot cannot be decoded."""
    pass


class TerminalSessionError(FleetdockError):
    """Raised when an exec session cannot be created or attached."""
    pass


class EnvReconcileError(FleetdockError):
    """
    Raised when an environment reconciliation fails part-way.

    The ``reconciliation`` attribute carries the state machine record so the
    caller can see which step failed and whether the container is gone.
    """

    def __init__(self, message: str, reconciliation=None):
        self.reconciliation = reconciliation
        super().__init__(message)


class AlertNotFoundError(FleetdockError):
    """Raised when acknowledging an alert ID that is not in the history."""

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"alert {alert_id} not found")


class ReadOnlyModeError(FleetdockError):
    """Raised when a mutating operation is attempted in read-only mode."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} is disabled in read-only mode")
