"""
Control plane facade.

Wires the connector, fan-out client, log pipeline, stats engine, terminal
bridge, alert monitor and env reconciler together and exposes them as
plain function calls for an HTTP/WebSocket layer or the CLI.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from fleetdock.alerts.history import AlertHistory
from fleetdock.alerts.models import AcknowledgeResult, Alert, AlertConfigView
from fleetdock.alerts.monitor import AlertMonitor
from fleetdock.core.config import AppConfig
from fleetdock.errors import AlertNotFoundError, ReadOnlyModeError
from fleetdock.logs.models import LogEntry, LogOptions
from fleetdock.logs.pipeline import LogPipeline
from fleetdock.reconcile.service import EnvReconciler
from fleetdock.runtime.connector import ClientFactory, connect_hosts
from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.runtime.models import (
    ContainerInfo,
    FanOutResult,
    ImageInfo,
    ImagePullProgress,
    ImageRemoveResult,
    NetworkDetails,
    NetworkInfo,
)
from fleetdock.stats.models import ContainerStats
from fleetdock.stats.service import StatsService
from fleetdock.terminal.bridge import TerminalBridge
from fleetdock.terminal.transport import RemoteTransport

logger = logging.getLogger(__name__)


class ControlPlane:
    """
    Single entry point for every operation.

    Usage:
        plane = ControlPlane.from_config(get_config())
        await plane.start()
        listing = await plane.list_across_hosts()
        await plane.stop()
    """

    def __init__(
        self,
        client: MultiHostClient,
        config: Optional[AppConfig] = None,
        monitor: Optional[AlertMonitor] = None,
    ):
        """
        Initialize control plane.

        Args:
            client: Connected multi-host client
            config: Application configuration (defaults to AppConfig())
            monitor: Alert monitor; built from config when alerts are enabled
        """
        self.config = config or AppConfig()
        self.client = client
        self.logs = LogPipeline(client)
        self.stats = StatsService(client)
        self.reconciler = EnvReconciler(client)

        if monitor is None and self.config.alerts.enabled:
            monitor = AlertMonitor(
                client,
                self.config.alerts,
                history=AlertHistory(self.config.alerts.history_size),
                stats=self.stats,
            )
        self.monitor = monitor

    @classmethod
    def from_config(cls, config: AppConfig, factory: Optional[ClientFactory] = None) -> "ControlPlane":
        """
        Connect every configured host and build the plane.

        Raises:
            HostConnectionError: If any host is unreachable (startup is aborted)
        """
        hosts = config.docker.descriptors()
        endpoints = connect_hosts(
            hosts,
            timeout=config.docker.timeout,
            use_ssh_client=config.docker.use_ssh_client,
            factory=factory,
        )
        logger.info(f"Connected to {len(endpoints)} host(s): {', '.join(endpoints)}")

        if config.read_only:
            logger.info("READ-ONLY MODE is ENABLED - all mutating operations are disabled")

        return cls(MultiHostClient(endpoints, hosts), config)

    async def start(self):
        """Start background services (the alert monitor, when enabled)."""
        if self.monitor is not None:
            await self.monitor.start()
        else:
            logger.info("Alert monitoring is DISABLED (set ALERTS_ENABLED=true to enable)")

    async def stop(self):
        """Stop background services and release host connections."""
        if self.monitor is not None:
            await self.monitor.stop()
        await asyncio.to_thread(self.client.close)

    def _require_writable(self, operation: str) -> None:
        if self.config.read_only:
            raise ReadOnlyModeError(operation)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def list_across_hosts(self) -> FanOutResult[List[ContainerInfo]]:
        return await self.client.list_containers_all_hosts()

    async def list_images_across_hosts(self) -> FanOutResult[List[ImageInfo]]:
        return await self.client.list_images_all_hosts()

    async def list_networks_across_hosts(self) -> FanOutResult[List[NetworkInfo]]:
        return await self.client.list_networks_all_hosts()

    async def get_network_details(self, host_name: str, network_id: str) -> NetworkDetails:
        return await self.client.get_network_details(host_name, network_id)

    # ------------------------------------------------------------------
    # Container lifecycle
    # ------------------------------------------------------------------

    async def start_container(self, host_name: str, container_id: str) -> None:
        self._require_writable("start container")
        await self.client.start_container(host_name, container_id)

    async def stop_container(self, host_name: str, container_id: str) -> None:
        self._require_writable("stop container")
        await self.client.stop_container(host_name, container_id)

    async def restart_container(self, host_name: str, container_id: str) -> None:
        self._require_writable("restart container")
        await self.client.restart_container(host_name, container_id)

    async def remove_container(self, host_name: str, container_id: str) -> None:
        self._require_writable("remove container")
        await self.client.remove_container(host_name, container_id)

    async def get_env_variables(self, host_name: str, container_id: str) -> Dict[str, str]:
        return await self.client.get_env_variables(host_name, container_id)

    async def reconcile_env(self, host_name: str, container_id: str, desired_env: Dict[str, str]) -> str:
        """
        Recreate a container with a new environment.

        Returns:
            ID of the new container

        Raises:
            ReadOnlyModeError: In read-only mode
            EnvReconcileError: If a step fails
        """
        self._require_writable("update env variables")
        record = await self.reconciler.reconcile(host_name, container_id, desired_env)
        return record.new_container_id

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def pull_image(self, host_name: str, image_name: str) -> AsyncIterator[ImagePullProgress]:
        self._require_writable("pull image")
        async for progress in self.client.pull_image(host_name, image_name):
            yield progress

    async def remove_image(self, host_name: str, image_id: str, force: bool = False) -> ImageRemoveResult:
        self._require_writable("remove image")
        return await self.client.remove_image(host_name, image_id, force=force)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def fetch_logs(
        self,
        host_name: str,
        container_id: str,
        options: Optional[LogOptions] = None,
    ) -> List[LogEntry]:
        return await self.logs.fetch_logs(host_name, container_id, options)

    def stream_logs(
        self,
        host_name: str,
        container_id: str,
        options: Optional[LogOptions] = None,
    ) -> AsyncIterator[LogEntry]:
        return self.logs.stream_logs(host_name, container_id, options)

    async def get_stats_once(self, host_name: str, container_id: str) -> ContainerStats:
        return await self.stats.get_stats_once(host_name, container_id)

    def stream_stats(self, host_name: str, container_id: str) -> AsyncIterator[ContainerStats]:
        return self.stats.stream_stats(host_name, container_id)

    async def get_all_containers_stats(self, host_name: str) -> List[ContainerStats]:
        return await self.stats.get_all_containers_stats(host_name)

    async def open_terminal(self, host_name: str, container_id: str, transport: RemoteTransport) -> TerminalBridge:
        """
        Run an interactive shell session until either side closes.

        Returns:
            The finished bridge (state, history and any creation error)
        """
        bridge = TerminalBridge(self.client, host_name, container_id, transport)
        await bridge.run()
        return bridge

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def get_alerts(self, limit: int = 0) -> List[Alert]:
        """Newest-first alerts; empty when alerting is disabled."""
        if self.monitor is None:
            return []
        return self.monitor.get_alerts(limit)

    def unacknowledged_count(self) -> int:
        if self.monitor is None:
            return 0
        return self.monitor.unacknowledged_count()

    def acknowledge(self, alert_id: str) -> None:
        """
        Acknowledge one alert.

        Raises:
            AlertNotFoundError: If the ID is unknown or alerting is disabled
        """
        if self.monitor is None or self.monitor.acknowledge(alert_id) == AcknowledgeResult.NOT_FOUND:
            raise AlertNotFoundError(alert_id)

    def acknowledge_all(self) -> int:
        if self.monitor is None:
            return 0
        return self.monitor.acknowledge_all()

    def alert_config(self) -> AlertConfigView:
        if self.monitor is not None:
            return self.monitor.config_view()
        alerts = self.config.alerts
        return AlertConfigView(
            enabled=False,
            cpu_threshold=alerts.cpu_threshold,
            memory_threshold=alerts.memory_threshold,
            check_interval=f"{alerts.check_interval:g}s",
            webhook_enabled=bool(alerts.webhook_url),
        )
