"""
Alert monitor: periodic, edge-triggered scan of every container.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from fleetdock.alerts.history import AlertHistory, AlertStore
from fleetdock.alerts.models import AcknowledgeResult, Alert, AlertConfigView, AlertType
from fleetdock.alerts.webhook import WebhookNotifier
from fleetdock.core.config import AlertsConfig
from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.runtime.models import ContainerInfo
from fleetdock.stats.models import ContainerStats
from fleetdock.stats.service import StatsService

logger = logging.getLogger(__name__)

ContainerKey = Tuple[str, str]
ConditionKey = Tuple[str, str, AlertType]


class AlertMonitor:
    """
    Periodic alert scanner.

    Lifecycle alerts come from diffing each container's running state
    against the previous scan; the first observation of a container is only
    a baseline. Threshold alerts fire once when a value crosses above its
    threshold and re-arm when it drops back to or below it.

    Usage:
        monitor = AlertMonitor(client, config.alerts)
        await monitor.start()
        ...
        for alert in monitor.get_alerts():
            print(alert.message)
        await monitor.stop()
    """

    def __init__(
        self,
        client: MultiHostClient,
        config: AlertsConfig,
        history: Optional[AlertStore] = None,
        notifier: Optional[WebhookNotifier] = None,
        stats: Optional[StatsService] = None,
    ):
        """
        Initialize alert monitor.

        Args:
            client: Multi-host client to scan
            config: Thresholds, interval and webhook settings
            history: Alert store (defaults to AlertHistory of configured size)
            notifier: Webhook notifier (defaults to one built from config)
            stats: Stats service (defaults to one over ``client``)
        """
        self.client = client
        self.config = config
        self.history = history if history is not None else AlertHistory(config.history_size)
        self.stats = stats or StatsService(client)

        if notifier:
            self.notifier = notifier
            self._owns_notifier = False
        elif config.webhook_url:
            self.notifier = WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout)
            self._owns_notifier = True
        else:
            self.notifier = None
            self._owns_notifier = False

        # Last observed running state per (host, container_id)
        self._running_state: Dict[ContainerKey, bool] = {}
        # Threshold conditions currently above their threshold
        self._active: Set[ConditionKey] = set()

        self._webhook_tasks: Set[asyncio.Task] = set()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def check_once(self) -> List[Alert]:
        """
        Run one scan.

        Returns:
            Alerts raised by this scan
        """
        raised: List[Alert] = []

        listing = await self.client.list_containers_all_hosts()
        for error in listing.errors:
            logger.warning(f"Alert scan skipped host {error.host_name}: {error.error}")

        names: Dict[ContainerKey, str] = {}
        hosts_with_running: List[str] = []

        for host_name, containers in listing.results.items():
            raised.extend(self._check_lifecycle(host_name, containers))
            for container in containers:
                names[(host_name, container.id)] = container.name
            if any(c.running for c in containers):
                hosts_with_running.append(host_name)

        if hosts_with_running:
            sweeps = await asyncio.gather(
                *(self.stats.get_all_containers_stats(h) for h in hosts_with_running),
                return_exceptions=True,
            )
            for host_name, sweep in zip(hosts_with_running, sweeps):
                if isinstance(sweep, BaseException):
                    logger.warning(f"Stats sweep failed for host {host_name}: {sweep}")
                    continue
                for stats in sweep:
                    container_name = names.get((host_name, stats.container_id), stats.container_id[:12])
                    raised.extend(self._check_thresholds(host_name, container_name, stats))

        for alert in raised:
            self._record(alert)

        if raised:
            logger.info(f"Alert scan raised {len(raised)} alert(s)")
        return raised

    def _check_lifecycle(self, host_name: str, containers: List[ContainerInfo]) -> List[Alert]:
        raised: List[Alert] = []
        seen: Set[ContainerKey] = set()

        for container in containers:
            key = (host_name, container.id)
            seen.add(key)
            previous = self._running_state.get(key)
            self._running_state[key] = container.running

            if not container.running:
                self._clear_conditions(key)

            if previous is None or previous == container.running:
                continue

            if container.running:
                alert_type = AlertType.CONTAINER_STARTED
                message = f"Container {container.name} started"
            else:
                alert_type = AlertType.CONTAINER_STOPPED
                message = f"Container {container.name} stopped ({container.status or container.state})"

            raised.append(
                Alert(
                    type=alert_type,
                    container_id=container.id,
                    container_name=container.name,
                    host=host_name,
                    message=message,
                )
            )

        # Forget containers that disappeared from a host that answered
        for key in [k for k in self._running_state if k[0] == host_name and k not in seen]:
            del self._running_state[key]
            self._clear_conditions(key)

        return raised

    def _check_thresholds(self, host_name: str, container_name: str, stats: ContainerStats) -> List[Alert]:
        raised: List[Alert] = []
        checks = [
            (AlertType.CPU_THRESHOLD, "CPU", stats.cpu_percent, self.config.cpu_threshold),
            (AlertType.MEMORY_THRESHOLD, "Memory", stats.memory_percent, self.config.memory_threshold),
        ]

        for alert_type, label, value, threshold in checks:
            key = (host_name, stats.container_id, alert_type)
            if value <= threshold:
                self._active.discard(key)
                continue
            if key in self._active:
                continue

            self._active.add(key)
            raised.append(
                Alert(
                    type=alert_type,
                    container_id=stats.container_id,
                    container_name=container_name,
                    host=host_name,
                    message=f"{label} usage {value:.1f}% exceeds threshold {threshold:.1f}%",
                    value=value,
                    threshold=threshold,
                )
            )

        return raised

    def _clear_conditions(self, key: ContainerKey) -> None:
        for alert_type in (AlertType.CPU_THRESHOLD, AlertType.MEMORY_THRESHOLD):
            self._active.discard((key[0], key[1], alert_type))

    def _record(self, alert: Alert) -> None:
        self.history.add(alert)
        logger.warning(f"Alert [{alert.type.value}] {alert.host}/{alert.container_name}: {alert.message}")

        if self.notifier is not None and self.notifier.is_enabled():
            task = asyncio.create_task(self.notifier.send(alert), name=f"webhook-{alert.id}")
            self._webhook_tasks.add(task)
            task.add_done_callback(self._webhook_tasks.discard)

    async def flush(self) -> None:
        """Wait for webhook deliveries still in flight."""
        if self._webhook_tasks:
            await asyncio.gather(*list(self._webhook_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_alerts(self, limit: int = 0) -> List[Alert]:
        """Newest-first alerts; ``limit <= 0`` returns the whole history."""
        return self.history.get_recent(limit)

    def unacknowledged_count(self) -> int:
        return self.history.unacknowledged_count()

    def acknowledge(self, alert_id: str) -> AcknowledgeResult:
        if self.history.acknowledge(alert_id):
            return AcknowledgeResult.ACKNOWLEDGED
        return AcknowledgeResult.NOT_FOUND

    def acknowledge_all(self) -> int:
        return self.history.acknowledge_all()

    def config_view(self) -> AlertConfigView:
        return AlertConfigView(
            enabled=self.config.enabled,
            cpu_threshold=self.config.cpu_threshold,
            memory_threshold=self.config.memory_threshold,
            check_interval=f"{self.config.check_interval:g}s",
            webhook_enabled=bool(self.config.webhook_url),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _monitor_loop(self):
        """Background loop that scans every check interval."""
        logger.info(
            f"Alert monitor started (interval: {self.config.check_interval:g}s, "
            f"cpu > {self.config.cpu_threshold:.1f}%, memory > {self.config.memory_threshold:.1f}%)"
        )

        while self._running:
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"Error in alert monitor loop: {e}", exc_info=True)

            await asyncio.sleep(self.config.check_interval)

    async def start(self):
        """Start the periodic scan."""
        if self._running:
            logger.warning("Alert monitor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._monitor_loop())

    async def stop(self):
        """Stop scanning and wait for pending webhook deliveries."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.flush()

        if self._owns_notifier and self.notifier is not None:
            await self.notifier.close()

        logger.info("Alert monitor stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
