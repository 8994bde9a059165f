"""
Stats service: one-shot reads, live streams and per-host sweeps.
"""

import asyncio
import logging
from typing import AsyncIterator, List

from fleetdock.runtime.endpoint import RuntimeEndpoint, StatsSource
from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.runtime.streaming import DEFAULT_QUEUE_SIZE, stream_from_thread
from fleetdock.stats.calculator import parse_docker_stats
from fleetdock.stats.models import ContainerStats

logger = logging.getLogger(__name__)


class StatsService:
    """
    Container resource telemetry.

    Usage:
        service = StatsService(client)
        snapshot = await service.get_stats_once("local", "web")
        async for stats in service.stream_stats("local", "web"):
            print(stats.cpu_percent, stats.memory_percent)
    """

    def __init__(self, client: MultiHostClient, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.client = client
        self.queue_size = queue_size

    async def get_stats_once(self, host_name: str, container_id: str) -> ContainerStats:
        """
        Read a single stats snapshot.

        Raises:
            HostNotFoundError: If the host is not configured
            StatsDecodeError: If the snapshot cannot be decoded
        """
        endpoint = self.client.get_endpoint(host_name)
        return await asyncio.to_thread(self._read_once, endpoint, container_id)

    def _read_once(self, endpoint: RuntimeEndpoint, container_id: str) -> ContainerStats:
        snapshot = endpoint.stats_once(container_id)
        return parse_docker_stats(snapshot, container_id, endpoint.name)

    async def stream_stats(self, host_name: str, container_id: str) -> AsyncIterator[ContainerStats]:
        """
        Stream stats snapshots in arrival order.

        The stream ends when the runtime closes it, raises StatsDecodeError
        on a malformed snapshot, and closes the runtime response when the
        consumer stops iterating.
        """
        endpoint = self.client.get_endpoint(host_name)
        source: StatsSource = await asyncio.to_thread(endpoint.open_stats, container_id)

        logger.info(f"Streaming stats for {container_id} on {host_name}")

        def produce(emit) -> None:
            for snapshot in source:
                emit(parse_docker_stats(snapshot, container_id, host_name))

        snapshots = stream_from_thread(
            produce,
            source.close,
            maxsize=self.queue_size,
            name=f"stats {host_name}/{container_id}",
        )
        try:
            async for stats in snapshots:
                yield stats
        finally:
            await snapshots.aclose()
            logger.info(f"Stats stream for {container_id} on {host_name} closed")

    async def get_all_containers_stats(self, host_name: str) -> List[ContainerStats]:
        """
        Collect one snapshot for every running container on a host.

        Containers whose stats cannot be read are skipped.

        Raises:
            HostNotFoundError: If the host is not configured
        """
        endpoint = self.client.get_endpoint(host_name)
        return await asyncio.to_thread(self._collect_all, endpoint)

    def _collect_all(self, endpoint: RuntimeEndpoint) -> List[ContainerStats]:
        all_stats: List[ContainerStats] = []

        for container in endpoint.list_containers(all=True):
            if not container.running:
                continue
            try:
                all_stats.append(self._read_once(endpoint, container.id))
            except Exception as e:
                logger.debug(f"Skipping stats for {container.name} on {endpoint.name}: {e}")

        return all_stats
