"""
Fan-out query engine.

Runs one operation against every connected endpoint concurrently and
collects partial results. A failing host becomes a HostError value; it never
fails the call and never disturbs the other workers.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, TypeVar

from fleetdock.errors import HostNotFoundError
from fleetdock.reconcile.env import parse_env_list
from fleetdock.runtime.endpoint import RuntimeEndpoint
from fleetdock.runtime.models import (
    ContainerInfo,
    FanOutResult,
    HostDescriptor,
    HostError,
    ImageInfo,
    ImagePullProgress,
    ImageRemoveResult,
    NetworkDetails,
    NetworkInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class MultiHostClient:
    """
    Uniform client over a fixed table of runtime endpoints.

    The endpoint map is built once at startup and never mutated, so it is
    read without locking.

    Usage:
        client = MultiHostClient(connect_hosts(config.docker.descriptors()))
        listing = await client.list_containers_all_hosts()
        for error in listing.errors:
            logger.warning(f"Host unavailable: {error}")
    """

    def __init__(
        self,
        endpoints: Dict[str, RuntimeEndpoint],
        hosts: Optional[List[HostDescriptor]] = None,
    ):
        """
        Initialize multi-host client.

        Args:
            endpoints: Connected endpoints keyed by host name
            hosts: Descriptors in configuration order (defaults to endpoint names)
        """
        self._endpoints = dict(endpoints)
        self._hosts = list(hosts) if hosts is not None else [
            HostDescriptor(name=name, endpoint_uri="") for name in endpoints
        ]

    @property
    def hosts(self) -> List[HostDescriptor]:
        return list(self._hosts)

    @property
    def host_names(self) -> List[str]:
        return list(self._endpoints)

    def get_endpoint(self, host_name: str) -> RuntimeEndpoint:
        """
        Resolve a host name to its endpoint.

        Raises:
            HostNotFoundError: If the host is not configured
        """
        endpoint = self._endpoints.get(host_name)
        if endpoint is None:
            raise HostNotFoundError(host_name)
        return endpoint

    def close(self) -> None:
        """Release every endpoint's client."""
        for name, endpoint in self._endpoints.items():
            try:
                endpoint.close()
            except Exception as e:
                logger.debug(f"Ignoring close error for host {name}: {e}")

    async def call(self, host_name: str, operation: Callable[[RuntimeEndpoint], T]) -> T:
        """Run a blocking operation against one host in a worker thread."""
        endpoint = self.get_endpoint(host_name)
        return await asyncio.to_thread(operation, endpoint)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def query_all(self, operation: Callable[[RuntimeEndpoint], T]) -> FanOutResult[T]:
        """
        Run ``operation`` against every host concurrently.

        Each worker writes either its result or a HostError into a queue
        sized to the number of hosts, so a slow host never blocks the
        others. A closer task waits for every worker and then closes the
        queue; the collector drains until closed. Cancelling the caller
        cancels every worker.

        Args:
            operation: Blocking callable taking one endpoint

        Returns:
            Partial results keyed by host name plus per-host errors
        """
        num_hosts = len(self._endpoints)
        if num_hosts == 0:
            return FanOutResult()

        queue: asyncio.Queue = asyncio.Queue(maxsize=num_hosts)

        workers = [
            asyncio.create_task(
                self._query_host(name, endpoint, operation, queue),
                name=f"fanout-{name}",
            )
            for name, endpoint in self._endpoints.items()
        ]

        async def close_when_done() -> None:
            await asyncio.gather(*workers, return_exceptions=True)
            await queue.put(_CLOSED)

        closer = asyncio.create_task(close_when_done())

        result: FanOutResult[T] = FanOutResult()
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    break
                host_name, value = item
                if isinstance(value, HostError):
                    result.errors.append(value)
                else:
                    result.results[host_name] = value
        except asyncio.CancelledError:
            for task in workers:
                task.cancel()
            closer.cancel()
            await asyncio.gather(*workers, closer, return_exceptions=True)
            raise

        return result

    async def _query_host(
        self,
        host_name: str,
        endpoint: RuntimeEndpoint,
        operation: Callable[[RuntimeEndpoint], T],
        queue: asyncio.Queue,
    ) -> None:
        """Query a single host and put its result or error on the queue."""
        try:
            value = await asyncio.to_thread(operation, endpoint)
        except Exception as e:
            logger.warning(f"Query against host {host_name} failed: {e}")
            await queue.put((host_name, HostError(host_name=host_name, error=e)))
            return

        await queue.put((host_name, value))

    async def list_containers_all_hosts(self) -> FanOutResult[List[ContainerInfo]]:
        """List every container (running or not) on every host."""
        return await self.query_all(lambda endpoint: endpoint.list_containers(all=True))

    async def list_images_all_hosts(self) -> FanOutResult[List[ImageInfo]]:
        """List images on every host."""
        return await self.query_all(lambda endpoint: endpoint.list_images())

    async def list_networks_all_hosts(self) -> FanOutResult[List[NetworkInfo]]:
        """List networks on every host."""
        return await self.query_all(lambda endpoint: endpoint.list_networks())

    async def ping_all_hosts(self) -> FanOutResult[bool]:
        """Ping every host."""
        return await self.query_all(lambda endpoint: endpoint.ping())

    # ------------------------------------------------------------------
    # Single-host operations
    # ------------------------------------------------------------------

    async def get_container(self, host_name: str, container_id: str) -> Dict:
        return await self.call(host_name, lambda e: e.inspect_container(container_id))

    async def start_container(self, host_name: str, container_id: str) -> None:
        await self.call(host_name, lambda e: e.start_container(container_id))

    async def stop_container(self, host_name: str, container_id: str) -> None:
        await self.call(host_name, lambda e: e.stop_container(container_id))

    async def restart_container(self, host_name: str, container_id: str) -> None:
        await self.call(host_name, lambda e: e.restart_container(container_id))

    async def remove_container(self, host_name: str, container_id: str) -> None:
        await self.call(host_name, lambda e: e.remove_container(container_id))

    async def get_env_variables(self, host_name: str, container_id: str) -> Dict[str, str]:
        """
        Read a container's declared environment.

        Returns:
            Map of variable name to value; entries without '=' are skipped
        """
        inspect = await self.get_container(host_name, container_id)
        return parse_env_list((inspect.get("Config") or {}).get("Env") or [])

    async def get_image(self, host_name: str, image_id: str) -> ImageInfo:
        return await self.call(host_name, lambda e: e.inspect_image(image_id))

    async def remove_image(self, host_name: str, image_id: str, force: bool = False) -> ImageRemoveResult:
        return await self.call(host_name, lambda e: e.remove_image(image_id, force=force))

    async def get_network_details(self, host_name: str, network_id: str) -> NetworkDetails:
        return await self.call(host_name, lambda e: e.inspect_network(network_id))

    async def pull_image(self, host_name: str, image_name: str) -> AsyncIterator[ImagePullProgress]:
        """
        Pull an image, yielding progress messages as they arrive.

        Args:
            host_name: Host to pull on
            image_name: Image reference (tag defaults to latest)
        """
        endpoint = self.get_endpoint(host_name)
        progress = await asyncio.to_thread(endpoint.pull_image, image_name)
        iterator = iter(progress)

        while True:
            message = await asyncio.to_thread(next, iterator, None)
            if message is None:
                return
            detail = message.get("progressDetail") or {}
            yield ImagePullProgress(
                status=message.get("status", ""),
                progress=message.get("progress"),
                current=detail.get("current"),
                total=detail.get("total"),
                id=message.get("id"),
                error=message.get("error"),
            )
