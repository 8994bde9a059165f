"""
Log pipeline service: historical reads and live streams for one container.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from fleetdock.logs.demux import demux_log_entries
from fleetdock.logs.models import LogEntry, LogOptions
from fleetdock.runtime.endpoint import ByteSource, RuntimeEndpoint
from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.runtime.streaming import DEFAULT_QUEUE_SIZE, stream_from_thread

logger = logging.getLogger(__name__)


class LogPipeline:
    """
    Fetches and streams parsed container logs.

    Usage:
        pipeline = LogPipeline(client)
        recent = await pipeline.fetch_logs("local", "web", LogOptions(tail="50"))
        async for entry in pipeline.stream_logs("local", "web"):
            print(entry.level, entry.message)
    """

    def __init__(self, client: MultiHostClient, queue_size: int = DEFAULT_QUEUE_SIZE):
        """
        Initialize log pipeline.

        Args:
            client: Multi-host client used to resolve endpoints
            queue_size: Capacity of the hand-off queue for live streams
        """
        self.client = client
        self.queue_size = queue_size

    async def fetch_logs(
        self,
        host_name: str,
        container_id: str,
        options: Optional[LogOptions] = None,
    ) -> List[LogEntry]:
        """
        Read the recent log history of a container.

        Always a bounded read: timestamps on and follow off, whatever the
        options say.

        Args:
            host_name: Host the container runs on
            container_id: Container ID or name
            options: Tail, since/until and stream filters

        Returns:
            Parsed entries in source order
        """
        options = (options or LogOptions()).model_copy(update={"follow": False, "timestamps": True})
        endpoint = self.client.get_endpoint(host_name)
        return await asyncio.to_thread(self._read_all, endpoint, container_id, options)

    def _read_all(self, endpoint: RuntimeEndpoint, container_id: str, options: LogOptions) -> List[LogEntry]:
        entries: List[LogEntry] = []
        source = endpoint.open_logs(container_id, options, follow=False)
        try:
            demux_log_entries(source, entries.append)
        finally:
            source.close()

        logger.debug(f"Fetched {len(entries)} log entries for {container_id} on {endpoint.name}")
        return entries

    async def stream_logs(
        self,
        host_name: str,
        container_id: str,
        options: Optional[LogOptions] = None,
    ) -> AsyncIterator[LogEntry]:
        """
        Stream parsed log entries as they are written.

        Entries arrive in source order. The stream ends on end of logs,
        raises on a transport or framing error, and closes the runtime
        response when the consumer stops iterating.

        Args:
            host_name: Host the container runs on
            container_id: Container ID or name
            options: Tail, since/until and stream filters (follow is forced on)

        Raises:
            HostNotFoundError: If the host is not configured
            LogStreamError: If the stream is malformed or reports an error
        """
        options = options or LogOptions()
        endpoint = self.client.get_endpoint(host_name)
        source: ByteSource = await asyncio.to_thread(
            endpoint.open_logs, container_id, options, True
        )

        logger.info(f"Streaming logs for {container_id} on {host_name}")

        def produce(emit) -> None:
            demux_log_entries(source, emit)

        entries = stream_from_thread(
            produce,
            source.close,
            maxsize=self.queue_size,
            name=f"logs {host_name}/{container_id}",
        )
        try:
            async for entry in entries:
                yield entry
        finally:
            await entries.aclose()
            logger.info(f"Log stream for {container_id} on {host_name} closed")
