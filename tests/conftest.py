"""
Shared fakes for the runtime endpoint capability interface.
"""

import asyncio
import queue
import struct
import threading
from typing import Any, Dict, List, Optional

import pytest

from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.runtime.models import (
    ContainerInfo,
    HostDescriptor,
    ImageInfo,
    ImageRemoveResult,
    NetworkDetails,
    NetworkInfo,
)
from fleetdock.terminal.models import TransportFrame


def frame(stream: int, payload: bytes) -> bytes:
    """Build one multiplexed log frame."""
    return struct.pack(">BxxxL", stream, len(payload)) + payload


def container(
    container_id: str,
    name: str,
    host: str = "local",
    state: str = "running",
    image: str = "nginx:latest",
) -> ContainerInfo:
    return ContainerInfo(
        id=container_id,
        names=[f"/{name}"],
        host=host,
        image=image,
        state=state,
        status="Up 5 minutes" if state == "running" else "Exited (0) 1 minute ago",
    )


def stats_snapshot(
    cpu_total: int = 0,
    precpu_total: int = 0,
    system: int = 0,
    presystem: int = 0,
    online_cpus: int = 1,
    mem_usage: int = 0,
    mem_limit: int = 0,
    read: str = "2024-01-15T10:30:00.123456789Z",
) -> Dict[str, Any]:
    return {
        "read": read,
        "cpu_stats": {
            "cpu_usage": {"total_usage": cpu_total},
            "system_cpu_usage": system,
            "online_cpus": online_cpus,
        },
        "precpu_stats": {
            "cpu_usage": {"total_usage": precpu_total},
            "system_cpu_usage": presystem,
        },
        "memory_stats": {"usage": mem_usage, "limit": mem_limit},
    }


def cpu_snapshot(percent: float) -> Dict[str, Any]:
    """Snapshot whose derived CPU usage is ``percent`` on one CPU."""
    return stats_snapshot(
        cpu_total=int(percent * 1000),
        precpu_total=0,
        system=100_000,
        presystem=0,
        online_cpus=1,
        mem_usage=10,
        mem_limit=100,
    )


class FakeByteSource:
    """ByteSource over fixed bytes, optionally in small chunks."""

    def __init__(self, data: bytes, chunk_size: Optional[int] = None, error: Optional[Exception] = None):
        self._data = data
        self._pos = 0
        self._chunk_size = chunk_size
        self._error = error
        self.closed = False

    def read(self, size: int) -> bytes:
        if self.closed:
            return b""
        if self._pos >= len(self._data):
            if self._error is not None:
                raise self._error
            return b""
        if self._chunk_size:
            size = min(size, self._chunk_size)
        chunk = self._data[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk

    def close(self) -> None:
        self.closed = True


class BlockingByteSource(FakeByteSource):
    """Serves its data, then blocks like a followed stream until closed."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self._closed_event = threading.Event()

    def read(self, size: int) -> bytes:
        if self._pos >= len(self._data):
            self._closed_event.wait(timeout=5)
            return b""
        return super().read(size)

    def close(self) -> None:
        super().close()
        self._closed_event.set()


class FakeStatsSource:
    """StatsSource over a list of snapshots; optionally blocks at the end."""

    def __init__(self, snapshots: List[Any], block: bool = False, error: Optional[Exception] = None):
        self._snapshots = snapshots
        self._block = block
        self._error = error
        self._closed_event = threading.Event()
        self.closed = False

    def __iter__(self):
        for snapshot in self._snapshots:
            if self.closed:
                return
            yield snapshot
        if self._error is not None:
            raise self._error
        if self._block:
            self._closed_event.wait(timeout=5)

    def close(self) -> None:
        self.closed = True
        self._closed_event.set()


class FakeExecStream:
    """ExecStream whose output is fed by the test."""

    def __init__(self):
        self._output: "queue.Queue[bytes]" = queue.Queue()
        self.written: List[bytes] = []
        self.closed = False

    def feed(self, data: bytes) -> None:
        self._output.put(data)

    def end(self) -> None:
        self._output.put(b"")

    def read(self, size: int) -> bytes:
        try:
            data = self._output.get(timeout=5)
        except queue.Empty:
            return b""
        return data[:size]

    def write(self, data: bytes) -> None:
        if self.closed:
            raise OSError("stream closed")
        self.written.append(data)

    def close(self) -> None:
        self.closed = True
        self._output.put(b"")


class FakeEndpoint:
    """In-memory RuntimeEndpoint."""

    def __init__(self, name: str = "local"):
        self.name = name
        self.containers: List[ContainerInfo] = []
        self.inspect: Dict[str, Dict[str, Any]] = {}
        self.stats: Dict[str, Any] = {}
        self.stats_sources: Dict[str, FakeStatsSource] = {}
        self.log_sources: Dict[str, FakeByteSource] = {}
        self.exec_stream = FakeExecStream()
        self.images: List[ImageInfo] = []
        self.networks: List[NetworkInfo] = []
        self.pull_messages: List[Dict[str, Any]] = []
        self.fail: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.log_calls: List[tuple] = []
        self.resizes: List[tuple] = []
        self.created_configs: List[tuple] = []
        self.closed = False

    def _record(self, op: str, *args) -> None:
        self.calls.append((op,) + args)
        if op in self.fail:
            raise self.fail[op]

    def ping(self) -> bool:
        self._record("ping")
        return True

    def close(self) -> None:
        self.closed = True

    def list_containers(self, all: bool = True) -> List[ContainerInfo]:
        self._record("list_containers")
        return list(self.containers)

    def inspect_container(self, container_id: str) -> Dict[str, Any]:
        self._record("inspect_container", container_id)
        return self.inspect[container_id]

    def start_container(self, container_id: str) -> None:
        self._record("start_container", container_id)

    def stop_container(self, container_id: str) -> None:
        self._record("stop_container", container_id)

    def restart_container(self, container_id: str) -> None:
        self._record("restart_container", container_id)

    def remove_container(self, container_id: str) -> None:
        self._record("remove_container", container_id)

    def create_container(self, config: Dict[str, Any], name: Optional[str] = None) -> str:
        self._record("create_container", name)
        self.created_configs.append((config, name))
        return "new0000000000000"

    def list_images(self) -> List[ImageInfo]:
        self._record("list_images")
        return list(self.images)

    def inspect_image(self, image_id: str) -> ImageInfo:
        self._record("inspect_image", image_id)
        return ImageInfo(id=image_id, host=self.name)

    def remove_image(self, image_id: str, force: bool = False) -> ImageRemoveResult:
        self._record("remove_image", image_id, force)
        return ImageRemoveResult(untagged=[image_id])

    def pull_image(self, image_name: str):
        self._record("pull_image", image_name)
        return iter(self.pull_messages)

    def list_networks(self) -> List[NetworkInfo]:
        self._record("list_networks")
        return list(self.networks)

    def inspect_network(self, network_id: str) -> NetworkDetails:
        self._record("inspect_network", network_id)
        return NetworkDetails(id=network_id, name="bridge", host=self.name)

    def stats_once(self, container_id: str) -> Dict[str, Any]:
        self._record("stats_once", container_id)
        value = self.stats[container_id]
        if isinstance(value, Exception):
            raise value
        return value

    def open_stats(self, container_id: str) -> FakeStatsSource:
        self._record("open_stats", container_id)
        return self.stats_sources[container_id]

    def open_logs(self, container_id: str, options, follow: bool) -> FakeByteSource:
        self._record("open_logs", container_id)
        self.log_calls.append((container_id, options, follow))
        return self.log_sources[container_id]

    def exec_create(self, container_id: str, cmd: List[str]) -> str:
        self._record("exec_create", container_id, tuple(cmd))
        return "exec1234567890abcdef"

    def exec_attach(self, exec_id: str) -> FakeExecStream:
        self._record("exec_attach", exec_id)
        return self.exec_stream

    def exec_resize(self, exec_id: str, height: int, width: int) -> None:
        self._record("exec_resize", exec_id, height, width)
        self.resizes.append((exec_id, height, width))


class FakeTransport:
    """RemoteTransport driven by the test."""

    def __init__(self):
        self._incoming: "asyncio.Queue[Optional[TransportFrame]]" = asyncio.Queue()
        self.sent_bytes: List[bytes] = []
        self.sent_text: List[str] = []
        self.closed = False

    def push_text(self, text: str) -> None:
        self._incoming.put_nowait(TransportFrame(text=text))

    def push_bytes(self, data: bytes) -> None:
        self._incoming.put_nowait(TransportFrame(data=data))

    def disconnect(self) -> None:
        self._incoming.put_nowait(None)

    async def receive(self) -> Optional[TransportFrame]:
        if self.closed:
            return None
        return await self._incoming.get()

    async def send_bytes(self, data: bytes) -> None:
        self.sent_bytes.append(data)

    async def send_text(self, text: str) -> None:
        self.sent_text.append(text)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)


def make_client(*endpoints: FakeEndpoint) -> MultiHostClient:
    return MultiHostClient(
        {endpoint.name: endpoint for endpoint in endpoints},
        [HostDescriptor(name=e.name, endpoint_uri=f"tcp://{e.name}:2375") for e in endpoints],
    )


@pytest.fixture
def endpoint() -> FakeEndpoint:
    return FakeEndpoint("local")


@pytest.fixture
def client(endpoint: FakeEndpoint) -> MultiHostClient:
    return make_client(endpoint)
