"""
Runtime endpoint capability interface and its docker-py implementation.

Everything above this module talks to a RuntimeEndpoint, never to docker-py
directly, so tests can swap in fakes. All methods are blocking; async
callers run them through asyncio.to_thread.
"""

import logging
import socket
from typing import Any, Dict, Iterator, List, Optional, Protocol, runtime_checkable

import docker
from docker.errors import StreamParseError
from docker.utils.socket import read as socket_read

from fleetdock.errors import StatsDecodeError
from fleetdock.logs.models import LogOptions
from fleetdock.logs.parser import try_parse_timestamp_candidate
from fleetdock.runtime.models import (
    ContainerInfo,
    HostDescriptor,
    ImageInfo,
    ImageRemoveResult,
    IPAMConfig,
    IPAMPool,
    NetworkContainer,
    NetworkDetails,
    NetworkInfo,
)

logger = logging.getLogger(__name__)

# Exec reads are forwarded as they arrive, at most this many bytes at a time
EXEC_READ_SIZE = 32 * 1024


@runtime_checkable
class ByteSource(Protocol):
    """A closable blocking byte stream (multiplexed log output)."""

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; b"" means end of stream."""
        ...

    def close(self) -> None:
        """Close the stream, unblocking any pending read."""
        ...


@runtime_checkable
class StatsSource(Protocol):
    """A closable iterator of raw stats snapshots (decoded JSON objects)."""

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class ExecStream(Protocol):
    """The duplex byte stream attached to an exec session."""

    def read(self, size: int) -> bytes:
        ...

    def write(self, data: bytes) -> None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class RuntimeEndpoint(Protocol):
    """Uniform client capability for one container-runtime host."""

    name: str

    def ping(self) -> bool: ...
    def close(self) -> None: ...

    # Containers
    def list_containers(self, all: bool = True) -> List[ContainerInfo]: ...
    def inspect_container(self, container_id: str) -> Dict[str, Any]: ...
    def start_container(self, container_id: str) -> None: ...
    def stop_container(self, container_id: str) -> None: ...
    def restart_container(self, container_id: str) -> None: ...
    def remove_container(self, container_id: str) -> None: ...
    def create_container(self, config: Dict[str, Any], name: Optional[str] = None) -> str: ...

    # Images
    def list_images(self) -> List[ImageInfo]: ...
    def inspect_image(self, image_id: str) -> ImageInfo: ...
    def remove_image(self, image_id: str, force: bool = False) -> ImageRemoveResult: ...
    def pull_image(self, image_name: str) -> Iterator[Dict[str, Any]]: ...

    # Networks
    def list_networks(self) -> List[NetworkInfo]: ...
    def inspect_network(self, network_id: str) -> NetworkDetails: ...

    # Telemetry
    def stats_once(self, container_id: str) -> Dict[str, Any]: ...
    def open_stats(self, container_id: str) -> StatsSource: ...
    def open_logs(self, container_id: str, options: LogOptions, follow: bool) -> ByteSource: ...

    # Exec
    def exec_create(self, container_id: str, cmd: List[str]) -> str: ...
    def exec_attach(self, exec_id: str) -> ExecStream: ...
    def exec_resize(self, exec_id: str, height: int, width: int) -> None: ...


class _ResponseByteSource:
    """ByteSource over a streamed HTTP response."""

    def __init__(self, response):
        self._response = response

    def read(self, size: int) -> bytes:
        return self._response.raw.read(size) or b""

    def close(self) -> None:
        self._response.close()


class _ResponseStatsSource:
    """StatsSource over a streamed stats response."""

    def __init__(self, api: docker.APIClient, response):
        self._api = api
        self._response = response

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        try:
            for snapshot in self._api._stream_helper(self._response, decode=True):
                yield snapshot
        except (StreamParseError, ValueError) as e:
            raise StatsDecodeError(f"malformed stats snapshot: {e}") from e

    def close(self) -> None:
        self._response.close()


class _SocketExecStream:
    """ExecStream over the hijacked socket returned by exec_start."""

    def __init__(self, sock):
        self._sock = sock
        self._raw = getattr(sock, "_sock", sock)

    def read(self, size: int) -> bytes:
        try:
            return socket_read(self._sock, size) or b""
        except OSError:
            # Closed underneath us by the other relay
            return b""

    def write(self, data: bytes) -> None:
        self._raw.sendall(data)

    def close(self) -> None:
        try:
            self._raw.shutdown(socket.SHUT_RDWR)
        except (OSError, AttributeError):
            pass
        self._sock.close()


def _parse_created(value: Any) -> int:
    """Convert an RFC3339 creation string (or unix int) to unix seconds."""
    if isinstance(value, int):
        return value
    ts = try_parse_timestamp_candidate(str(value)) if value else None
    return int(ts.timestamp()) if ts else 0


class DockerEndpoint:
    """
    RuntimeEndpoint backed by a docker-py client.

    The same implementation serves local sockets, TCP and SSH tunnels; the
    transport is entirely decided when the DockerClient is built.
    """

    def __init__(self, host: HostDescriptor, client: docker.DockerClient):
        """
        Initialize endpoint.

        Args:
            host: Descriptor of the host this client talks to
            client: Connected docker-py client
        """
        self.host = host
        self.name = host.name
        self.client = client

    @property
    def api(self) -> docker.APIClient:
        return self.client.api

    def ping(self) -> bool:
        return bool(self.api.ping())

    def close(self) -> None:
        self.client.close()

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def list_containers(self, all: bool = True) -> List[ContainerInfo]:
        containers = self.api.containers(all=all)
        return [
            ContainerInfo(
                id=c.get("Id", ""),
                names=c.get("Names") or [],
                image=c.get("Image", ""),
                image_id=c.get("ImageID", ""),
                command=c.get("Command", ""),
                created=c.get("Created", 0),
                state=c.get("State", ""),
                status=c.get("Status", ""),
                labels=c.get("Labels") or {},
                host=self.name,
            )
            for c in containers
        ]

    def inspect_container(self, container_id: str) -> Dict[str, Any]:
        return self.api.inspect_container(container_id)

    def start_container(self, container_id: str) -> None:
        self.api.start(container_id)

    def stop_container(self, container_id: str) -> None:
        self.api.stop(container_id)

    def restart_container(self, container_id: str) -> None:
        self.api.restart(container_id)

    def remove_container(self, container_id: str) -> None:
        self.api.remove_container(container_id)

    def create_container(self, config: Dict[str, Any], name: Optional[str] = None) -> str:
        response = self.api.create_container_from_config(config, name=name)
        return response["Id"]

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def list_images(self) -> List[ImageInfo]:
        images = self.api.images(all=False)
        return [
            ImageInfo(
                id=img.get("Id", ""),
                repo_tags=img.get("RepoTags") or [],
                repo_digests=img.get("RepoDigests") or [],
                size=img.get("Size", 0),
                virtual_size=img.get("VirtualSize", 0) or 0,
                created=img.get("Created", 0),
                labels=img.get("Labels") or {},
                host=self.name,
            )
            for img in images
        ]

    def inspect_image(self, image_id: str) -> ImageInfo:
        inspect = self.api.inspect_image(image_id)
        config = inspect.get("Config") or {}
        return ImageInfo(
            id=inspect.get("Id", ""),
            repo_tags=inspect.get("RepoTags") or [],
            repo_digests=inspect.get("RepoDigests") or [],
            size=inspect.get("Size", 0),
            virtual_size=inspect.get("VirtualSize", 0) or 0,
            created=_parse_created(inspect.get("Created")),
            labels=config.get("Labels") or {},
            host=self.name,
        )

    def remove_image(self, image_id: str, force: bool = False) -> ImageRemoveResult:
        responses = self.api.remove_image(image_id, force=force, noprune=False) or []
        result = ImageRemoveResult()
        for item in responses:
            if item.get("Untagged"):
                result.untagged.append(item["Untagged"])
            if item.get("Deleted"):
                result.deleted.append(item["Deleted"])
        return result

    def pull_image(self, image_name: str) -> Iterator[Dict[str, Any]]:
        return self.api.pull(image_name, stream=True, decode=True)

    # ------------------------------------------------------------------
    # Networks
    # ------------------------------------------------------------------

    def list_networks(self) -> List[NetworkInfo]:
        networks = self.api.networks()
        return [
            NetworkInfo(
                id=net.get("Id", ""),
                name=net.get("Name", ""),
                driver=net.get("Driver", ""),
                scope=net.get("Scope", ""),
                internal=bool(net.get("Internal")),
                enable_ipv6=bool(net.get("EnableIPv6")),
                labels=net.get("Labels") or {},
                host=self.name,
                containers=len(net.get("Containers") or {}),
            )
            for net in networks
        ]

    def inspect_network(self, network_id: str) -> NetworkDetails:
        net = self.api.inspect_network(network_id, verbose=True)
        ipam = net.get("IPAM") or {}
        pools = [
            IPAMPool(
                subnet=cfg.get("Subnet", ""),
                gateway=cfg.get("Gateway"),
                ip_range=cfg.get("IPRange"),
                aux_addresses=cfg.get("AuxiliaryAddresses") or {},
            )
            for cfg in ipam.get("Config") or []
        ]
        containers = [
            NetworkContainer(
                container_id=cid,
                container_name=(ctr.get("Name") or "").lstrip("/"),
                ipv4_address=ctr.get("IPv4Address", ""),
                ipv6_address=ctr.get("IPv6Address", ""),
                mac_address=ctr.get("MacAddress", ""),
            )
            for cid, ctr in (net.get("Containers") or {}).items()
        ]
        return NetworkDetails(
            id=net.get("Id", ""),
            name=net.get("Name", ""),
            driver=net.get("Driver", ""),
            scope=net.get("Scope", ""),
            internal=bool(net.get("Internal")),
            enable_ipv6=bool(net.get("EnableIPv6")),
            labels=net.get("Labels") or {},
            host=self.name,
            ipam=IPAMConfig(
                driver=ipam.get("Driver", ""),
                config=pools,
                options=ipam.get("Options") or {},
            ),
            connected_containers=containers,
            options=net.get("Options") or {},
            created=net.get("Created", ""),
        )

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def _disable_read_timeout(self, response) -> None:
        """
        Let a long-lived response block indefinitely between chunks.

        The client timeout still bounds connecting and the response headers;
        after that a followed stream may stay silent for any length of time
        and ends only on EOF, a transport error or close().
        """
        self.api._disable_socket_timeout(self.api._get_raw_response_socket(response))

    def stats_once(self, container_id: str) -> Dict[str, Any]:
        # Non one-shot so precpu_stats is populated and CPU deltas are meaningful
        try:
            return self.api.stats(container_id, decode=False, stream=False)
        except ValueError as e:
            raise StatsDecodeError(f"malformed stats snapshot for {container_id}: {e}") from e

    def open_stats(self, container_id: str) -> StatsSource:
        url = self.api._url("/containers/{0}/stats", container_id)
        response = self.api._get(url, params={"stream": True}, stream=True)
        self.api._raise_for_status(response)
        self._disable_read_timeout(response)
        return _ResponseStatsSource(self.api, response)

    def open_logs(self, container_id: str, options: LogOptions, follow: bool) -> ByteSource:
        params: Dict[str, Any] = {
            "stdout": int(options.show_stdout),
            "stderr": int(options.show_stderr),
            "timestamps": int(options.timestamps),
            "follow": int(follow),
            "details": int(options.details),
            "tail": options.tail or "all",
        }
        if options.since:
            params["since"] = options.since
        if options.until:
            params["until"] = options.until

        url = self.api._url("/containers/{0}/logs", container_id)
        response = self.api._get(url, params=params, stream=True)
        self.api._raise_for_status(response)
        if follow:
            self._disable_read_timeout(response)
        return _ResponseByteSource(response)

    # ------------------------------------------------------------------
    # Exec
    # ------------------------------------------------------------------

    def exec_create(self, container_id: str, cmd: List[str]) -> str:
        response = self.api.exec_create(
            container_id,
            cmd,
            stdin=True,
            stdout=True,
            stderr=True,
            tty=True,
        )
        return response["Id"]

    def exec_attach(self, exec_id: str) -> ExecStream:
        sock = self.api.exec_start(exec_id, tty=True, socket=True)
        # An idle shell must not hit the per-request read timeout
        self.api._disable_socket_timeout(sock)
        return _SocketExecStream(sock)

    def exec_resize(self, exec_id: str, height: int, width: int) -> None:
        self.api.exec_resize(exec_id, height=height, width=width)


__all__ = [
    "ByteSource",
    "DockerEndpoint",
    "EXEC_READ_SIZE",
    "ExecStream",
    "RuntimeEndpoint",
    "StatsSource",
]
