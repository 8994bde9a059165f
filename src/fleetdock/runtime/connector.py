"""
Runtime endpoint connector.

Builds one connected endpoint per configured host. This is the only place
where a single unreachable host is fatal: the process must not run with a
partially initialized host table.
"""

import logging
from typing import Callable, Dict, List, Optional

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from fleetdock.errors import HostConnectionError
from fleetdock.runtime.endpoint import DockerEndpoint, RuntimeEndpoint
from fleetdock.runtime.models import HostDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


def build_docker_client(
    host: HostDescriptor,
    timeout: int = DEFAULT_TIMEOUT,
    use_ssh_client: bool = True,
) -> docker.DockerClient:
    """
    Build a docker-py client for a host descriptor.

    Strategies:
    - local: default transport for the URI (unix socket or named pipe)
    - tcp: direct dial to host:port, no TLS assumed
    - ssh: docker-py's SSH connection helper; with ``use_ssh_client`` the
      system ssh binary provides the tunnel and every request goes through
      it rather than a direct socket

    ``version="auto"`` negotiates the API version, which dials the endpoint
    immediately and surfaces unreachable hosts at startup.

    Args:
        host: Host to connect to
        timeout: Request timeout in seconds
        use_ssh_client: Use the ssh binary for ssh:// endpoints

    Returns:
        Connected DockerClient
    """
    kwargs = {
        "base_url": host.endpoint_uri,
        "version": "auto",
        "timeout": timeout,
    }
    if host.transport == "ssh":
        kwargs["use_ssh_client"] = use_ssh_client
    elif host.transport == "tcp":
        kwargs["tls"] = False

    return docker.DockerClient(**kwargs)


ClientFactory = Callable[[HostDescriptor], RuntimeEndpoint]


def connect_hosts(
    hosts: List[HostDescriptor],
    timeout: int = DEFAULT_TIMEOUT,
    use_ssh_client: bool = True,
    factory: Optional[ClientFactory] = None,
) -> Dict[str, RuntimeEndpoint]:
    """
    Connect to every configured host or fail fast.

    Args:
        hosts: Host descriptors from configuration
        timeout: Request timeout in seconds
        use_ssh_client: Use the ssh binary for ssh:// endpoints
        factory: Optional endpoint factory (defaults to DockerEndpoint)

    Returns:
        Map of host name to connected endpoint

    Raises:
        HostConnectionError: If any host cannot be reached, or a name repeats
    """
    if factory is None:
        def factory(host: HostDescriptor) -> RuntimeEndpoint:
            client = build_docker_client(host, timeout=timeout, use_ssh_client=use_ssh_client)
            endpoint = DockerEndpoint(host, client)
            endpoint.ping()
            return endpoint

    endpoints: Dict[str, RuntimeEndpoint] = {}

    for host in hosts:
        if host.name in endpoints:
            _close_all(endpoints)
            raise HostConnectionError(
                host.name, host.endpoint_uri, ValueError("duplicate host name")
            )

        try:
            endpoints[host.name] = factory(host)
        except Exception as e:
            if isinstance(e, (DockerException, RequestException, OSError)):
                logger.error(f"Failed to connect to host {host.name} ({host.endpoint_uri}): {e}")
            else:
                logger.error(
                    f"Unexpected error connecting to host {host.name} ({host.endpoint_uri}): {e}",
                    exc_info=True,
                )
            _close_all(endpoints)
            raise HostConnectionError(host.name, host.endpoint_uri, e) from e

        logger.info(f"Connected to host {host.name} via {host.transport} ({host.endpoint_uri})")

    return endpoints


def _close_all(endpoints: Dict[str, RuntimeEndpoint]) -> None:
    """Release clients that were already connected before a startup failure."""
    for name, endpoint in endpoints.items():
        close = getattr(endpoint, "close", None)
        if close is None:
            continue
        try:
            close()
        except Exception as e:
            logger.debug(f"Ignoring close error for host {name}: {e}")
