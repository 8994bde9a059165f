"""
Runtime endpoint data models: hosts, containers, images and networks.
"""

from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class HostDescriptor(BaseModel):
    """
    A configured runtime endpoint.

    Immutable after startup; exactly one connected endpoint exists per
    descriptor for the lifetime of the process.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique host key")
    endpoint_uri: str = Field(..., description="unix://, tcp:// or ssh:// endpoint")

    @property
    def transport(self) -> str:
        """Connection strategy derived from the URI scheme: local, tcp or ssh."""
        uri = self.endpoint_uri.strip().lower()
        if uri.startswith("ssh://"):
            return "ssh"
        if uri.startswith(("tcp://", "http://", "https://")):
            return "tcp"
        return "local"


class HostError(BaseModel):
    """
    A per-host failure returned next to partial results.

    This is a value, not an exception: multi-host calls never fail as a
    whole because one host is down.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    host_name: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.host_name}: {self.error}"


class FanOutResult(BaseModel, Generic[T]):
    """Partial results of a query run against every host."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    results: Dict[str, T] = Field(default_factory=dict)
    errors: List[HostError] = Field(default_factory=list)

    @property
    def total(self) -> int:
        """Number of hosts that answered, successfully or not."""
        return len(self.results) + len(self.errors)


class ContainerIdentity(BaseModel):
    """
    Identity of a container on a host.

    ``id`` changes whenever the container is recreated; ``(host, name)`` is
    the stable handle.
    """

    id: str
    names: List[str] = Field(default_factory=list)
    host: str

    @property
    def name(self) -> str:
        """Primary name without the leading slash."""
        if not self.names:
            return self.id[:12]
        return self.names[0].lstrip("/")


class ContainerInfo(ContainerIdentity):
    """Container summary as listed by a runtime endpoint."""

    image: str = ""
    image_id: str = ""
    command: str = ""
    created: int = 0
    state: str = ""
    status: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.state == "running"


class ImageInfo(BaseModel):
    """A container image on one host."""

    id: str
    repo_tags: List[str] = Field(default_factory=list)
    repo_digests: List[str] = Field(default_factory=list)
    size: int = 0
    virtual_size: int = 0
    created: int = 0
    labels: Dict[str, str] = Field(default_factory=dict)
    host: str


class ImagePullProgress(BaseModel):
    """One progress message emitted while pulling an image."""

    status: str = ""
    progress: Optional[str] = None
    current: Optional[int] = None
    total: Optional[int] = None
    id: Optional[str] = None
    error: Optional[str] = None


class ImageRemoveResult(BaseModel):
    """Tags and layers removed by an image removal."""

    untagged: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)


class NetworkInfo(BaseModel):
    """A network on one host."""

    id: str
    name: str
    driver: str = ""
    scope: str = ""
    internal: bool = False
    enable_ipv6: bool = False
    labels: Dict[str, str] = Field(default_factory=dict)
    host: str
    containers: int = Field(default=0, description="Count of connected containers")


class IPAMPool(BaseModel):
    """An IP address pool."""

    subnet: str = ""
    gateway: Optional[str] = None
    ip_range: Optional[str] = None
    aux_addresses: Dict[str, str] = Field(default_factory=dict)


class IPAMConfig(BaseModel):
    """IP address management configuration of a network."""

    driver: str = ""
    config: List[IPAMPool] = Field(default_factory=list)
    options: Dict[str, str] = Field(default_factory=dict)


class NetworkContainer(BaseModel):
    """A container attached to a network."""

    container_id: str
    container_name: str
    ipv4_address: str = ""
    ipv6_address: str = ""
    mac_address: str = ""


class NetworkDetails(BaseModel):
    """Detailed network information, including attached containers."""

    id: str
    name: str
    driver: str = ""
    scope: str = ""
    internal: bool = False
    enable_ipv6: bool = False
    labels: Dict[str, str] = Field(default_factory=dict)
    host: str
    ipam: IPAMConfig = Field(default_factory=IPAMConfig)
    connected_containers: List[NetworkContainer] = Field(default_factory=list)
    options: Dict[str, str] = Field(default_factory=dict)
    created: str = ""
