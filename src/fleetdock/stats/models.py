"""
Stats data models.

RawDockerStats mirrors the subset of the runtime's stats document that is
used; every section defaults to zero so partial snapshots still decode.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CPUUsage(BaseModel):
    total_usage: int = 0
    percpu_usage: Optional[List[int]] = None


class CPUStats(BaseModel):
    cpu_usage: CPUUsage = Field(default_factory=CPUUsage)
    system_cpu_usage: int = 0
    online_cpus: int = 0


class MemoryStats(BaseModel):
    usage: int = 0
    limit: int = 0


class InterfaceStats(BaseModel):
    rx_bytes: int = 0
    tx_bytes: int = 0


class BlkioEntry(BaseModel):
    op: str = ""
    value: int = 0


class BlkioStats(BaseModel):
    io_service_bytes_recursive: Optional[List[BlkioEntry]] = None


class PidsStats(BaseModel):
    current: int = 0


class RawDockerStats(BaseModel):
    """One raw stats snapshot as returned by the runtime."""

    read: str = ""
    preread: str = ""
    cpu_stats: CPUStats = Field(default_factory=CPUStats)
    precpu_stats: CPUStats = Field(default_factory=CPUStats)
    memory_stats: MemoryStats = Field(default_factory=MemoryStats)
    networks: Optional[Dict[str, InterfaceStats]] = None
    blkio_stats: BlkioStats = Field(default_factory=BlkioStats)
    pids_stats: PidsStats = Field(default_factory=PidsStats)


class ContainerStats(BaseModel):
    """
    Derived resource usage of one container at one instant.

    Counters (network, block I/O) are cumulative since container start.
    """

    container_id: str = Field(..., description="Container ID")
    host: str = Field(..., description="Host name")
    cpu_percent: float = Field(0.0, description="CPU usage; may exceed 100 on multi-core hosts")
    memory_usage: int = Field(0, description="Memory usage in bytes")
    memory_limit: int = Field(0, description="Memory limit in bytes")
    memory_percent: float = Field(0.0, description="Memory usage as percent of limit")
    network_rx: int = Field(0, description="Bytes received, summed over interfaces")
    network_tx: int = Field(0, description="Bytes sent, summed over interfaces")
    block_read: int = Field(0, description="Bytes read from block devices")
    block_write: int = Field(0, description="Bytes written to block devices")
    pids: int = Field(0, description="Number of processes")
    timestamp: int = Field(0, description="Snapshot time (unix seconds)")

    class Config:
        json_schema_extra = {
            "example": {
                "container_id": "3f4e1c2a9b7d",
                "host": "local",
                "cpu_percent": 12.5,
                "memory_usage": 104857600,
                "memory_limit": 2147483648,
                "memory_percent": 4.88,
                "network_rx": 1048576,
                "network_tx": 524288,
                "block_read": 4096,
                "block_write": 8192,
                "pids": 12,
                "timestamp": 1736937000,
            }
        }
