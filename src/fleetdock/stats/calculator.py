"""
Stats calculator.

Pure functions deriving usage figures from raw runtime snapshots.
"""

import logging
from typing import Any, Dict, Tuple, Union

from pydantic import ValidationError

from fleetdock.errors import StatsDecodeError
from fleetdock.logs.parser import try_parse_timestamp_candidate
from fleetdock.stats.models import ContainerStats, RawDockerStats

logger = logging.getLogger(__name__)


def calculate_cpu_percent(raw: RawDockerStats) -> float:
    """
    Calculate CPU usage percentage between the current and previous sample.

    Formula: (cpu_delta / system_delta) * online_cpus * 100, only when both
    deltas are positive. When the runtime reports zero online CPUs the
    length of the per-CPU usage list is used instead.

    Args:
        raw: Raw stats snapshot

    Returns:
        CPU percentage, 0.0 when the deltas are not both positive
    """
    cpu_delta = raw.cpu_stats.cpu_usage.total_usage - raw.precpu_stats.cpu_usage.total_usage
    system_delta = raw.cpu_stats.system_cpu_usage - raw.precpu_stats.system_cpu_usage

    if cpu_delta <= 0 or system_delta <= 0:
        return 0.0

    online_cpus = raw.cpu_stats.online_cpus
    if online_cpus == 0:
        online_cpus = len(raw.cpu_stats.cpu_usage.percpu_usage or [])

    return (cpu_delta / system_delta) * online_cpus * 100.0


def calculate_memory_percent(raw: RawDockerStats) -> float:
    """Memory usage as a percentage of the limit (0.0 without a limit)."""
    if raw.memory_stats.limit <= 0:
        return 0.0
    return raw.memory_stats.usage / raw.memory_stats.limit * 100.0


def sum_network_io(raw: RawDockerStats) -> Tuple[int, int]:
    """Sum received and sent bytes over all interfaces."""
    rx = tx = 0
    for interface in (raw.networks or {}).values():
        rx += interface.rx_bytes
        tx += interface.tx_bytes
    return rx, tx


def sum_block_io(raw: RawDockerStats) -> Tuple[int, int]:
    """Sum block read and write bytes; other operations are ignored."""
    read = write = 0
    for entry in raw.blkio_stats.io_service_bytes_recursive or []:
        op = entry.op.lower()
        if op == "read":
            read += entry.value
        elif op == "write":
            write += entry.value
    return read, write


def snapshot_timestamp(raw: RawDockerStats) -> int:
    """Unix seconds of the snapshot's read time (0 when absent)."""
    if not raw.read:
        return 0
    ts = try_parse_timestamp_candidate(raw.read)
    if ts is None:
        logger.debug(f"Unparseable stats read time: {raw.read!r}")
        return 0
    return int(ts.timestamp())


def decode_raw_stats(snapshot: Union[Dict[str, Any], RawDockerStats]) -> RawDockerStats:
    """
    Validate a decoded JSON snapshot.

    Raises:
        StatsDecodeError: If the snapshot does not have the expected shape
    """
    if isinstance(snapshot, RawDockerStats):
        return snapshot
    try:
        return RawDockerStats.model_validate(snapshot)
    except ValidationError as e:
        raise StatsDecodeError(f"malformed stats snapshot: {e}") from e


def parse_docker_stats(
    snapshot: Union[Dict[str, Any], RawDockerStats],
    container_id: str,
    host: str,
) -> ContainerStats:
    """
    Convert a raw snapshot into ContainerStats.

    Args:
        snapshot: Decoded stats document (or an already validated model)
        container_id: Container the snapshot belongs to
        host: Host name

    Returns:
        Derived ContainerStats
    """
    raw = decode_raw_stats(snapshot)
    network_rx, network_tx = sum_network_io(raw)
    block_read, block_write = sum_block_io(raw)

    return ContainerStats(
        container_id=container_id,
        host=host,
        cpu_percent=calculate_cpu_percent(raw),
        memory_usage=raw.memory_stats.usage,
        memory_limit=raw.memory_stats.limit,
        memory_percent=calculate_memory_percent(raw),
        network_rx=network_rx,
        network_tx=network_tx,
        block_read=block_read,
        block_write=block_write,
        pids=raw.pids_stats.current,
        timestamp=snapshot_timestamp(raw),
    )
