#!/usr/bin/env python3
"""
fleetctl - fleetdock operational CLI

A lightweight CLI for day-2 operations:
- Host connectivity checks (fleetctl doctor)
- Containers across hosts (fleetctl ps)
- Logs and stats of one container (fleetctl logs / fleetctl stats)
- Foreground alert monitoring (fleetctl monitor)
- Version info (fleetctl version)
"""

import argparse
import asyncio
import sys
from datetime import datetime
from typing import List, Optional, Tuple

from fleetdock import __version__, configure_logging
from fleetdock.core.config import AppConfig, get_config
from fleetdock.errors import FleetdockError, HostConnectionError
from fleetdock.logs.models import LogEntry, LogLevel, LogOptions
from fleetdock.logs.ndjson import encode_log_entry
from fleetdock.plane import ControlPlane
from fleetdock.runtime.connector import connect_hosts
from fleetdock.runtime.models import HostDescriptor
from fleetdock.stats.models import ContainerStats


class Colors:
    """ANSI color codes for terminal output."""

    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


LEVEL_COLORS = {
    LogLevel.PANIC: Colors.RED,
    LogLevel.FATAL: Colors.RED,
    LogLevel.ERROR: Colors.RED,
    LogLevel.WARN: Colors.YELLOW,
    LogLevel.INFO: Colors.GREEN,
    LogLevel.DEBUG: Colors.BLUE,
}


def colorize(text: str, color: str) -> str:
    """Colorize text if stdout is a TTY."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def format_check_result(name: str, status: str, message: str, width: int = 40) -> str:
    """Format a check result line."""
    padding = " " * max(1, width - len(name))

    if status == "OK":
        status_str = colorize("[OK]", Colors.GREEN)
    elif status == "WARN":
        status_str = colorize("[WARN]", Colors.YELLOW)
    else:  # ERROR
        status_str = colorize("[ERROR]", Colors.RED)

    return f"{name}:{padding}{status_str} {message}"


def format_log_entry(entry: LogEntry) -> str:
    """Render an entry as one human-readable line."""
    timestamp = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S") if entry.timestamp else "-" * 19
    level = colorize(f"{entry.level.value:<7}", LEVEL_COLORS.get(entry.level, Colors.RESET))
    return f"{timestamp} {level} [{entry.stream.value}] {entry.message}"


def format_stats(stats: ContainerStats) -> str:
    """Render a stats snapshot as one line."""
    return (
        f"{stats.container_id[:12]}  cpu {stats.cpu_percent:6.2f}%  "
        f"mem {stats.memory_percent:6.2f}% ({stats.memory_usage // (1024 * 1024)} MiB)  "
        f"net {stats.network_rx}/{stats.network_tx} B  "
        f"blk {stats.block_read}/{stats.block_write} B  pids {stats.pids}"
    )


async def check_host(host: HostDescriptor, config: AppConfig) -> Tuple[str, str]:
    """
    Check that one host is reachable.

    Returns:
        (status, message) where status is "OK" or "ERROR"
    """
    try:
        endpoints = await asyncio.to_thread(
            connect_hosts,
            [host],
            config.docker.timeout,
            config.docker.use_ssh_client,
        )
    except HostConnectionError as e:
        return "ERROR", str(e.cause or e)

    endpoint = endpoints[host.name]
    close = getattr(endpoint, "close", None)
    if close is not None:
        close()
    return "OK", f"reachable via {host.transport}"


async def build_plane(config: AppConfig) -> Optional[ControlPlane]:
    """Connect every host; print the failure and return None if one is down."""
    try:
        return await asyncio.to_thread(ControlPlane.from_config, config)
    except HostConnectionError as e:
        print(colorize(f"✗ {e}", Colors.RED), file=sys.stderr)
        return None


async def cmd_doctor(args) -> int:
    """
    Check every configured host and print a summary.

    Returns:
        Exit code (0 if every host is reachable, 1 otherwise)
    """
    config = get_config()

    print(colorize("\nfleetdock Doctor", Colors.BOLD))
    print(colorize("=" * 60, Colors.BOLD))
    print()

    hosts = config.docker.descriptors()
    results = await asyncio.gather(*(check_host(host, config) for host in hosts))

    all_ok = True
    for host, (status, message) in zip(hosts, results):
        print(format_check_result(f"{host.name} ({host.endpoint_uri})", status, message))
        if status == "ERROR":
            all_ok = False

    mode = "read-only" if config.read_only else "read-write"
    print(format_check_result("Mode", "OK", mode))
    alerts = "enabled" if config.alerts.enabled else "disabled"
    print(format_check_result("Alerts", "OK" if config.alerts.enabled else "WARN", alerts))

    print()

    if all_ok:
        print(colorize("✓ All hosts reachable", Colors.GREEN))
        return 0
    else:
        print(colorize("✗ One or more hosts unreachable", Colors.RED))
        return 1


async def cmd_ps(args) -> int:
    """List containers on every host."""
    plane = await build_plane(get_config())
    if plane is None:
        return 1

    try:
        listing = await plane.list_across_hosts()
    finally:
        await plane.stop()

    print(f"{'HOST':<12} {'CONTAINER ID':<14} {'NAME':<28} {'IMAGE':<30} STATUS")
    for host_name in sorted(listing.results):
        for container in listing.results[host_name]:
            if not args.all and not container.running:
                continue
            print(
                f"{host_name:<12} {container.id[:12]:<14} {container.name[:28]:<28} "
                f"{container.image[:30]:<30} {container.status}"
            )

    for error in listing.errors:
        print(colorize(f"✗ {error}", Colors.RED), file=sys.stderr)

    return 1 if listing.errors else 0


async def cmd_logs(args) -> int:
    """Print or follow the logs of one container."""
    plane = await build_plane(get_config())
    if plane is None:
        return 1

    options = LogOptions(tail=args.tail, since=args.since, follow=args.follow)

    def emit(entry: LogEntry) -> None:
        if args.json:
            sys.stdout.write(encode_log_entry(entry).decode("utf-8"))
        else:
            print(format_log_entry(entry))
        sys.stdout.flush()

    try:
        if args.follow:
            entries = plane.stream_logs(args.host, args.container, options)
            try:
                async for entry in entries:
                    emit(entry)
            finally:
                await entries.aclose()
        else:
            for entry in await plane.fetch_logs(args.host, args.container, options):
                emit(entry)
    except FleetdockError as e:
        print(colorize(f"✗ {e}", Colors.RED), file=sys.stderr)
        return 1
    finally:
        await plane.stop()

    return 0


async def cmd_stats(args) -> int:
    """Print one or a stream of stats snapshots for a container."""
    plane = await build_plane(get_config())
    if plane is None:
        return 1

    try:
        if args.once:
            print(format_stats(await plane.get_stats_once(args.host, args.container)))
            return 0

        count = 0
        snapshots = plane.stream_stats(args.host, args.container)
        try:
            async for stats in snapshots:
                print(format_stats(stats), flush=True)
                count += 1
                if args.count and count >= args.count:
                    break
        finally:
            await snapshots.aclose()
    except FleetdockError as e:
        print(colorize(f"✗ {e}", Colors.RED), file=sys.stderr)
        return 1
    finally:
        await plane.stop()

    return 0


async def cmd_monitor(args) -> int:
    """Run the alert monitor in the foreground and print new alerts."""
    config = get_config()
    config.alerts.enabled = True
    if args.interval:
        config.alerts.check_interval = args.interval

    plane = await build_plane(config)
    if plane is None:
        return 1

    monitor = plane.monitor
    print(colorize(f"Monitoring {len(plane.client.host_names)} host(s)...", Colors.BOLD))

    ticks = 0
    try:
        while not args.ticks or ticks < args.ticks:
            for alert in await monitor.check_once():
                when = datetime.fromtimestamp(alert.timestamp).strftime("%H:%M:%S")
                print(colorize(f"[{when}] {alert.type.value:<18} {alert.host}/{alert.container_name}: {alert.message}", Colors.YELLOW))
            ticks += 1
            if args.ticks and ticks >= args.ticks:
                break
            await asyncio.sleep(config.alerts.check_interval)
    finally:
        await monitor.flush()
        print(f"{monitor.unacknowledged_count()} unacknowledged alert(s)")
        await plane.stop()

    return 0


def cmd_version(args) -> int:
    """
    Print version information.

    Returns:
        Exit code (always 0)
    """
    print(f"fleetctl version {__version__}")
    print("fleetdock - multi-host container control and telemetry plane")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for fleetctl."""
    parser = argparse.ArgumentParser(
        prog="fleetctl",
        description="fleetdock operational CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fleetctl doctor                    # Check every configured host
  fleetctl ps -a                     # All containers on all hosts
  fleetctl logs local web --follow   # Follow parsed logs
  fleetctl stats local web --once    # One stats snapshot
  fleetctl monitor --ticks 3         # Run three alert scans
  fleetctl version                   # Show version information

Environment variables:
  DOCKER_HOSTS                       # name=uri pairs (default: local=unix:///var/run/docker.sock)
  ALERTS_CPU_THRESHOLD               # CPU alert threshold in percent (default: 80)
  ALERTS_MEMORY_THRESHOLD            # Memory alert threshold in percent (default: 90)
  ALERTS_WEBHOOK_URL                 # Webhook for new alerts (optional)
  LOG_LEVEL                          # Logging level (default: INFO)
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # doctor command
    subparsers.add_parser(
        "doctor",
        help="Check connectivity to every configured host"
    )

    # ps command
    ps_parser = subparsers.add_parser(
        "ps",
        help="List containers across hosts"
    )
    ps_parser.add_argument(
        "-a", "--all",
        action="store_true",
        help="Include stopped containers"
    )

    # logs command
    logs_parser = subparsers.add_parser(
        "logs",
        help="Show parsed logs of a container"
    )
    logs_parser.add_argument("host", help="Host name")
    logs_parser.add_argument("container", help="Container ID or name")
    logs_parser.add_argument(
        "--tail",
        default="100",
        help="Number of lines from the end of the logs, or 'all' (default: 100)"
    )
    logs_parser.add_argument(
        "--since",
        default=None,
        help="Only logs since this timestamp or relative duration"
    )
    logs_parser.add_argument(
        "-f", "--follow",
        action="store_true",
        help="Follow log output"
    )
    logs_parser.add_argument(
        "--json",
        action="store_true",
        help="Print newline-delimited JSON"
    )

    # stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Show resource usage of a container"
    )
    stats_parser.add_argument("host", help="Host name")
    stats_parser.add_argument("container", help="Container ID or name")
    stats_parser.add_argument(
        "--once",
        action="store_true",
        help="Print a single snapshot and exit"
    )
    stats_parser.add_argument(
        "--count",
        type=int,
        default=0,
        help="Stop after this many snapshots (default: unlimited)"
    )

    # monitor command
    monitor_parser = subparsers.add_parser(
        "monitor",
        help="Run alert scans in the foreground"
    )
    monitor_parser.add_argument(
        "--ticks",
        type=int,
        default=0,
        help="Number of scans to run (default: until interrupted)"
    )
    monitor_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between scans (default: ALERTS_CHECK_INTERVAL)"
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information"
    )

    return parser


COMMANDS = {
    "doctor": cmd_doctor,
    "ps": cmd_ps,
    "logs": cmd_logs,
    "stats": cmd_stats,
    "monitor": cmd_monitor,
}


def main(argv: Optional[List[str]] = None):
    """Main entry point for fleetctl CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "version":
        return cmd_version(args)

    handler = COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    configure_logging(get_config().log_level)
    try:
        return asyncio.run(handler(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
