"""
Tests for host connection and the fan-out query engine.
"""

import asyncio
import time

import pytest
from docker.errors import DockerException
from paramiko.ssh_exception import SSHException

from conftest import FakeEndpoint, container, make_client
from fleetdock.errors import HostConnectionError, HostNotFoundError
from fleetdock.runtime.connector import connect_hosts
from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.runtime.models import HostDescriptor


class SlowEndpoint(FakeEndpoint):
    def list_containers(self, all: bool = True):
        time.sleep(0.2)
        return super().list_containers(all=all)


class TestQueryAll:
    """Partial results across hosts."""

    @pytest.mark.asyncio
    async def test_partial_results(self):
        good = FakeEndpoint("alpha")
        good.containers = [container("a1", "api", host="alpha")]
        bad = FakeEndpoint("beta")
        bad.fail["list_containers"] = ConnectionError("connection refused")

        result = await make_client(good, bad).list_containers_all_hosts()

        assert list(result.results) == ["alpha"]
        assert [c.name for c in result.results["alpha"]] == ["api"]
        assert len(result.errors) == 1
        assert result.errors[0].host_name == "beta"
        assert "connection refused" in str(result.errors[0])
        assert result.total == 2

    @pytest.mark.asyncio
    async def test_slow_host_does_not_block_others(self):
        slow = SlowEndpoint("slow")
        fast = FakeEndpoint("fast")
        fast.containers = [container("f1", "fast-one", host="fast")]

        result = await make_client(slow, fast).list_containers_all_hosts()

        assert set(result.results) == {"slow", "fast"}
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_zero_hosts(self):
        result = await MultiHostClient({}).list_containers_all_hosts()
        assert result.results == {}
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_ping_all(self):
        result = await make_client(FakeEndpoint("a"), FakeEndpoint("b")).ping_all_hosts()
        assert result.results == {"a": True, "b": True}

    @pytest.mark.asyncio
    async def test_cancel_stops_workers(self):
        client = make_client(SlowEndpoint("slow"), FakeEndpoint("fast"))
        task = asyncio.create_task(client.list_containers_all_hosts())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        pending = [t for t in asyncio.all_tasks() if t.get_name().startswith("fanout-") and not t.done()]
        assert pending == []


class TestSingleHost:
    """Operations addressed to one host."""

    @pytest.mark.asyncio
    async def test_unknown_host(self, client):
        with pytest.raises(HostNotFoundError, match="nowhere"):
            await client.start_container("nowhere", "web")

    @pytest.mark.asyncio
    async def test_lifecycle_calls(self, client, endpoint):
        await client.stop_container("local", "web")
        await client.restart_container("local", "web")
        assert endpoint.calls == [("stop_container", "web"), ("restart_container", "web")]

    @pytest.mark.asyncio
    async def test_env_variables(self, client, endpoint):
        endpoint.inspect["web"] = {"Config": {"Env": ["A=1", "B=x=y", "BROKEN", "C="]}}
        env = await client.get_env_variables("local", "web")
        assert env == {"A": "1", "B": "x=y", "C": ""}

    @pytest.mark.asyncio
    async def test_remove_image_force(self, client, endpoint):
        result = await client.remove_image("local", "sha256:abc", force=True)
        assert result.untagged == ["sha256:abc"]
        assert endpoint.calls[-1] == ("remove_image", "sha256:abc", True)

    @pytest.mark.asyncio
    async def test_pull_image_progress(self, client, endpoint):
        endpoint.pull_messages = [
            {"status": "Pulling from library/nginx", "id": "latest"},
            {"status": "Downloading", "id": "a1b2", "progressDetail": {"current": 10, "total": 100}},
            {"status": "Status: Downloaded newer image for nginx:latest"},
        ]

        progress = [p async for p in client.pull_image("local", "nginx")]

        assert [p.status for p in progress][0] == "Pulling from library/nginx"
        assert progress[1].current == 10
        assert progress[1].total == 100
        assert progress[2].id is None


class TestConnectHosts:
    """Startup connection."""

    def test_connects_every_host(self):
        hosts = [
            HostDescriptor(name="local", endpoint_uri="unix:///var/run/docker.sock"),
            HostDescriptor(name="edge", endpoint_uri="ssh://root@edge"),
        ]
        endpoints = connect_hosts(hosts, factory=lambda h: FakeEndpoint(h.name))
        assert list(endpoints) == ["local", "edge"]

    def test_one_unreachable_host_aborts(self):
        created = []

        def factory(host):
            if host.name == "edge":
                raise DockerException("Error while fetching server API version")
            endpoint = FakeEndpoint(host.name)
            created.append(endpoint)
            return endpoint

        hosts = [
            HostDescriptor(name="local", endpoint_uri="unix:///var/run/docker.sock"),
            HostDescriptor(name="edge", endpoint_uri="tcp://edge:2375"),
        ]
        with pytest.raises(HostConnectionError) as exc_info:
            connect_hosts(hosts, factory=factory)

        assert exc_info.value.host_name == "edge"
        assert "tcp://edge:2375" in str(exc_info.value)
        assert created[0].closed

    def test_non_transport_error_aborts_and_closes(self):
        created = []

        def factory(host):
            if host.name == "edge":
                raise SSHException("No existing session")
            endpoint = FakeEndpoint(host.name)
            created.append(endpoint)
            return endpoint

        hosts = [
            HostDescriptor(name="local", endpoint_uri="unix:///var/run/docker.sock"),
            HostDescriptor(name="edge", endpoint_uri="ssh://deploy@edge"),
        ]
        with pytest.raises(HostConnectionError) as exc_info:
            connect_hosts(hosts, factory=factory)

        assert exc_info.value.host_name == "edge"
        assert isinstance(exc_info.value.__cause__, SSHException)
        assert created[0].closed

    def test_duplicate_names_rejected(self):
        hosts = [
            HostDescriptor(name="local", endpoint_uri="unix:///var/run/docker.sock"),
            HostDescriptor(name="local", endpoint_uri="tcp://other:2375"),
        ]
        with pytest.raises(HostConnectionError, match="duplicate"):
            connect_hosts(hosts, factory=lambda h: FakeEndpoint(h.name))

    def test_transport_from_uri(self):
        assert HostDescriptor(name="a", endpoint_uri="unix:///var/run/docker.sock").transport == "local"
        assert HostDescriptor(name="b", endpoint_uri="tcp://10.0.0.2:2375").transport == "tcp"
        assert HostDescriptor(name="c", endpoint_uri="ssh://deploy@10.0.0.3").transport == "ssh"
