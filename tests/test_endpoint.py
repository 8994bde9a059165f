"""
Tests for the docker-py backed endpoint.
"""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock

import docker
import pytest

from conftest import frame
from fleetdock.logs.demux import demux_log_entries
from fleetdock.logs.models import LogOptions
from fleetdock.runtime.endpoint import DockerEndpoint, RuntimeEndpoint
from fleetdock.runtime.models import HostDescriptor


@pytest.fixture
def docker_client():
    return MagicMock()


@pytest.fixture
def docker_endpoint(docker_client):
    host = HostDescriptor(name="edge", endpoint_uri="ssh://ops@edge")
    return DockerEndpoint(host, docker_client)


class TestDockerEndpoint:
    def test_satisfies_protocol(self, docker_endpoint):
        assert isinstance(docker_endpoint, RuntimeEndpoint)

    def test_list_containers(self, docker_endpoint, docker_client):
        docker_client.api.containers.return_value = [{
            "Id": "3f4e1c2a9b7d",
            "Names": ["/web"],
            "Image": "nginx:latest",
            "State": "running",
            "Status": "Up 2 hours",
            "Created": 1705314600,
            "Labels": None,
        }]

        [info] = docker_endpoint.list_containers()

        docker_client.api.containers.assert_called_once_with(all=True)
        assert info.host == "edge"
        assert info.name == "web"
        assert info.running
        assert info.labels == {}

    def test_create_container(self, docker_endpoint, docker_client):
        docker_client.api.create_container_from_config.return_value = {"Id": "abc123", "Warnings": []}
        assert docker_endpoint.create_container({"Image": "nginx"}, name="web") == "abc123"
        docker_client.api.create_container_from_config.assert_called_once_with({"Image": "nginx"}, name="web")

    def test_inspect_image_created(self, docker_endpoint, docker_client):
        docker_client.api.inspect_image.return_value = {
            "Id": "sha256:abc",
            "RepoTags": ["nginx:latest"],
            "Created": "2024-01-15T10:30:00.123456789Z",
            "Config": {"Labels": {"maintainer": "ops"}},
        }
        image = docker_endpoint.inspect_image("nginx")
        assert image.created == 1705314600
        assert image.labels == {"maintainer": "ops"}

    def test_remove_image(self, docker_endpoint, docker_client):
        docker_client.api.remove_image.return_value = [
            {"Untagged": "nginx:latest"},
            {"Deleted": "sha256:abc"},
            {"Deleted": "sha256:def"},
        ]
        result = docker_endpoint.remove_image("nginx", force=True)
        assert result.untagged == ["nginx:latest"]
        assert result.deleted == ["sha256:abc", "sha256:def"]
        docker_client.api.remove_image.assert_called_once_with("nginx", force=True, noprune=False)

    def test_inspect_network(self, docker_endpoint, docker_client):
        docker_client.api.inspect_network.return_value = {
            "Id": "net1",
            "Name": "frontend",
            "Driver": "bridge",
            "IPAM": {"Driver": "default", "Config": [{"Subnet": "172.20.0.0/16", "Gateway": "172.20.0.1"}]},
            "Containers": {"c1": {"Name": "web", "IPv4Address": "172.20.0.2/16"}},
        }
        details = docker_endpoint.inspect_network("net1")
        assert details.ipam.config[0].subnet == "172.20.0.0/16"
        assert details.connected_containers[0].container_name == "web"
        assert details.host == "edge"

    def test_open_logs_params(self, docker_endpoint, docker_client):
        api = docker_client.api
        api._url.return_value = "http+docker://edge/containers/web/logs"

        docker_endpoint.open_logs("web", LogOptions(tail="", since="10m"), follow=True)

        _, kwargs = api._get.call_args
        assert kwargs["stream"] is True
        params = kwargs["params"]
        assert params["follow"] == 1
        assert params["timestamps"] == 1
        assert params["tail"] == "all"
        assert params["since"] == "10m"
        assert "until" not in params
        api._raise_for_status.assert_called_once()

    def test_exec_create_uses_tty(self, docker_endpoint, docker_client):
        docker_client.api.exec_create.return_value = {"Id": "exec1"}
        assert docker_endpoint.exec_create("web", ["/bin/sh"]) == "exec1"
        _, kwargs = docker_client.api.exec_create.call_args
        assert kwargs["tty"] is True
        assert kwargs["stdin"] is True

    def test_exec_resize(self, docker_endpoint, docker_client):
        docker_endpoint.exec_resize("exec1", height=24, width=80)
        docker_client.api.exec_resize.assert_called_once_with("exec1", height=24, width=80)

    def test_followed_logs_disable_read_timeout(self, docker_endpoint, docker_client):
        api = docker_client.api
        docker_endpoint.open_logs("web", LogOptions(), follow=True)

        api._get_raw_response_socket.assert_called_once_with(api._get.return_value)
        api._disable_socket_timeout.assert_called_once_with(api._get_raw_response_socket.return_value)

    def test_bounded_logs_keep_read_timeout(self, docker_endpoint, docker_client):
        docker_endpoint.open_logs("web", LogOptions(), follow=False)
        docker_client.api._disable_socket_timeout.assert_not_called()

    def test_stats_stream_disables_read_timeout(self, docker_endpoint, docker_client):
        docker_endpoint.open_stats("web")
        docker_client.api._disable_socket_timeout.assert_called_once()

    def test_exec_socket_disables_read_timeout(self, docker_endpoint, docker_client):
        docker_endpoint.exec_attach("exec1")
        docker_client.api._disable_socket_timeout.assert_called_once_with(
            docker_client.api.exec_start.return_value
        )


STALL_SECONDS = 2.0
CLIENT_TIMEOUT = 1


class StallingLogsHandler(BaseHTTPRequestHandler):
    """Docker logs endpoint that goes quiet between two frames."""

    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/vnd.docker.multiplexed-stream")
        self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()

        self._send_chunk(frame(1, b"first\n"))
        time.sleep(STALL_SECONDS)
        self._send_chunk(frame(1, b"second\n"))
        self.wfile.write(b"0\r\n\r\n")
        self.wfile.flush()
        self.close_connection = True

    def _send_chunk(self, data: bytes) -> None:
        self.wfile.write(f"{len(data):x}\r\n".encode() + data + b"\r\n")
        self.wfile.flush()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def stalling_daemon():
    server = ThreadingHTTPServer(("127.0.0.1", 0), StallingLogsHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"tcp://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


class TestFollowedStreamOverHTTP:
    """Live log streams against a real HTTP connection."""

    def test_quiet_period_longer_than_timeout(self, stalling_daemon):
        client = docker.DockerClient(base_url=stalling_daemon, version="1.41", timeout=CLIENT_TIMEOUT)
        endpoint = DockerEndpoint(HostDescriptor(name="lab", endpoint_uri=stalling_daemon), client)
        entries = []
        try:
            source = endpoint.open_logs("web", LogOptions(), follow=True)
            try:
                demux_log_entries(source, entries.append)
            finally:
                source.close()
        finally:
            client.close()

        assert [e.message for e in entries] == ["first", "second"]
