"""
Tests for the interactive terminal bridge.
"""

import asyncio

import pytest
from fastapi.websockets import WebSocketState

from conftest import FakeTransport
from fleetdock.terminal.bridge import SESSION_ERROR_PREFIX, SHELL_COMMAND, TerminalBridge
from fleetdock.terminal.models import SessionState, parse_resize
from fleetdock.terminal.transport import RemoteTransport, WebSocketTransport


async def wait_until(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestParseResize:
    """Resize control frames."""

    def test_resize_message(self):
        resize = parse_resize('{"type": "resize", "cols": 120, "rows": 40}')
        assert (resize.cols, resize.rows) == (120, 40)

    @pytest.mark.parametrize("text", [
        "ls -la\n",
        '{"type": "input", "data": "x"}',
        '["resize"]',
        '{"type": "resize", "cols": -1, "rows": 10}',
    ])
    def test_not_a_resize(self, text):
        assert parse_resize(text) is None


class TestTerminalBridge:
    """Session relays and teardown."""

    @pytest.mark.asyncio
    async def test_relays_and_resize(self, client, endpoint):
        transport = FakeTransport()
        bridge = TerminalBridge(client, "local", "web", transport)
        session = asyncio.create_task(bridge.run())

        transport.push_text('{"type": "resize", "cols": 80, "rows": 24}')
        transport.push_bytes(b"ls\n")
        transport.push_text("echo hi\n")
        await wait_until(lambda: len(endpoint.exec_stream.written) == 2)

        endpoint.exec_stream.feed(b"file.txt\r\n")
        await wait_until(lambda: transport.sent_bytes)

        transport.disconnect()
        await asyncio.wait_for(session, timeout=5)

        assert endpoint.resizes == [("exec1234567890abcdef", 24, 80)]
        assert endpoint.exec_stream.written == [b"ls\n", b"echo hi\n"]
        assert transport.sent_bytes == [b"file.txt\r\n"]
        assert ("exec_create", "web", tuple(SHELL_COMMAND)) in endpoint.calls

    @pytest.mark.asyncio
    async def test_remote_disconnect_closes_stream(self, client, endpoint):
        transport = FakeTransport()
        bridge = TerminalBridge(client, "local", "web", transport)
        session = asyncio.create_task(bridge.run())

        await wait_until(lambda: bridge.state == SessionState.STREAMING)
        transport.disconnect()
        await asyncio.wait_for(session, timeout=5)

        assert endpoint.exec_stream.closed
        assert bridge.state == SessionState.CLOSED
        assert bridge.history[:3] == [SessionState.CREATED, SessionState.ATTACHED, SessionState.STREAMING]

    @pytest.mark.asyncio
    async def test_container_exit_closes_transport(self, client, endpoint):
        transport = FakeTransport()
        bridge = TerminalBridge(client, "local", "web", transport)
        session = asyncio.create_task(bridge.run())

        endpoint.exec_stream.feed(b"bye\n")
        endpoint.exec_stream.end()
        await asyncio.wait_for(session, timeout=5)

        assert transport.closed
        assert transport.sent_bytes == [b"bye\n"]
        assert bridge.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_creation_failure_sends_error(self, client, endpoint):
        endpoint.fail["exec_create"] = RuntimeError("container is not running")
        transport = FakeTransport()
        bridge = TerminalBridge(client, "local", "web", transport)

        await asyncio.wait_for(bridge.run(), timeout=5)

        assert len(transport.sent_text) == 1
        assert transport.sent_text[0].startswith(SESSION_ERROR_PREFIX)
        assert "container is not running" in transport.sent_text[0]
        assert transport.closed
        assert bridge.session is None
        assert bridge.history == [SessionState.CLOSED]
        assert bridge.error is not None

    @pytest.mark.asyncio
    async def test_resize_failure_keeps_session(self, client, endpoint):
        endpoint.fail["exec_resize"] = RuntimeError("exec is not running")
        transport = FakeTransport()
        bridge = TerminalBridge(client, "local", "web", transport)
        session = asyncio.create_task(bridge.run())

        transport.push_text('{"type": "resize", "cols": 100, "rows": 30}')
        transport.push_bytes(b"pwd\n")
        await wait_until(lambda: endpoint.exec_stream.written)

        transport.disconnect()
        await asyncio.wait_for(session, timeout=5)

        assert SessionState.RESIZING in bridge.history
        assert endpoint.exec_stream.written == [b"pwd\n"]


class FakeWebSocket:
    def __init__(self, messages):
        self.messages = list(messages)
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []

    async def receive(self):
        return self.messages.pop(0)

    async def send_bytes(self, data):
        self.sent.append(data)

    async def send_text(self, text):
        self.sent.append(text)

    async def close(self):
        if self.application_state == WebSocketState.DISCONNECTED:
            raise RuntimeError("Cannot call close once a close message has been sent")
        self.application_state = WebSocketState.DISCONNECTED


class TestWebSocketTransport:
    """FastAPI WebSocket adapter."""

    @pytest.mark.asyncio
    async def test_frames(self):
        websocket = FakeWebSocket([
            {"type": "websocket.receive", "text": "ls\n"},
            {"type": "websocket.receive", "bytes": b"\x03"},
            {"type": "websocket.disconnect", "code": 1000},
        ])
        transport = WebSocketTransport(websocket)

        first = await transport.receive()
        second = await transport.receive()
        assert first.is_text and first.text == "ls\n"
        assert not second.is_text and second.payload() == b"\x03"
        assert await transport.receive() is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        transport = WebSocketTransport(FakeWebSocket([]))
        await transport.close()
        await transport.close()
        assert isinstance(transport, RemoteTransport)
