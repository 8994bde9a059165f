"""
Terminal bridge: relays an exec TTY to a remote transport.

Two relays run per session. Container output is read in chunks of up to
32 KiB and forwarded as binary frames. Remote frames are written to the
container's stdin, except text frames that are resize control messages,
which resize the TTY instead. When either relay finishes, both ends are
closed and the other relay is cancelled; nothing outlives the session.
"""

import asyncio
import logging
from typing import List, Optional

from fleetdock.errors import TerminalSessionError
from fleetdock.runtime.endpoint import EXEC_READ_SIZE, ExecStream, RuntimeEndpoint
from fleetdock.runtime.fanout import MultiHostClient
from fleetdock.terminal.models import ExecSession, SessionState, parse_resize
from fleetdock.terminal.transport import RemoteTransport

logger = logging.getLogger(__name__)

# Prefer bash, fall back to sh
SHELL_COMMAND = ["/bin/sh", "-c", "(test -x /bin/bash && exec /bin/bash) || exec /bin/sh"]

TERMINAL_BUFFER_SIZE = EXEC_READ_SIZE

SESSION_ERROR_PREFIX = "Error creating terminal session: "


class TerminalBridge:
    """
    One interactive shell session.

    Usage:
        bridge = TerminalBridge(client, "local", "web", WebSocketTransport(ws))
        await bridge.run()
    """

    def __init__(
        self,
        client: MultiHostClient,
        host_name: str,
        container_id: str,
        transport: RemoteTransport,
    ):
        """
        Initialize terminal bridge.

        Args:
            client: Multi-host client used to resolve the endpoint
            host_name: Host the container runs on
            container_id: Container ID or name
            transport: Accepted remote transport
        """
        self.client = client
        self.host_name = host_name
        self.container_id = container_id
        self.transport = transport

        self.session: Optional[ExecSession] = None
        self.state: Optional[SessionState] = None
        self.history: List[SessionState] = []
        self.error: Optional[Exception] = None

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"Terminal {self.host_name}/{self.container_id}: {state.value}")

    async def run(self) -> None:
        """
        Run the session until either side closes.

        Session creation failures are reported to the remote side as one
        text frame and recorded in ``error``; they are not raised.
        """
        try:
            endpoint = self.client.get_endpoint(self.host_name)
            stream = await self._open(endpoint)
        except Exception as e:
            self.error = e
            logger.error(f"Terminal session init failed for {self.container_id} on {self.host_name}: {e}")
            try:
                await self.transport.send_text(f"{SESSION_ERROR_PREFIX}{e}")
            except Exception as send_error:
                logger.warning(f"Failed to send error message to remote: {send_error}")
            await self._close_transport()
            self._set_state(SessionState.CLOSED)
            return

        self._set_state(SessionState.STREAMING)
        logger.info(f"Terminal session {self.session.exec_id[:12]} started for {self.container_id} on {self.host_name}")

        output_relay = asyncio.create_task(self._relay_output(stream), name="terminal-output")
        input_relay = asyncio.create_task(self._relay_input(endpoint, stream), name="terminal-input")

        try:
            await asyncio.wait({output_relay, input_relay}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._close_stream(stream)
            await self._close_transport()
            for relay in (output_relay, input_relay):
                relay.cancel()
            await asyncio.gather(output_relay, input_relay, return_exceptions=True)
            self._set_state(SessionState.CLOSED)
            logger.info(f"Terminal session for {self.container_id} on {self.host_name} closed")

    async def _open(self, endpoint: RuntimeEndpoint) -> ExecStream:
        """Create and attach the exec instance."""
        try:
            exec_id = await asyncio.to_thread(endpoint.exec_create, self.container_id, SHELL_COMMAND)
        except Exception as e:
            raise TerminalSessionError(f"create exec failed: {e}") from e

        self.session = ExecSession(exec_id=exec_id, host=self.host_name, container_id=self.container_id)
        self._set_state(SessionState.CREATED)

        try:
            stream = await asyncio.to_thread(endpoint.exec_attach, exec_id)
        except Exception as e:
            raise TerminalSessionError(f"attach exec failed: {e}") from e

        self._set_state(SessionState.ATTACHED)
        return stream

    async def _relay_output(self, stream: ExecStream) -> None:
        """Container -> remote."""
        while True:
            try:
                data = await asyncio.to_thread(stream.read, TERMINAL_BUFFER_SIZE)
            except Exception as e:
                logger.warning(f"Error reading from container {self.container_id}: {e}")
                return
            if not data:
                return

            try:
                await self.transport.send_bytes(data)
            except Exception as e:
                logger.warning(f"Error writing to remote: {e}")
                return

    async def _relay_input(self, endpoint: RuntimeEndpoint, stream: ExecStream) -> None:
        """Remote -> container, intercepting resize control frames."""
        while True:
            try:
                frame = await self.transport.receive()
            except Exception as e:
                logger.warning(f"Remote closed unexpectedly: {e}")
                return
            if frame is None:
                return

            if frame.is_text:
                resize = parse_resize(frame.text)
                if resize is not None:
                    await self._resize(endpoint, resize.rows, resize.cols)
                    continue

            try:
                await asyncio.to_thread(stream.write, frame.payload())
            except Exception as e:
                logger.warning(f"Failed to write to container {self.container_id}: {e}")
                return

    async def _resize(self, endpoint: RuntimeEndpoint, rows: int, cols: int) -> None:
        self._set_state(SessionState.RESIZING)
        try:
            await asyncio.to_thread(endpoint.exec_resize, self.session.exec_id, rows, cols)
        except Exception as e:
            logger.warning(f"Failed to resize terminal to {cols}x{rows}: {e}")
        self._set_state(SessionState.STREAMING)

    def _close_stream(self, stream: ExecStream) -> None:
        try:
            stream.close()
        except Exception as e:
            logger.debug(f"Ignoring exec stream close error: {e}")

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug(f"Ignoring transport close error: {e}")
