"""
Multiplexed log stream demultiplexer.

Non-TTY containers interleave stdout and stderr on one connection. Each
frame carries an 8-byte header: one stream byte, three zero bytes, and the
payload size as a big-endian uint32.
"""

import logging
import struct
from typing import Callable, Dict, Iterator, Tuple

from fleetdock.errors import LogStreamError
from fleetdock.logs.models import LogEntry, LogStream
from fleetdock.logs.parser import parse_log_line
from fleetdock.runtime.endpoint import ByteSource

logger = logging.getLogger(__name__)

HEADER_SIZE = 8
HEADER_FORMAT = ">BxxxL"

STREAM_STDIN = 0
STREAM_STDOUT = 1
STREAM_STDERR = 2
STREAM_SYSTEMERR = 3

# Stdin echo shows up as stream 0 and is shown with stdout
_STREAM_ROUTES = {
    STREAM_STDIN: LogStream.STDOUT,
    STREAM_STDOUT: LogStream.STDOUT,
    STREAM_STDERR: LogStream.STDERR,
}


def read_exact(source: ByteSource, size: int) -> bytes:
    """
    Read exactly ``size`` bytes unless the stream ends first.

    Returns:
        The bytes read; shorter than ``size`` only at end of stream
    """
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def iter_frames(source: ByteSource) -> Iterator[Tuple[LogStream, bytes]]:
    """
    Yield (stream, payload) for each frame until clean end of stream.

    Raises:
        LogStreamError: On a truncated frame, an unknown stream byte, or a
            runtime system-error frame (stream 3)
    """
    while True:
        header = read_exact(source, HEADER_SIZE)
        if not header:
            return
        if len(header) < HEADER_SIZE:
            raise LogStreamError(
                f"truncated frame header: got {len(header)} of {HEADER_SIZE} bytes"
            )

        stream_type, size = struct.unpack(HEADER_FORMAT, header)
        payload = read_exact(source, size)
        if len(payload) < size:
            raise LogStreamError(
                f"truncated frame payload: got {len(payload)} of {size} bytes"
            )

        if stream_type == STREAM_SYSTEMERR:
            raise LogStreamError(
                f"runtime error: {payload.decode('utf-8', errors='replace').strip()}"
            )

        stream = _STREAM_ROUTES.get(stream_type)
        if stream is None:
            raise LogStreamError(f"unrecognized stream type {stream_type} in frame header")

        yield stream, payload


class LineAssembler:
    """
    Per-stream line buffer.

    Frames do not align with lines: one frame may hold several lines or a
    fraction of one. Bytes are buffered until a newline; each complete line
    loses one trailing carriage return and empty lines are skipped.
    """

    def __init__(self, on_line: Callable[[str], None]):
        self._on_line = on_line
        self._buffer = bytearray()

    def write(self, data: bytes) -> None:
        self._buffer.extend(data)
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                return
            line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            self._emit(line)

    def flush(self) -> None:
        """Emit whatever is left without a trailing newline."""
        if self._buffer:
            line = bytes(self._buffer)
            self._buffer.clear()
            self._emit(line)

    def _emit(self, line: bytes) -> None:
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line:
            return
        self._on_line(line.decode("utf-8", errors="replace"))


def demux_log_entries(source: ByteSource, on_entry: Callable[[LogEntry], None]) -> None:
    """
    Demultiplex a log stream into parsed entries, in source order.

    Each stream has its own LineAssembler, so a partial stdout line is not
    broken by an interleaved stderr frame. Remainders are flushed when the
    stream ends, cleanly or not, before any error propagates.

    Args:
        source: Multiplexed byte stream
        on_entry: Called once per parsed line

    Raises:
        LogStreamError: If the stream is malformed or reports an error
    """
    assemblers: Dict[LogStream, LineAssembler] = {
        stream: LineAssembler(lambda line, stream=stream: on_entry(parse_log_line(line, stream)))
        for stream in (LogStream.STDOUT, LogStream.STDERR)
    }

    try:
        for stream, payload in iter_frames(source):
            assemblers[stream].write(payload)
    finally:
        for assembler in assemblers.values():
            assembler.flush()
