"""
Thread-to-asyncio stream hand-off.

docker-py streams are blocking iterators. A worker thread drives the
blocking read loop and hands items to the event loop through a bounded
asyncio.Queue. When the queue is full the worker blocks, so a slow
consumer slows the reader down instead of losing data.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, AsyncIterator, Callable, Set

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

# How long closing a stream waits for the worker thread to notice
STOP_TIMEOUT = 2.0

_EOF = object()


class ConsumerGone(Exception):
    """Raised inside the producer when the consumer stopped reading."""
    pass


class _Failure:
    """Wraps a producer exception so it can travel through the queue."""

    def __init__(self, error: BaseException):
        self.error = error


Emit = Callable[[Any], None]


async def stream_from_thread(
    produce: Callable[[Emit], None],
    close: Callable[[], None],
    maxsize: int = DEFAULT_QUEUE_SIZE,
    name: str = "stream",
) -> AsyncIterator[Any]:
    """
    Run ``produce`` in a worker thread and yield what it emits, in order.

    ``produce(emit)`` calls ``emit(item)`` for every item; ``emit`` blocks
    while the queue is full and raises ConsumerGone once the consumer has
    stopped. A normal return from ``produce`` ends the stream; an exception
    is re-raised to the consumer after every item emitted before it.

    When the consumer stops early (break, cancellation, aclose) ``close`` is
    called to unblock the reader and the worker is given STOP_TIMEOUT to
    finish.

    Args:
        produce: Blocking read loop
        close: Closes the underlying source
        maxsize: Queue capacity
        name: Label used in log messages
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
    stop = threading.Event()
    # Puts the worker is blocked on; cancelled by the consumer on exit
    pending: Set[concurrent.futures.Future] = set()
    pending_lock = threading.Lock()

    def put(item: Any) -> None:
        with pending_lock:
            if stop.is_set():
                raise ConsumerGone()
            future = asyncio.run_coroutine_threadsafe(queue.put(item), loop)
            pending.add(future)
        try:
            future.result()
        except concurrent.futures.CancelledError:
            raise ConsumerGone()
        finally:
            with pending_lock:
                pending.discard(future)

    def run() -> None:
        try:
            produce(put)
        except ConsumerGone:
            return
        except Exception as e:
            if stop.is_set():
                # Reads fail once the source is closed underneath them
                logger.debug(f"{name}: reader stopped after close: {e}")
                return
            try:
                put(_Failure(e))
            except ConsumerGone:
                return
            return

        try:
            put(_EOF)
        except ConsumerGone:
            return

    worker = asyncio.ensure_future(asyncio.to_thread(run))

    try:
        while True:
            item = await queue.get()
            if item is _EOF:
                return
            if isinstance(item, _Failure):
                raise item.error
            yield item
    finally:
        with pending_lock:
            stop.set()
            blocked = list(pending)
        for future in blocked:
            future.cancel()
        try:
            close()
        except Exception as e:
            logger.debug(f"{name}: ignoring close error: {e}")
        if not worker.done():
            done, _ = await asyncio.wait({worker}, timeout=STOP_TIMEOUT)
            if not done:
                logger.warning(f"{name}: reader thread still blocked after close")


__all__ = ["ConsumerGone", "DEFAULT_QUEUE_SIZE", "stream_from_thread"]
