"""Progress channel between an execution driver and a streaming client.

The driver thread emits events; the transport (an HTTP stream, a test)
consumes them. The buffer is bounded: a producer facing a full channel
waits up to `put_timeout` and then treats the consumer as gone, so a stalled
client can never grow memory without limit.

Disconnection is one-way and idempotent. The first `disconnect()` fires
the `on_disconnect` callback (normally session cancellation); later calls
do nothing. Once a terminal event has been emitted the channel accepts
nothing further.
"""

import logging
import queue
import threading
import time
from typing import Callable, Iterator, Optional

from .schemas import ProgressEvent

logger = logging.getLogger(__name__)

_END = object()


class ChannelClosed(Exception):
    """Raised by next_event() once the stream has ended and is drained."""


class ProgressChannel:
    """Bounded, thread-safe event stream with disconnect signalling."""

    def __init__(
        self,
        max_events: int = 256,
        put_timeout: float = 10.0,
        on_disconnect: Optional[Callable[[], None]] = None,
        name: str = "",
    ):
        self.name = name
        self.put_timeout = put_timeout
        self._queue: queue.Queue = queue.Queue(maxsize=max_events)
        self._lock = threading.Lock()
        self._on_disconnect = on_disconnect
        self._disconnected = False
        self._terminal_sent = False
        self._finished = False

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    @property
    def terminal_sent(self) -> bool:
        return self._terminal_sent

    @property
    def finished(self) -> bool:
        return self._finished

    def set_disconnect_handler(self, handler: Callable[[], None]) -> None:
        self._on_disconnect = handler

    # --- Producer side ---

    def emit(self, event: ProgressEvent) -> bool:
        """Queue an event for the consumer.

        Returns False if the event was not delivered: the consumer is gone,
        a terminal event was already sent, or the buffer stayed full for
        longer than put_timeout (which also disconnects the channel).
        """
        with self._lock:
            if self._disconnected or self._terminal_sent or self._finished:
                return False
            if event.terminal:
                self._terminal_sent = True

        try:
            self._queue.put(event, timeout=self.put_timeout)
        except queue.Full:
            logger.warning(
                f"Channel {self.name}: consumer did not drain within "
                f"{self.put_timeout}s, treating as disconnected"
            )
            self.disconnect()
            return False
        return True

    def finish(self) -> None:
        """Mark the end of the stream. Idempotent."""
        with self._lock:
            if self._finished:
                return
            self._finished = True
        try:
            self._queue.put_nowait(_END)
        except queue.Full:
            # Consumer notices via the finished flag once the buffer drains
            pass

    # --- Consumer side ---

    def disconnect(self) -> None:
        """Signal that the consumer went away. Idempotent."""
        with self._lock:
            if self._disconnected:
                return
            self._disconnected = True
            handler = self._on_disconnect
        logger.info(f"Channel {self.name}: consumer disconnected")
        if handler is not None:
            handler()

    def next_event(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Next event, or None if nothing arrived within timeout.

        Raises:
            ChannelClosed: the stream finished and every event was consumed.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            if self._finished and self._queue.empty():
                raise ChannelClosed()
            return None
        if item is _END:
            raise ChannelClosed()
        return item

    def __iter__(self) -> Iterator[ProgressEvent]:
        """Blocking iteration until the stream ends."""
        while True:
            try:
                event = self.next_event(timeout=0.1)
            except ChannelClosed:
                return
            if event is not None:
                yield event

    def drain(self, timeout: float = 30.0) -> list[ProgressEvent]:
        """Collect every event until the stream ends (tests, sync callers)."""
        deadline = time.monotonic() + timeout
        events: list[ProgressEvent] = []
        while time.monotonic() < deadline:
            try:
                event = self.next_event(timeout=0.05)
            except ChannelClosed:
                return events
            if event is not None:
                events.append(event)
        raise TimeoutError(f"Channel {self.name} did not finish within {timeout}s")
