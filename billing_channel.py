"""
Billing Channels
================

Byte-stream channels between the billing roles.

A channel buffers whatever has arrived and hands out complete messages only:
- read_exact(n) for fixed-size blobs (price updates)
- read_lines(k) for line-oriented records (meter records, bill proofs)

Non-blocking reads return None when no complete message is buffered and
leave partial data in place for the next call. Blocking reads wait for the
rest of a message and raise TransportError if it never comes.

MemoryChannel (see pipe()) connects two endpoints inside one process and is
what the tests use. distributed.transport.SocketChannel carries the same
interface over TCP.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from billing_errors import TransportError

logger = logging.getLogger(__name__)


class Channel(ABC):
    """Buffered, message-oriented view of a byte stream."""

    def __init__(self):
        self._buffer = bytearray()
        self.peer_closed = False

    @abstractmethod
    def _write(self, data: bytes) -> int:
        """Write data, returning the number of bytes written."""

    @abstractmethod
    def _fill(self, block: bool) -> bytes:
        """
        Return the bytes that have arrived since the last call.

        Non-blocking: may return b''. Blocking: returns at least one byte,
        or raises TransportError. Sets peer_closed at end of stream.
        """

    def close(self) -> None:
        pass

    def send(self, data: bytes) -> None:
        """
        Write data in one call.

        Raises
        ------
        TransportError
            On a short write; the stream is then unusable
        """
        written = self._write(data)
        if written != len(data):
            raise TransportError(f"Short write: {written} of {len(data)} bytes")
        logger.debug("Sent %d bytes", written)

    def _pull(self, block: bool) -> None:
        if block and self.peer_closed:
            raise TransportError("Channel closed by peer")
        self._buffer += self._fill(block)

    def pending(self) -> int:
        """Number of buffered bytes not yet consumed."""
        return len(self._buffer)

    def read_exact(self, n: int, block: bool = False) -> Optional[bytes]:
        """Return exactly n bytes, or None if non-blocking and fewer are available."""
        if len(self._buffer) < n:
            self._pull(block=False)
        while len(self._buffer) < n:
            if not block:
                return None
            self._pull(block=True)
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def _line_end(self, count: int) -> int:
        """Index just past the count-th newline in the buffer, or -1."""
        end = 0
        for _ in range(count):
            newline = self._buffer.find(b"\n", end)
            if newline < 0:
                return -1
            end = newline + 1
        return end

    def read_lines(self, count: int, block: bool = False) -> Optional[List[bytes]]:
        """
        Return count newline-terminated lines without their terminators.

        Non-blocking calls return None unless all count lines are buffered.
        """
        return self._lines(count, block, consume=True)

    def peek_lines(self, count: int, block: bool = False) -> Optional[List[bytes]]:
        """Like read_lines(), but leaves the lines in the buffer."""
        return self._lines(count, block, consume=False)

    def _lines(self, count: int, block: bool, consume: bool) -> Optional[List[bytes]]:
        end = self._line_end(count)
        if end < 0:
            self._pull(block=False)
            end = self._line_end(count)
        while end < 0:
            if not block:
                return None
            self._pull(block=True)
            end = self._line_end(count)
        data = bytes(self._buffer[:end])
        if consume:
            del self._buffer[:end]
        return data.split(b"\n")[:count]


class _Pipe:
    """One direction of an in-memory pipe."""

    def __init__(self):
        self.data = bytearray()
        self.closed = False
        self.cond = threading.Condition()


class MemoryChannel(Channel):
    """
    In-process channel endpoint.

    Parameters
    ----------
    inbox, outbox : _Pipe
        Directions shared with the peer endpoint
    timeout : float
        Seconds a blocking read waits for data before raising TransportError
    """

    def __init__(self, inbox: _Pipe, outbox: _Pipe, timeout: float = 0.0):
        super().__init__()
        self._inbox = inbox
        self._outbox = outbox
        self.timeout = timeout

    def _write(self, data: bytes) -> int:
        with self._outbox.cond:
            if self._outbox.closed:
                raise TransportError("Write on closed channel")
            self._outbox.data += data
            self._outbox.cond.notify_all()
        return len(data)

    def _fill(self, block: bool) -> bytes:
        with self._inbox.cond:
            if block and not self._inbox.data and not self._inbox.closed:
                self._inbox.cond.wait(self.timeout)
            data = bytes(self._inbox.data)
            self._inbox.data.clear()
            if self._inbox.closed and not data:
                self.peer_closed = True
        if block and not data:
            if self.peer_closed:
                raise TransportError("Channel closed by peer")
            raise TransportError("Timed out waiting for data")
        return data

    def close(self) -> None:
        with self._outbox.cond:
            self._outbox.closed = True
            self._outbox.cond.notify_all()


def pipe(timeout: float = 0.0) -> Tuple[MemoryChannel, MemoryChannel]:
    """Create two connected MemoryChannel endpoints."""
    a_to_b, b_to_a = _Pipe(), _Pipe()
    return (MemoryChannel(b_to_a, a_to_b, timeout),
            MemoryChannel(a_to_b, b_to_a, timeout))
