"""
TCP transport for billing channels.

SocketChannel gives a connected TCP socket the Channel interface:
non-blocking reads drain whatever the kernel has buffered, blocking reads
wait up to `timeout` seconds per attempt.
"""

import logging
import socket
import time
from typing import Tuple

from billing_channel import Channel
from billing_errors import TransportError
from distributed.config import DEFAULT_READ_RETRIES, DEFAULT_READ_TIMEOUT

logger = logging.getLogger(__name__)

RECV_SIZE = 4096


class SocketChannel(Channel):
    """Channel over a connected stream socket."""

    def __init__(self, sock: socket.socket, timeout: float = DEFAULT_READ_TIMEOUT):
        super().__init__()
        self.sock = sock
        self.timeout = timeout

    def _write(self, data: bytes) -> int:
        self.sock.settimeout(self.timeout)
        try:
            self.sock.sendall(data)
        except OSError as e:
            raise TransportError(f"Socket write failed: {e}") from e
        return len(data)

    def _fill(self, block: bool) -> bytes:
        chunks = []

        if block:
            self.sock.settimeout(self.timeout)
            try:
                chunk = self.sock.recv(RECV_SIZE)
            except socket.timeout:
                raise TransportError("Timed out waiting for data") from None
            except OSError as e:
                raise TransportError(f"Socket read failed: {e}") from e
            if not chunk:
                self.peer_closed = True
                raise TransportError("Channel closed by peer")
            chunks.append(chunk)

        # Drain what is already buffered without waiting
        self.sock.setblocking(False)
        try:
            while True:
                try:
                    chunk = self.sock.recv(RECV_SIZE)
                except BlockingIOError:
                    break
                except OSError as e:
                    raise TransportError(f"Socket read failed: {e}") from e
                if not chunk:
                    self.peer_closed = True
                    break
                chunks.append(chunk)
        finally:
            self.sock.settimeout(self.timeout)

        return b"".join(chunks)

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        self.sock.close()


def listen(addr: Tuple[str, int], timeout: float = DEFAULT_READ_TIMEOUT) -> SocketChannel:
    """Wait for one peer to connect to addr and return the channel to it."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        server.bind(addr)
        server.listen(1)
        logger.info("Listening on %s:%d", *addr)
        conn, peer = server.accept()
    except OSError as e:
        raise TransportError(f"Could not accept on {addr[0]}:{addr[1]}: {e}") from e
    finally:
        server.close()

    logger.info("Accepted connection from %s:%d", *peer[:2])
    return SocketChannel(conn, timeout)


def connect(addr: Tuple[str, int], timeout: float = DEFAULT_READ_TIMEOUT,
            retries: int = DEFAULT_READ_RETRIES, retry_interval: float = 1.0) -> SocketChannel:
    """Connect to addr, retrying while the peer is not listening yet."""
    for attempt in range(retries):
        try:
            sock = socket.create_connection(addr, timeout=timeout)
        except ConnectionRefusedError:
            logger.debug("Connection to %s:%d refused (attempt %d/%d)",
                         addr[0], addr[1], attempt + 1, retries)
            time.sleep(retry_interval)
            continue
        except OSError as e:
            raise TransportError(f"Could not connect to {addr[0]}:{addr[1]}: {e}") from e
        logger.info("Connected to %s:%d", *addr)
        return SocketChannel(sock, timeout)

    raise TransportError(f"Could not connect to {addr[0]}:{addr[1]} after {retries} attempts")
