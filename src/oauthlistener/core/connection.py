"""
=============================================================================
CONNECTION WRAPPER
=============================================================================

Wraps one accepted client socket with deadline-bounded reads, a
fault-raising write and a tidy close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

A browser POSTing a redirect URL sends headers and body in one go, but TCP
is free to deliver them in any number of pieces:

    Client sends:   POST /submit ... Content-Length: 57\r\n\r\nhttp://...

    Server might see:
        recv() → "POST /submit ... \r\n\r\nhttp://127.0"   (prefix of body)
        recv() → ".0.1:8765/?code=abc&state=xyz"            (the rest)

The listener deliberately does NOT loop until the whole request arrives.
It performs exactly two kinds of read:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   read_initial()     ONE recv() of up to buffer_size bytes          │
    │                      Request line, headers and usually the body.    │
    │                                                                      │
    │   read_exact(n)      Fill exactly n more bytes (the body shortfall) │
    │                      Only used when Content-Length says the body    │
    │                      did not fully arrive in the first read.        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
DEADLINES
=============================================================================

Handling is strictly sequential, so one client that declares a body and
never sends it would block the whole listener. Every read is therefore
bounded by `timeout` seconds. read_exact() uses one overall deadline, not a
per-recv() timeout, so a client trickling one byte at a time cannot stretch
it out.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED
     │         │                                      ▲
     └─────────┴──────────── (fault / abandon) ───────┘

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..errors import ConnectionReadFault, IncompleteBodyStall, ResponseWriteFault


logger = logging.getLogger(__name__)

# Upper bound on how long close() waits for leftover client bytes.
DRAIN_TIMEOUT = 0.1


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and idempotent close."""
    NEW = "new"                # Just accepted
    READING = "reading"        # Waiting on recv()
    PROCESSING = "processing"  # Parsing / classifying
    WRITING = "writing"        # Sending the fixed response
    CLOSING = "closing"        # Shutdown sequence running
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    One accepted client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used as a log prefix.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        buffer_size: Size of the single initial read.
        timeout: Deadline in seconds for each read operation.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 4096
    timeout: Optional[float] = 30.0

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since accept()."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_initial(self) -> bytes:
        """
        Perform the single initial read.

        Returns:
            Up to buffer_size bytes. Empty bytes mean the client closed the
            connection without sending anything.

        Raises:
            ConnectionReadFault: The read failed or hit the deadline.
        """
        self.state = ConnectionState.READING
        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout as e:
            raise ConnectionReadFault(f"Initial read timed out after {self.timeout}s") from e
        except OSError as e:
            raise ConnectionReadFault(f"Initial read failed: {e}") from e
        finally:
            self.state = ConnectionState.PROCESSING
        return data

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly `size` more bytes before the deadline.

        Args:
            size: Number of bytes still missing.

        Returns:
            Exactly `size` bytes.

        Raises:
            IncompleteBodyStall: The deadline passed or the client closed
                                 before `size` bytes arrived.
            ConnectionReadFault: The socket reported an error.
        """
        self.state = ConnectionState.READING
        buffer = bytearray(size)
        view = memoryview(buffer)
        received = 0
        deadline = time.monotonic() + self.timeout if self.timeout else None

        try:
            while received < size:
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise IncompleteBodyStall(size, received)
                    self.socket.settimeout(remaining)

                try:
                    count = self.socket.recv_into(view[received:], size - received)
                except socket.timeout as e:
                    raise IncompleteBodyStall(size, received) from e
                except OSError as e:
                    raise ConnectionReadFault(f"Body read failed: {e}") from e

                if count == 0:
                    # Client closed mid-body
                    raise IncompleteBodyStall(size, received)
                received += count
        finally:
            self.socket.settimeout(self.timeout)
            self.state = ConnectionState.PROCESSING

        return bytes(buffer)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> None:
        """
        Send the whole response.

        sendall() keeps writing until every byte is handed to the kernel.

        Raises:
            ResponseWriteFault: The client went away or the socket failed.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            raise ResponseWriteFault(f"Send failed: {e}") from e

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR) sends FIN so the client sees end-of-response.
        2. Briefly drain anything left unread; closing with unread data
           makes the kernel send RST, which can eat the response.
        3. close() releases the file descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        drain_deadline = time.monotonic() + DRAIN_TIMEOUT
        try:
            while True:
                remaining = drain_deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(1024):
                    break
        except OSError:
            pass  # socket.timeout is an OSError too

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
