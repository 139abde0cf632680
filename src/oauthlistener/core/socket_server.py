"""
=============================================================================
LOOPBACK TCP LISTENER
=============================================================================

Binds one socket on 127.0.0.1 and runs the sequential accept loop.

=============================================================================
PORT SELECTION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ports=None            bind(("127.0.0.1", 0))                      │
    │                         └── the OS picks a free ephemeral port      │
    │                                                                      │
    │   ports=[8765, 8766]    bind 8765 ── fails? ──► bind 8766 ──► ...   │
    │                         └── first success wins, earlier failures    │
    │                             are ignored                             │
    │                                                                      │
    │   nothing bound         BindError (raised synchronously)            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only loopback is ever bound, so nothing outside this machine can reach the
listener.

SO_REUSEADDR is set (outside Windows) so a port left in TIME_WAIT by a
previous run can be bound again right away. SO_REUSEPORT is deliberately
NOT set: with it, a second process could bind the same port and steal the
redirect.

=============================================================================
THE ACCEPT LOOP
=============================================================================

    while True:
        accept()                 ◄── blocks; one client at a time
            │
            ├── OSError ──► log, keep accepting
            │
            └── Connection(...)
                    │
                    └── handler(conn) → True  keep serving
                                      → False stop, close listening socket

There is no "running" flag that another thread flips. The only way to stop
the loop is to send it a connection that the handler answers with False
(the exit path, or the cancellation magic bytes).

=============================================================================
"""

import os
import socket
import logging
import threading
import time
from typing import Callable, List, Optional

from ..config import LOOPBACK_HOST, OAuthConfig
from ..errors import BindError
from .connection import Connection


logger = logging.getLogger(__name__)

# Pause after a failed accept() so a persistent error (e.g. EMFILE) cannot spin.
ACCEPT_ERROR_BACKOFF = 0.05

ConnectionHandler = Callable[[Connection], bool]


class LoopbackListener:
    """
    Owns the listening socket: binds it, accepts on it, closes it.

    Usage:
        listener = LoopbackListener(config)
        port = listener.bind()              # may raise BindError
        listener.serve_forever(handler)     # blocks until handler says stop
    """

    def __init__(self, config: OAuthConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._port: Optional[int] = None
        self._serving = False
        self._stopped_event = threading.Event()

    @property
    def port(self) -> Optional[int]:
        """The bound port, or None before bind()."""
        return self._port

    # =========================================================================
    # BOOTSTRAP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        """Create a TCP socket with the options described above."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if os.name != "nt":
            # On Windows SO_REUSEADDR lets another socket hijack a bound port.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return sock

    def _try_bind(self, port: int) -> socket.socket:
        sock = self._create_socket()
        try:
            sock.bind((LOOPBACK_HOST, port))
            sock.listen(self.config.backlog)
        except OSError:
            sock.close()
            raise
        return sock

    def bind(self) -> int:
        """
        Bind the loopback socket according to config.ports.

        Returns:
            The bound port number.

        Raises:
            BindError: No candidate port (or no ephemeral port) could be bound.
        """
        if self._socket is not None:
            raise RuntimeError("Listener is already bound")

        candidates: List[int] = [0] if self.config.ports is None else list(self.config.ports)
        last_error: Optional[OSError] = None

        for port in candidates:
            try:
                self._socket = self._try_bind(port)
            except OSError as e:
                logger.debug(f"Could not bind {LOOPBACK_HOST}:{port}: {e}")
                last_error = e
                continue
            break

        if self._socket is None:
            if self.config.ports is None:
                message = f"Could not bind an ephemeral port on {LOOPBACK_HOST}"
            elif not candidates:
                message = "No candidate ports were given"
            else:
                message = f"None of the candidate ports {candidates} could be bound"
            raise BindError(message, self.config.ports) from last_error

        self._port = self._socket.getsockname()[1]
        logger.info(f"Listening on {LOOPBACK_HOST}:{self._port}")
        return self._port

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def serve_forever(self, connection_handler: ConnectionHandler) -> None:
        """
        Accept connections one at a time until the handler asks to stop.

        Args:
            connection_handler: Called with each Connection; returns False
                                to stop the loop after that connection.
        """
        if self._socket is None:
            raise RuntimeError("bind() must be called before serve_forever()")

        self._serving = True
        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: ConnectionHandler) -> None:
        while True:
            try:
                client_socket, client_address = self._socket.accept()
            except OSError as e:
                if self._socket.fileno() == -1:
                    logger.error(f"Listening socket closed underneath the loop: {e}")
                    return
                logger.error(f"Error accepting incoming connection: {e}")
                time.sleep(ACCEPT_ERROR_BACKOFF)
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.read_timeout,
            )

            try:
                keep_serving = connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection handler error: {e}")
                keep_serving = True
            finally:
                conn.close()

            if not keep_serving:
                return

    def _cleanup(self):
        """Release the listening socket and wake anyone waiting."""
        self._serving = False
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        logger.info(f"Listener on {LOOPBACK_HOST}:{self._port} stopped")
        self._stopped_event.set()

    def close(self):
        """
        Release a socket that was bound but never served.

        A running loop is stopped through the network instead (see
        server.cancel()); this is only for cleaning up after bind().
        """
        if self._serving:
            raise RuntimeError("Listener is serving; use cancel() to stop it")
        self._cleanup()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the accept loop to finish.

        Returns:
            True if the loop has exited, False on timeout.
        """
        return self._stopped_event.wait(timeout)
