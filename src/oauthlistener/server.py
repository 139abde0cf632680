"""
=============================================================================
OAUTH REDIRECT LISTENER
=============================================================================

Ties the pieces together: bind, run the accept loop on a background
thread, classify each connection, complete its body, answer it, and hand
captured content to the caller.

=============================================================================
HOW A DESKTOP APP USES THIS
=============================================================================

    1. port = start(OAuthConfig(), on_redirect)
    2. Open the provider's consent page with
           redirect_uri=http://127.0.0.1:{port}/
    3. The provider redirects the browser to that URI. The page served
       there POSTs window.location.href to http://127.0.0.1:{port}/submit.
    4. on_redirect(url) runs on the listener thread. VERIFY the state
       parameter in it: anything on this machine can reach the port.
    5. cancel(port), or a request to /exit, stops the listener.

=============================================================================
PER-CONNECTION FLOW
=============================================================================

    read_initial()  ─── fault ──────────────────────────► ABANDONED
         │
         ├── 01 03 03 07 (magic) ───────────────────────► CANCELLED  (stop)
         │
    parse head
         │
         ├── MalformedRequest ──────────► respond ──────► MALFORMED
         ├── path == exit_path ─────────► respond ──────► EXIT_PATH  (stop)
         ├── path == submit_path and Content-Length > 0
         │       │
         │       ├── body already in buffer? ── no ──► read_exact(shortfall)
         │       │                                          │
         │       │                                   stall ─┴─► ABANDONED
         │       └── respond ──► CAPTURED (non-empty) ──► handler(content)
         │
         └── anything else ─────────────► respond ──────► IGNORED

=============================================================================
TWO WAYS TO STOP
=============================================================================

Both are authoritative and both are handled explicitly:

    GET /exit HTTP/1.1     an HTTP request, answered with the fixed
                           response before the loop stops. Usable from a
                           browser or any HTTP client.

    01 03 03 07            four raw bytes sent by cancel(). Not HTTP, so
                           nothing is written back.

There is no shared "running" flag: stopping always goes through the
socket, so the accept thread owns all of its state. The price is that
stopping is observable (and triggerable) by anything on this machine.

=============================================================================
"""

import logging
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .access_log import ConnectionLog, log_connection
from .config import LOOPBACK_HOST, OAuthConfig
from .core import Connection, LoopbackListener
from .errors import CancellationUnreachable, ConnectionReadFault, ResponseWriteFault
from .http import FIXED_RESPONSE, MalformedRequest, ParsedRequest, ParseResult, RequestParser


logger = logging.getLogger(__name__)


EXIT_MAGIC = bytes([1, 3, 3, 7])

CaptureHandler = Callable[[str], None]


class Outcome(Enum):
    """What happened to one connection."""
    CAPTURED = "captured"      # Submission with non-empty body
    IGNORED = "ignored"        # Valid request, nothing to capture
    MALFORMED = "malformed"    # Not a request line + header block
    EXIT_PATH = "exit_path"    # Request to the exit path
    CANCELLED = "cancelled"    # Cancellation magic bytes
    ABANDONED = "abandoned"    # Read fault, stall, or client sent nothing

    @property
    def stops_listener(self) -> bool:
        return self in (Outcome.EXIT_PATH, Outcome.CANCELLED)


@dataclass
class ConnectionResult:
    """Classification of one connection plus anything it captured."""

    outcome: Outcome
    content: Optional[str] = None
    request: Optional[ParseResult] = None


class OAuthListener:
    """
    A one-shot loopback listener for OAuth redirects.

    Usage:
        listener = OAuthListener(OAuthConfig(ports=[8765]), on_redirect)
        port = listener.start()      # raises BindError if nothing binds
        ...
        listener.shutdown()          # same as cancel(port)

    The capture handler runs on the listener thread. Keep it fast; while it
    runs, no other connection is accepted.
    """

    def __init__(
        self,
        config: Optional[OAuthConfig] = None,
        handler: Optional[CaptureHandler] = None,
        host_default_response: Optional[str] = None,
    ):
        """
        Args:
            config: Listener configuration; defaults to OAuthConfig().
            handler: Called with each captured body.
            host_default_response: The embedding application's default
                                   response page, used when config.response
                                   is not set.
        """
        self.config = config or OAuthConfig()
        self.config.validate()

        self._handler = handler
        self._listener = LoopbackListener(self.config)
        self._parser = RequestParser()
        self._thread: Optional[threading.Thread] = None

        # Human-facing page for the embedding app to show. The wire response
        # is always the fixed `true`.
        self.response_body = self.config.resolve_response(host_default_response)

    @property
    def port(self) -> Optional[int]:
        return self._listener.port

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._listener.wait_for_shutdown(0)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> int:
        """
        Bind and launch the accept loop on a daemon thread.

        Returns:
            The bound port.

        Raises:
            BindError: No port could be bound. Nothing is running afterwards.
        """
        if self._thread is not None:
            raise RuntimeError("Listener already started")

        port = self._listener.bind()

        self._thread = threading.Thread(
            target=self._listener.serve_forever,
            args=(self._on_connection,),
            name=f"oauthlistener-{port}",
            daemon=True,
        )
        try:
            self._thread.start()
        except BaseException:
            # No loop will ever run to close the socket
            self._thread = None
            self._listener.close()
            raise
        return port

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the accept loop to exit. Returns False on timeout."""
        return self._listener.wait_for_shutdown(timeout)

    def shutdown(self, timeout: Optional[float] = 5.0) -> bool:
        """
        Stop the listener through the cancellation channel and wait for it.

        Safe to call on a listener that has already stopped.

        Returns:
            True if the accept loop has exited.
        """
        if not self.is_running:
            return True
        try:
            cancel(self.port)
        except CancellationUnreachable:
            # Stopped between the check and the connect
            if not self.wait(0):
                raise
        return self.wait(timeout)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _on_connection(self, conn: Connection) -> bool:
        """Accept-loop callback. Returns False to stop the loop."""
        started = time.time()
        result = self.handle_connection(conn)
        self._log(conn, result, started)

        if result.content:
            self._deliver(conn, result.content)

        return not result.outcome.stops_listener

    def handle_connection(self, conn: Connection) -> ConnectionResult:
        """
        Read, classify and answer one connection.

        Connection-level faults never escape: they are logged and turn into
        an ABANDONED result.
        """
        try:
            return self._process(conn)
        except ConnectionReadFault as e:
            logger.warning(f"[{conn.id}] Abandoning connection: {e}")
            return ConnectionResult(Outcome.ABANDONED)

    def _process(self, conn: Connection) -> ConnectionResult:
        data = conn.read_initial()
        if not data:
            logger.debug(f"[{conn.id}] Client closed without sending anything")
            return ConnectionResult(Outcome.ABANDONED)

        if self._is_cancellation(conn, data):
            logger.info(f"[{conn.id}] Cancellation requested")
            return ConnectionResult(Outcome.CANCELLED)

        request = self._parser.parse(data)
        outcome, content = self._classify(conn, request, data)

        self._respond(conn)
        return ConnectionResult(outcome, content, request)

    def _is_cancellation(self, conn: Connection, data: bytes) -> bool:
        """
        Recognize the 4-byte cancellation magic.

        cancel() writes the four bytes in one send, but TCP may still split
        them; a strict prefix is completed with one bounded read.
        """
        if data.startswith(EXIT_MAGIC):
            return True
        if len(data) < len(EXIT_MAGIC) and EXIT_MAGIC.startswith(data):
            data += conn.read_exact(len(EXIT_MAGIC) - len(data))
            return data == EXIT_MAGIC
        return False

    def _classify(self, conn: Connection, request: ParseResult, data: bytes):
        if isinstance(request, MalformedRequest):
            logger.debug(f"[{conn.id}] Malformed request: {request.reason}")
            return Outcome.MALFORMED, None

        if request.path == self.config.exit_path:
            return Outcome.EXIT_PATH, None

        if request.path == self.config.submit_path and request.content_length > 0:
            body = self._read_body(conn, request, data)
            content = body.decode("utf-8", errors="replace")
            if content:
                return Outcome.CAPTURED, content

        return Outcome.IGNORED, None

    def _read_body(self, conn: Connection, request: ParsedRequest, data: bytes) -> bytes:
        """
        Assemble the Content-Length framed body.

        The body starts right after the blank line in the initial buffer.
        If part of it is missing, exactly one more read fetches precisely
        the shortfall. Bytes past Content-Length are not part of the body.
        """
        end = request.body_start + request.content_length
        body = data[request.body_start:end]

        shortfall = request.content_length - len(body)
        if shortfall > 0:
            logger.debug(f"[{conn.id}] Body short by {shortfall} bytes, reading remainder")
            body += conn.read_exact(shortfall)

        return body

    def _respond(self, conn: Connection) -> None:
        try:
            conn.send_response(FIXED_RESPONSE)
        except ResponseWriteFault as e:
            logger.warning(f"[{conn.id}] Could not send response: {e}")

    def _deliver(self, conn: Connection, content: str) -> None:
        if self._handler is None:
            logger.warning(f"[{conn.id}] Captured content but no handler is set")
            return
        try:
            self._handler(content)
        except Exception as e:
            logger.exception(f"[{conn.id}] Capture handler raised: {e}")

    def _log(self, conn: Connection, result: ConnectionResult, started: float) -> None:
        request = result.request
        parsed = isinstance(request, ParsedRequest)
        log_connection(
            ConnectionLog(
                connection_id=conn.id,
                client_ip=conn.client_ip,
                client_port=conn.client_port,
                method=request.method if parsed else "-",
                target=request.target if parsed else "-",
                outcome=result.outcome.value,
                body_bytes=len(result.content.encode("utf-8")) if result.content else 0,
                duration_ms=(time.time() - started) * 1000,
                timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            ),
            self.config.log_format,
        )


# =============================================================================
# MODULE-LEVEL API
# =============================================================================

def start(
    config: Optional[OAuthConfig],
    handler: CaptureHandler,
    host_default_response: Optional[str] = None,
) -> int:
    """
    Start a listener and return its port.

    Because of the unprotected localhost port, the handler MUST verify what
    it receives (e.g. the OAuth state parameter).

    Raises:
        BindError: The server could not be created.
    """
    return OAuthListener(config, handler, host_default_response).start()


def cancel(port: int, timeout: float = 5.0) -> None:
    """
    Stop the listener behind `port` without running the handler.

    Alternatively, send any HTTP request to http://127.0.0.1:<port>/exit.

    Raises:
        CancellationUnreachable: Nothing could be reached on that port.
    """
    if not 0 < port < 65536:
        raise CancellationUnreachable(port, "invalid port")

    try:
        with socket.create_connection((LOOPBACK_HOST, port), timeout=timeout) as sock:
            sock.sendall(EXIT_MAGIC)
    except OSError as e:
        raise CancellationUnreachable(port, str(e)) from e
