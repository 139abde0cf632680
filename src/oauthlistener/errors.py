"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the listener can report, grouped by who gets to see it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WHO SEES THE ERROR?                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   CALLER OF start()                                                 │
    │   └── BindError              no candidate port could be bound      │
    │                                                                      │
    │   CALLER OF cancel()                                                │
    │   └── CancellationUnreachable  nothing listening on that port      │
    │                                                                      │
    │   ACCEPT THREAD ONLY (logged, connection abandoned)                 │
    │   ├── ConnectionReadFault     initial read failed / timed out      │
    │   │   └── IncompleteBodyStall  declared body never fully arrived   │
    │   └── ResponseWriteFault      could not send the fixed response    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Malformed request bytes are NOT an error. They parse to a MalformedRequest
value (see http/request.py) and get answered like any other request.

=============================================================================
"""

from typing import Optional, Sequence


class OAuthListenerError(Exception):
    """Base class for everything this package raises."""


class BindError(OAuthListenerError):
    """
    Raised when no loopback port could be bound at startup.

    Attributes:
        ports: The candidate ports that were tried, or None when the OS
               was asked for an ephemeral port.

    The last underlying OSError is chained as __cause__.
    """

    def __init__(self, message: str, ports: Optional[Sequence[int]] = None):
        super().__init__(message)
        self.ports = list(ports) if ports is not None else None


class ConnectionReadFault(OAuthListenerError):
    """Reading from one client connection failed or hit its deadline."""


class IncompleteBodyStall(ConnectionReadFault):
    """
    A declared Content-Length body did not fully arrive in time.

    Attributes:
        expected: Number of missing bytes the follow-up read asked for.
        received: Number of those bytes that actually arrived.
    """

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Incomplete body: expected {expected} more bytes, got {received}"
        )
        self.expected = expected
        self.received = received


class ResponseWriteFault(OAuthListenerError):
    """Sending the fixed response to one client failed."""


class CancellationUnreachable(OAuthListenerError):
    """
    Raised by cancel() when the target port cannot be reached.

    Attributes:
        port: The port cancel() tried to connect to.
    """

    def __init__(self, port: int, reason: str = "connection failed"):
        super().__init__(f"Could not reach listener on 127.0.0.1:{port}: {reason}")
        self.port = port
