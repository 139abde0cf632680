"""
=============================================================================
LISTENER CONFIGURATION
=============================================================================

Centralized configuration for the OAuth redirect listener.

=============================================================================
WHAT CAN BE CONFIGURED?
=============================================================================

Only two things matter to the OAuth flow itself:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      OAUTH CONFIGURATION                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ports      Candidate ports, tried in order.                       │
    │              None → ask the OS for any free loopback port.          │
    │              Only needed when the OAuth provider refuses wildcard   │
    │              localhost redirect URIs and wants a fixed port.        │
    │                                                                      │
    │   response   Small self-contained HTML page for the human who was  │
    │              redirected. Falls back to the host application's      │
    │              default, then to DEFAULT_RESPONSE.                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything else (buffer size, read deadline, the two recognized paths,
logging) has a sensible default and rarely needs touching.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    Priority (highest to lowest):

    1. Command-line arguments     python -m oauthlistener listen -p 8765
    2. Environment variables      OAUTH_PORTS=8765,8766
    3. Default values (in this dataclass)

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import List, Optional


LOOPBACK_HOST = "127.0.0.1"

DEFAULT_RESPONSE = "<html><body>Please return to the app.</body></html>"


@dataclass
class OAuthConfig:
    """
    Configuration for one OAuth redirect listener.

    Example:
        # Any free port
        OAuthConfig()

        # Provider only accepts a fixed redirect URI
        OAuthConfig(ports=[8765, 8766, 8767])
    """

    # ─────────────────────────────────────────────────────────────────────
    # OAUTH SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    ports: Optional[List[int]] = None
    """
    Hard-coded ports to try, in order. The first bindable one wins.
    None means the OS picks an ephemeral port.
    An empty list means "no candidates" and startup fails.
    """

    response: Optional[str] = None
    """
    Static HTML shown to the user after being redirected.
    Keep it self-contained and as small as possible.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 4096
    """
    Size of the single initial read per connection.
    The request line, headers and (usually) the whole body must fit here.
    """

    read_timeout: float = 30.0
    """
    Deadline in seconds for every blocking read on a client connection.
    A client that declares a body and never sends it is dropped after this.
    """

    backlog: int = 16
    """Maximum number of queued connections waiting for accept()."""

    exit_path: str = "/exit"
    """Requests to this path stop the listener."""

    submit_path: str = "/submit"
    """POST bodies sent to this path are captured."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'json' or 'text'."""

    def resolve_response(self, host_default: Optional[str] = None) -> str:
        """
        Pick the human-facing response page.

        Args:
            host_default: The embedding application's configured default.

        Returns:
            The explicit override, else the host default, else
            DEFAULT_RESPONSE.
        """
        if self.response is not None:
            return self.response
        if host_default is not None:
            return host_default
        return DEFAULT_RESPONSE

    @classmethod
    def from_env(cls) -> "OAuthConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        OAUTH_PORTS         Comma separated candidate ports (default: any)
        OAUTH_RESPONSE      Response page override (default: None)
        OAUTH_READ_TIMEOUT  Read deadline in seconds (default: 30)
        OAUTH_LOG_LEVEL     Logging level (default: INFO)
        OAUTH_LOG_FORMAT    text or json (default: text)

        =====================================================================
        """
        raw_ports = os.getenv("OAUTH_PORTS")
        ports = None
        if raw_ports is not None:
            ports = [int(p) for p in raw_ports.split(",") if p.strip()]

        return cls(
            ports=ports,
            response=os.getenv("OAUTH_RESPONSE"),
            read_timeout=float(os.getenv("OAUTH_READ_TIMEOUT", "30")),
            log_level=os.getenv("OAUTH_LOG_LEVEL", "INFO"),
            log_format=os.getenv("OAUTH_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """Fail fast on values that would only break later, inside the thread."""
        if self.ports is not None:
            for port in self.ports:
                if not 0 < port < 65536:
                    raise ValueError(f"Invalid port: {port}. Must be 1-65535.")

        if self.buffer_size < 64:
            raise ValueError("buffer_size must be >= 64")

        if self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if not self.exit_path.startswith("/") or not self.submit_path.startswith("/"):
            raise ValueError("exit_path and submit_path must start with '/'")

        if self.exit_path == self.submit_path:
            raise ValueError("exit_path and submit_path must differ")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")
