"""
=============================================================================
CONNECTION LOGGING
=============================================================================

One structured record per handled connection, plus the logging setup used
by the CLI.

=============================================================================
WHAT GETS LOGGED
=============================================================================

    127.0.0.1:51234 [2026-10-18T12:00:00+00:00] "POST /submit" captured 57B 1.84ms
    127.0.0.1:51240 [2026-10-18T12:00:03+00:00] "- -" cancelled 0B 0.21ms

Captured content itself is NEVER logged. It usually contains an OAuth
authorization code, which is a credential. Only its size is recorded.

=============================================================================
LOGGER NAMES
=============================================================================

    oauthlistener.access     one line per connection (this module)
    oauthlistener.*          everything else, via logging.getLogger(__name__)

    logging.getLogger("oauthlistener.access").setLevel(logging.WARNING)
    silences the per-connection lines without hiding faults.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass


logger = logging.getLogger("oauthlistener.access")


@dataclass
class ConnectionLog:
    """
    Structured log entry for one connection.

    Fields:
        connection_id:  Short id shared with the connection's debug lines
        client_ip:      Peer address (always loopback)
        client_port:    Peer port
        method:         Request method, "-" when there was no request line
        target:         Request target, "-" when there was no request line
        outcome:        Outcome value (captured, ignored, exit_path, ...)
        body_bytes:     Size of the captured content in bytes
        duration_ms:    Time from accept to decision
        timestamp:      ISO-8601 UTC time of the record
    """

    connection_id: str
    client_ip: str
    client_port: int
    method: str
    target: str
    outcome: str
    body_bytes: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "client_ip": self.client_ip,
            "client_port": self.client_port,
            "method": self.method,
            "target": self.target,
            "outcome": self.outcome,
            "body_bytes": self.body_bytes,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f'{self.client_ip}:{self.client_port} [{self.timestamp}] '
            f'"{self.method} {self.target}" {self.outcome} '
            f'{self.body_bytes}B {self.duration_ms:.2f}ms'
        )


def log_connection(entry: ConnectionLog, log_format: str = "text") -> None:
    """Emit one access record in the configured format."""
    if log_format == "json":
        logger.info(json.dumps(entry.to_dict()))
    else:
        logger.info(entry.to_text())


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure logging for command-line use.

    With log_format="json" the access logger gets its own handler that
    writes the bare message, so every access line is one JSON object.
    Everything else keeps the human-readable format.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("oauthlistener").setLevel(numeric_level)

    if log_format == "json" and not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
