"""
=============================================================================
CORE NETWORKING COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       LOOPBACK LISTENER                             │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Binds 127.0.0.1 on a candidate or ephemeral port                 │
    │  • Runs the accept loop on one background thread                    │
    │  • Hands each client to the handler, strictly one at a time         │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ accept()
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • One initial read, one optional body-completion read              │
    │  • Every read bounded by a deadline                                 │
    │  • Faults raised as typed exceptions, never process-fatal           │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import LoopbackListener

__all__ = [
    "Connection",
    "ConnectionState",
    "LoopbackListener",
]
