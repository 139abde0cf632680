"""
=============================================================================
OAUTHLISTENER - Loopback Redirect Capture for Desktop OAuth Flows
=============================================================================

A tiny single-purpose HTTP listener on 127.0.0.1 that catches the end of an
OAuth authorization-code flow and hands the result to your code.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    oauthlistener/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m oauthlistener)
    ├── server.py            # OAuthListener, start(), cancel()
    ├── config.py            # OAuthConfig dataclass
    ├── errors.py            # Exception hierarchy
    ├── access_log.py        # Per-connection log records
    ├── core/
    │   ├── socket_server.py # Port selection + accept loop
    │   └── connection.py    # Deadline-bounded client socket wrapper
    └── http/
        ├── request.py       # Tolerant request head parser
        └── response.py      # Fixed CORS `true` response

=============================================================================
QUICK START
=============================================================================

    from oauthlistener import OAuthConfig, start, cancel

    def on_redirect(url: str):
        # Verify the state parameter before trusting anything here!
        print("Got", url)

    port = start(OAuthConfig(), on_redirect)
    # open https://provider/authorize?redirect_uri=http://127.0.0.1:{port}/
    ...
    cancel(port)

=============================================================================
"""

__version__ = "1.0.0"

from .config import DEFAULT_RESPONSE, OAuthConfig
from .errors import (
    BindError,
    CancellationUnreachable,
    ConnectionReadFault,
    IncompleteBodyStall,
    OAuthListenerError,
    ResponseWriteFault,
)
from .server import EXIT_MAGIC, OAuthListener, Outcome, cancel, start

__all__ = [
    "OAuthConfig",
    "OAuthListener",
    "Outcome",
    "start",
    "cancel",
    "EXIT_MAGIC",
    "DEFAULT_RESPONSE",
    "OAuthListenerError",
    "BindError",
    "ConnectionReadFault",
    "IncompleteBodyStall",
    "ResponseWriteFault",
    "CancellationUnreachable",
    "__version__",
]
