"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

Just enough HTTP/1.1 for one redirect capture:

    request.py   - tolerant head parser (ParsedRequest | MalformedRequest)
    response.py  - the fixed CORS-enabled `true` response

=============================================================================
"""

from .request import (
    HEADER_TERMINATOR,
    MalformedRequest,
    ParsedRequest,
    ParseResult,
    RequestParser,
    parse_request,
)
from .response import (
    CORS_HEADERS,
    FIXED_RESPONSE,
    RESPONSE_BODY,
    HTTPResponse,
    build_fixed_response,
)

__all__ = [
    # Request parsing
    "HEADER_TERMINATOR",
    "MalformedRequest",
    "ParsedRequest",
    "ParseResult",
    "RequestParser",
    "parse_request",

    # Response writing
    "CORS_HEADERS",
    "FIXED_RESPONSE",
    "RESPONSE_BODY",
    "HTTPResponse",
    "build_fixed_response",
]
