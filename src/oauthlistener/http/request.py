"""
=============================================================================
TOLERANT HTTP REQUEST HEAD PARSER
=============================================================================

Turns the bytes of ONE read into either a ParsedRequest or an explicit
MalformedRequest marker. It never raises on bad input.

=============================================================================
WHAT WE ACTUALLY NEED FROM A REQUEST
=============================================================================

The listener recognizes exactly two paths and one header:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    POST /submit HTTP/1.1\r\n           ← path decides everything    │
    │    Host: 127.0.0.1:8765\r\n                                         │
    │    Content-Type: text/plain\r\n                                     │
    │    Content-Length: 57\r\n              ← how many body bytes        │
    │    \r\n                                ← body starts right after    │
    │    http://127.0.0.1:8765/?code=abc&state=xyz                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Method, version and the other headers are kept for logging only.

=============================================================================
TAGGED RESULT INSTEAD OF SILENT DEFAULTS
=============================================================================

    b"GET /callback HTTP/1.1\r\n\r\n"  →  ParsedRequest(path="/callback")
    b"\x00\xffgarbage"                  →  MalformedRequest(reason=...)

Both get the same fixed response on the wire, but the caller (and the
tests) can tell "valid request to an unrecognized path" apart from
"garbage input".

=============================================================================
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Union
from urllib.parse import urlsplit


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"


@dataclass
class ParsedRequest:
    """
    The head of one HTTP request.

    Attributes:
        method:         Request method as sent (GET, POST, OPTIONS, ...).
        target:         Raw request-target, query string included.
        path:           target without query string or fragment.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header name → value, names exactly as received.
        content_length: Declared body size, 0 when absent or unusable.
        body_start:     Offset of the first body byte in the parsed buffer.
    """

    method: str
    target: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    content_length: int = 0
    body_start: int = 0

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup (names are stored as received)."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass
class MalformedRequest:
    """Bytes that did not form a request line plus header block."""

    reason: str
    raw: bytes = field(default=b"", repr=False)


ParseResult = Union[ParsedRequest, MalformedRequest]


class RequestParser:
    """
    Parses the request line and headers out of a single read buffer.

    ==========================================================================
    PARSING STEPS
    ==========================================================================

        raw bytes
            │
            ├──► find \r\n\r\n          missing → Malformed("incomplete")
            ├──► decode head (latin-1)
            ├──► match request line     no match → Malformed("request line")
            ├──► parse header lines     bad line → Malformed("header line")
            ├──► split target           bad target → Malformed("request target")
            └──► read Content-Length    bad value → 0 (logged)

    Latin-1 never fails to decode, so decoding itself cannot throw and
    every byte survives for logging.

    ==========================================================================
    """

    # METHOD SP TARGET SP HTTP/x.y
    REQUEST_LINE_PATTERN = re.compile(r"^([A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$")
    # token ":" OWS value OWS
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+):[ \t]*(.*?)[ \t]*$")

    def parse(self, data: bytes) -> ParseResult:
        """
        Parse one buffer.

        Args:
            data: Bytes from the initial read of a connection.

        Returns:
            ParsedRequest, or MalformedRequest describing what was wrong.
        """
        header_end = data.find(HEADER_TERMINATOR)
        if header_end == -1:
            return MalformedRequest("incomplete header block", data)

        lines = data[:header_end].decode("latin-1").split("\r\n")

        match = self.REQUEST_LINE_PATTERN.match(lines[0])
        if not match:
            return MalformedRequest(f"invalid request line: {lines[0][:80]!r}", data)

        method, target, version = match.groups()

        headers: Dict[str, str] = {}
        content_length_raw: Optional[str] = None
        for line in lines[1:]:
            header = self.HEADER_PATTERN.match(line)
            if not header:
                return MalformedRequest(f"invalid header line: {line[:80]!r}", data)
            name, value = header.groups()
            if name.lower() == "content-length":
                # Last one wins
                content_length_raw = value
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        try:
            path = urlsplit(target).path
        except ValueError as e:
            # e.g. an unbalanced "[" in the authority ("//[x")
            return MalformedRequest(f"invalid request target: {target[:80]!r} ({e})", data)

        return ParsedRequest(
            method=method,
            target=target,
            path=path,
            version=version,
            headers=headers,
            content_length=self._parse_content_length(content_length_raw),
            body_start=header_end + len(HEADER_TERMINATOR),
        )

    def _parse_content_length(self, raw: Optional[str]) -> int:
        """
        Turn the last Content-Length value seen into a body size.

        The header is matched case-insensitively, since browsers differ in
        how they spell it. When it is repeated, the last occurrence counts.
        Unusable values fall back to 0, which means "no body".
        """
        if raw is None:
            return 0
        # int() alone would accept "-5", "+5" and "1_000"
        if not (raw.isascii() and raw.isdigit()):
            logger.warning(f"Ignoring unusable Content-Length: {raw!r}")
            return 0
        return int(raw)


def parse_request(data: bytes) -> ParseResult:
    """Convenience wrapper around RequestParser().parse()."""
    return RequestParser().parse(data)
