"""
=============================================================================
FIXED CORS RESPONSE
=============================================================================

Every answered connection gets the same machine-readable reply:

    HTTP/1.1 200 OK\r\n
    Content-Length: 4\r\n
    Access-Control-Allow-Headers: *\r\n
    Access-Control-Allow-Methods: POST, GET, OPTIONS\r\n
    Access-Control-Allow-Credentials: true\r\n
    Access-Control-Allow-Origin: *\r\n
    Content-Type: application/json; charset=utf-8\r\n
    cache-control: max-age=0, private, must-revalidate\r\n
    \r\n
    true

=============================================================================
WHY CORS HEADERS ON A LOOPBACK SERVER?
=============================================================================

The page the OAuth provider redirects to usually POSTs window.location to
http://127.0.0.1:<port>/submit with fetch(). That page's origin is not the
listener's origin, so the browser first sends an OPTIONS preflight and then
checks Access-Control-Allow-Origin on the real response. Answering every
request, preflight included, with permissive CORS headers keeps the
browser happy without any routing.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Union


RESPONSE_BODY = "true"

CORS_HEADERS = {
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
}


@dataclass
class HTTPResponse:
    """
    A response ready to be serialized onto the socket.

    Header order is preserved exactly as inserted; Content-Length is always
    written first and always matches the body.
    """

    status: int = 200
    reason: str = "OK"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status} {self.reason}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header, returning self for chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body, encoding strings as UTF-8."""
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self) -> bytes:
        """
        Serialize to wire format.

            status line CRLF
            Content-Length: N CRLF
            (headers) CRLF ...
            CRLF
            body
        """
        lines = [self.status_line, f"Content-Length: {len(self.body)}"]
        for name, value in self.headers.items():
            if name.lower() == "content-length":
                continue
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body


def build_fixed_response() -> HTTPResponse:
    """Build the canned `true` response sent to every answered request."""
    response = HTTPResponse()
    for name, value in CORS_HEADERS.items():
        response.set_header(name, value)
    response.set_header("Content-Type", "application/json; charset=utf-8")
    response.set_header("cache-control", "max-age=0, private, must-revalidate")
    return response.set_body(RESPONSE_BODY)


# Serialized once; the response never changes.
FIXED_RESPONSE = build_fixed_response().to_bytes()
