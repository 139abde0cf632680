"""
pytest configuration and fixtures.
"""

import socket
import time
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from oauthlistener import OAuthConfig, OAuthListener
from oauthlistener.errors import IncompleteBodyStall, ResponseWriteFault


@pytest.fixture
def submit_body() -> bytes:
    """A typical redirect URL posted back by the landing page."""
    return b"http://127.0.0.1:8765/?code=4%2F0AbCdEf&state=xyz123&scope=email"


@pytest.fixture
def sample_submit_request(submit_body: bytes) -> bytes:
    """POST /submit with the whole body in one piece."""
    return (
        b"POST /submit HTTP/1.1\r\n"
        b"Host: 127.0.0.1:8765\r\n"
        b"Content-Type: text/plain;charset=UTF-8\r\n"
        + f"Content-Length: {len(submit_body)}\r\n".encode()
        + b"\r\n"
    ) + submit_body


@pytest.fixture
def sample_get_request() -> bytes:
    """The provider's browser redirect itself."""
    return (
        b"GET /?code=abc&state=xyz HTTP/1.1\r\n"
        b"Host: 127.0.0.1:8765\r\n"
        b"Accept: text/html\r\n"
        b"\r\n"
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def occupied_port() -> Generator[int, None, None]:
    """A port held by a listening socket for the duration of the test."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        s.listen(1)
        yield s.getsockname()[1]


class Captures:
    """Thread-safe-enough collector for capture handler calls."""

    def __init__(self):
        self.items: List[str] = []

    def __call__(self, content: str):
        self.items.append(content)

    def wait_for(self, count: int, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self.items) >= count:
                return True
            time.sleep(0.01)
        return len(self.items) >= count


@pytest.fixture
def captures() -> Captures:
    return Captures()


@pytest.fixture
def listener(captures: Captures) -> Generator[OAuthListener, None, None]:
    """A started listener on an ephemeral port with a short read deadline."""
    srv = OAuthListener(OAuthConfig(read_timeout=1.0), captures)
    srv.start()

    yield srv

    srv.shutdown()


def exchange(port: int, *chunks: bytes, pause: float = 0.0, timeout: float = 5.0) -> bytes:
    """
    Send chunks to the listener (optionally pausing between them) and
    return everything it sends back before closing.
    """
    with socket.create_connection(('127.0.0.1', port), timeout=timeout) as s:
        for i, chunk in enumerate(chunks):
            if i and pause:
                time.sleep(pause)
            s.sendall(chunk)

        response = b""
        while True:
            data = s.recv(4096)
            if not data:
                break
            response += data
        return response


class FakeConnection:
    """
    Stand-in for core.Connection that records every read.

    read_initial() returns `initial`; read_exact(n) returns the next n bytes
    of `rest`.
    """

    def __init__(self, initial: bytes, rest: bytes = b"", fail_send: bool = False):
        self.id = "fake0001"
        self.address = ("127.0.0.1", 50000)
        self.client_ip, self.client_port = self.address
        self._initial = initial
        self._rest = rest
        self._fail_send = fail_send
        self.reads: List[Optional[int]] = []
        self.sent = b""

    def read_initial(self) -> bytes:
        self.reads.append(None)
        return self._initial

    def read_exact(self, size: int) -> bytes:
        self.reads.append(size)
        if len(self._rest) < size:
            raise IncompleteBodyStall(size, len(self._rest))
        data, self._rest = self._rest[:size], self._rest[size:]
        return data

    def send_response(self, data: bytes) -> None:
        if self._fail_send:
            raise ResponseWriteFault("Send failed: [Errno 32] Broken pipe")
        self.sent += data

    def close(self):
        pass


@pytest.fixture
def make_connection():
    """Factory for FakeConnection objects."""
    return FakeConnection


@pytest.fixture
def send():
    """The exchange() helper, as a fixture."""
    return exchange
