import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import h2.config
import h2.connection
import h2.events
import pytest
from faker import Faker

from http2_antifingerprint.random_source import RandomSource

fake = Faker()


# ============== Header fixtures ==============
@pytest.fixture
def get_headers() -> dict[str, Any]:
    """Browser-like GET request headers, pseudo-headers first."""
    return {
        ":method": "GET",
        ":authority": fake.domain_name(),
        ":scheme": "https",
        ":path": f"/{fake.uri_path()}",
        "user-agent": fake.user_agent(),
        "accept": "text/html,application/xhtml+xml",
        "accept-language": fake.locale().replace("_", "-"),
        "accept-encoding": "gzip, deflate, br",
        "referer": fake.url(),
        "cache-control": "no-cache",
    }


@pytest.fixture
def post_headers() -> dict[str, Any]:
    """Browser-like POST request headers."""
    body = fake.json(num_rows=1)
    return {
        ":method": "POST",
        ":authority": fake.domain_name(),
        ":scheme": "https",
        ":path": "/api/submit",
        "content-type": "application/json",
        "content-length": str(len(body)),
        "user-agent": fake.user_agent(),
        "accept": "*/*",
        "origin": fake.url(),
    }


# ============== Deterministic randomness ==============
@pytest.fixture
def zero_source() -> RandomSource:
    """RandomSource whose every draw is 0.0 (always picks the lower bound)."""
    return RandomSource(draw=lambda: 0.0)


# ============== Fake socket pair ==============
def make_stream_pair() -> tuple[asyncio.StreamReader, MagicMock]:
    """Reader that never yields data and a writer that records writes."""
    reader = asyncio.StreamReader()
    writer = MagicMock()
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    writer.start_tls = AsyncMock()
    writer.get_extra_info.return_value = None
    return reader, writer


def written_bytes(writer: MagicMock) -> bytes:
    return b"".join(call.args[0] for call in writer.write.call_args_list)


@pytest.fixture
def stream_pair_factory():
    """Call inside a running event loop; StreamReader binds to it."""
    return make_stream_pair


@pytest.fixture
def written():
    return written_bytes


# ============== Server-side view of the wire ==============
def decode_request_headers(data: bytes) -> list[list[tuple[str, str]]]:
    """Header lists of every request in client bytes, as a server decodes them."""
    server = h2.connection.H2Connection(
        config=h2.config.H2Configuration(client_side=False, header_encoding="utf-8")
    )
    server.initiate_connection()
    events = server.receive_data(data)
    return [
        [(name, value) for name, value in event.headers]
        for event in events
        if isinstance(event, h2.events.RequestReceived)
    ]


@pytest.fixture
def wire_headers():
    """Decode what a writer sent into per-request header lists."""
    return lambda writer: decode_request_headers(written_bytes(writer))
