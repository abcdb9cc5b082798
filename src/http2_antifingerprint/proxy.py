"""
http2-antifingerprint - Proxy Tunnel

Opens a CONNECT tunnel through an HTTP proxy and hands back the raw
stream pair, ready for the TLS handshake with the target. The wait for
the proxy response is not bounded here; callers wrap ``open_tunnel`` in
their own timeout if they need one.
"""

import asyncio
import base64
import contextlib
import logging
from dataclasses import dataclass, field

from .config import ProxyConfig, RuntimeSettings, settings
from .exceptions import ProxyTunnelError
from .transport import StreamPair

logger = logging.getLogger(__name__)


@dataclass
class ProxyResponse:
    """Status line and headers of the proxy's answer to CONNECT."""

    status_code: int
    reason: str = ""
    http_version: str = "HTTP/1.1"
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def proxy_authorization(proxy: ProxyConfig) -> str:
    token = base64.b64encode(proxy.credentials.encode()).decode("ascii")
    return f"Basic {token}"


def build_connect_request(target_host: str, target_port: int, proxy: ProxyConfig) -> bytes:
    """Render the CONNECT request for ``target_host:target_port``."""
    target = f"{target_host}:{target_port}"
    lines = [
        f"CONNECT {target} HTTP/1.1",
        f"Host: {target}",
    ]
    if proxy.has_credentials:
        lines.append(f"Proxy-Authorization: {proxy_authorization(proxy)}")

    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def parse_connect_response(head: bytes) -> ProxyResponse:
    """Parse the response head (status line + headers, CRLF terminated).

    Raises:
        ValueError: the status line is not ``HTTP/x.y NNN [reason]``
    """
    lines = head.decode("latin-1").split("\r\n")
    version, _, rest = lines[0].partition(" ")
    code, _, reason = rest.partition(" ")

    if not version.startswith("HTTP/") or len(code) != 3 or not code.isdigit():
        raise ValueError(f"Malformed CONNECT status line: {lines[0][:80]!r}")

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return ProxyResponse(
        status_code=int(code),
        reason=reason,
        http_version=version,
        headers=headers,
    )


async def open_tunnel(
    target_host: str,
    target_port: int,
    proxy: ProxyConfig,
    runtime: RuntimeSettings | None = None,
) -> tuple[ProxyResponse, asyncio.StreamReader, asyncio.StreamWriter]:
    """Dial the proxy, issue CONNECT and read its response.

    The stream pair is returned whatever the status; the caller decides
    whether the tunnel is usable. If the exchange itself fails the
    connection to the proxy is closed before the error propagates.

    Raises:
        ProxyTunnelError: the proxy's answer is not a valid HTTP response head
    """
    runtime = runtime or settings

    reader, writer = await asyncio.open_connection(
        proxy.host,
        proxy.port,
        limit=runtime.H2AF_PROXY_RESPONSE_LIMIT,
    )

    try:
        writer.write(build_connect_request(target_host, target_port, proxy))
        await writer.drain()

        head = await reader.readuntil(b"\r\n\r\n")
        response = parse_connect_response(head)
    except ValueError as e:
        await close_tunnel((reader, writer))
        raise ProxyTunnelError(
            f"Invalid CONNECT response for {target_host}:{target_port}: {e}",
            proxy_url=proxy.masked_url,
        ) from e
    except BaseException:
        await close_tunnel((reader, writer))
        raise

    logger.info(
        f"CONNECT {target_host}:{target_port} via {proxy.masked_url}: "
        f"{response.status_code} {response.reason}"
    )
    return response, reader, writer


async def close_tunnel(streams: StreamPair) -> None:
    _, writer = streams
    writer.close()
    # Peer may already have reset
    with contextlib.suppress(ConnectionError):
        await writer.wait_closed()
