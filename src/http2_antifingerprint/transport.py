"""
http2-antifingerprint - HTTP/2 Transport

Thin HTTP/2 client session over an asyncio stream pair, framed by h2.
It sends headers exactly in the order it is given and announces the
SETTINGS values it is given; it makes no fingerprint decisions itself.
"""

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import h2.config
import h2.connection
import h2.events
import h2.settings

from .config import RuntimeSettings, settings
from .profiles import HEADER_AUTHORITY, HEADER_METHOD, HEADER_PATH, HEADER_SCHEME, is_pseudo_header
from .settings_generator import Http2Settings

logger = logging.getLogger(__name__)

StreamPair = tuple[asyncio.StreamReader, asyncio.StreamWriter]

DEFAULT_STREAM_WINDOW = 65535
DEFAULT_HEADER_TABLE_SIZE = 4096


@dataclass(frozen=True)
class Authority:
    """Target of a connection, as handed to socket factories."""

    scheme: str
    hostname: str
    port: int

    @property
    def host(self) -> str:
        return f"{self.hostname}:{self.port}"

    @property
    def secure(self) -> bool:
        return self.scheme != "http"

    @classmethod
    def parse(cls, authority: str, runtime: RuntimeSettings | None = None) -> "Authority":
        """Parse ``scheme://host[:port]``; the scheme picks the default port."""
        runtime = runtime or settings
        parsed = urlparse(authority if "://" in authority else f"https://{authority}")

        if not parsed.hostname:
            raise ValueError(f"Authority has no host: {authority!r}")

        scheme = "http" if parsed.scheme == "http" else "https"
        default_port = runtime.H2AF_DEFAULT_HTTP_PORT if scheme == "http" else runtime.H2AF_DEFAULT_HTTPS_PORT

        return cls(
            scheme=scheme,
            hostname=parsed.hostname,
            port=parsed.port or default_port,
        )


def fill_pseudo_headers(headers: Mapping[str, Any], authority: Authority) -> dict[str, Any]:
    """Add the mandatory pseudo-headers ``headers`` lacks.

    Defaults go after the caller's own pseudo-headers and before the
    regular ones; every header the caller gave keeps its relative order.
    """
    defaults = {
        HEADER_METHOD: "GET",
        HEADER_SCHEME: authority.scheme,
        HEADER_AUTHORITY: authority.hostname,
        HEADER_PATH: "/",
    }
    missing = {name: value for name, value in defaults.items() if name not in headers}
    if not missing:
        return dict(headers)

    pseudo = {name: value for name, value in headers.items() if is_pseudo_header(name)}
    regular = {name: value for name, value in headers.items() if not is_pseudo_header(name)}
    return {**pseudo, **missing, **regular}


@dataclass
class H2Response:
    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        for key, value in self.headers:
            if key == name:
                return value
        return None


class H2Stream:
    """One request stream. Await ``response()`` for the full response."""

    def __init__(self, transport: "H2Transport", stream_id: int) -> None:
        self._transport = transport
        self.stream_id = stream_id
        self._headers: list[tuple[str, str]] = []
        self._body = bytearray()
        self._done: asyncio.Future[H2Response] = asyncio.get_running_loop().create_future()

    def send_data(self, data: bytes, end_stream: bool = True) -> None:
        self._transport.send_data(self.stream_id, data, end_stream=end_stream)

    async def response(self) -> H2Response:
        return await self._done

    def _on_headers(self, headers: list[tuple[str, str]]) -> None:
        self._headers.extend(headers)

    def _on_data(self, data: bytes) -> None:
        self._body.extend(data)

    def _on_end(self) -> None:
        if self._done.done():
            return
        status = next((int(v) for k, v in self._headers if k == ":status"), 0)
        headers = [(k, v) for k, v in self._headers if k != ":status"]
        self._done.set_result(H2Response(status=status, headers=headers, body=bytes(self._body)))

    def _on_error(self, error: Exception) -> None:
        if not self._done.done():
            self._done.set_exception(error)


class H2Transport:
    """
    Client-side h2 session on an established stream pair.

    Usage:
        transport = H2Transport(reader, writer, authority)
        await transport.start(settings)
        stream = transport.send_request({":method": "GET", ":path": "/"})
        response = await stream.response()
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        authority: Authority,
        config_overrides: dict[str, Any] | None = None,
        runtime: RuntimeSettings | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._authority = authority
        self._runtime = runtime or settings

        config = h2.config.H2Configuration(
            **{"client_side": True, "header_encoding": "utf-8", **(config_overrides or {})}
        )
        self._conn = h2.connection.H2Connection(config=config)
        self._streams: dict[int, H2Stream] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def alpn_protocol(self) -> str | None:
        ssl_object = self._writer.get_extra_info("ssl_object")
        return ssl_object.selected_alpn_protocol() if ssl_object else None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def remote_settings(self) -> h2.settings.Settings:
        return self._conn.remote_settings

    @property
    def local_settings(self) -> h2.settings.Settings:
        return self._conn.local_settings

    async def start(self, settings: Http2Settings) -> None:
        """Send the connection preface announcing ``settings``."""
        self._conn.local_settings = h2.settings.Settings(
            client=True,
            initial_values=settings.as_h2_settings(),
        )
        # Values set through initial_values count as acknowledged, so h2 never
        # propagates them to the decoder and frame buffer itself
        self._conn.decoder.max_allowed_table_size = max(settings.header_table_size, DEFAULT_HEADER_TABLE_SIZE)
        self._conn.max_inbound_frame_size = settings.max_frame_size
        self._conn.incoming_buffer.max_frame_size = settings.max_frame_size
        self._conn.initiate_connection()
        self._flush()
        await self._writer.drain()

        self._reader_task = asyncio.create_task(self._read_loop())
        logger.debug(f"HTTP/2 session started with {self._authority.host}")

    def update_settings(self, settings: Http2Settings) -> None:
        """Send a SETTINGS frame with new values."""
        self._conn.update_settings(settings.as_h2_settings())
        self._flush()

    def _header_list(self, headers: Mapping[str, Any]) -> list[tuple[str, str]]:
        header_list: list[tuple[str, str]] = []
        for name, value in fill_pseudo_headers(headers, self._authority).items():
            if isinstance(value, (list, tuple)):
                header_list.extend((name, str(item)) for item in value)
            else:
                header_list.append((name, str(value)))
        return header_list

    def send_request(
        self,
        headers: Mapping[str, Any],
        end_stream: bool = True,
        priority_weight: int | None = None,
        priority_depends_on: int | None = None,
        priority_exclusive: bool | None = None,
    ) -> H2Stream:
        """Send HEADERS in the given order and return the new stream.

        Mandatory pseudo-headers the caller left out follow the caller's
        own pseudo-headers.
        """
        if self._closed:
            raise ConnectionError("HTTP/2 session is closed")

        stream_id = self._conn.get_next_available_stream_id()
        stream = H2Stream(self, stream_id)
        self._streams[stream_id] = stream

        self._conn.send_headers(
            stream_id,
            self._header_list(headers),
            end_stream=end_stream,
            priority_weight=priority_weight,
            priority_depends_on=priority_depends_on,
            priority_exclusive=priority_exclusive,
        )

        # A randomized small initial window would otherwise stall the response body
        initial_window = self._conn.local_settings.initial_window_size
        if initial_window < DEFAULT_STREAM_WINDOW:
            self._conn.increment_flow_control_window(
                DEFAULT_STREAM_WINDOW - initial_window,
                stream_id=stream_id,
            )

        self._flush()
        return stream

    def send_data(self, stream_id: int, data: bytes, end_stream: bool = True) -> None:
        self._conn.send_data(stream_id, data, end_stream=end_stream)
        self._flush()

    def _flush(self) -> None:
        data = self._conn.data_to_send()
        if data:
            self._writer.write(data)

    async def _read_loop(self) -> None:
        error: Exception | None = None
        try:
            while True:
                data = await self._reader.read(self._runtime.H2AF_READ_BUFFER_SIZE)
                if not data:
                    break
                for event in self._conn.receive_data(data):
                    self._handle_event(event)
                self._flush()
                await self._writer.drain()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[HTTP/2 {self._authority.host}] Session error: {e}")
            error = e
        finally:
            self._fail_pending(error or ConnectionResetError("HTTP/2 connection closed by peer"))

    def _handle_event(self, event: h2.events.Event) -> None:
        if isinstance(event, h2.events.ResponseReceived | h2.events.TrailersReceived):
            stream = self._streams.get(event.stream_id)
            if stream:
                stream._on_headers(list(event.headers))
        elif isinstance(event, h2.events.DataReceived):
            self._conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
            stream = self._streams.get(event.stream_id)
            if stream:
                stream._on_data(event.data)
        elif isinstance(event, h2.events.StreamEnded):
            stream = self._streams.pop(event.stream_id, None)
            if stream:
                stream._on_end()
        elif isinstance(event, h2.events.StreamReset):
            stream = self._streams.pop(event.stream_id, None)
            if stream:
                stream._on_error(ConnectionResetError(f"Stream {event.stream_id} reset: {event.error_code!r}"))
        elif isinstance(event, h2.events.ConnectionTerminated):
            logger.info(f"[HTTP/2 {self._authority.host}] GOAWAY received: {event.error_code!r}")
            self._fail_pending(ConnectionResetError(f"Connection terminated: {event.error_code!r}"))

    def _fail_pending(self, error: Exception) -> None:
        for stream in self._streams.values():
            stream._on_error(error)
        self._streams.clear()

    async def close(self) -> None:
        """Send GOAWAY and close the socket."""
        if self._closed:
            return
        self._closed = True

        try:
            self._conn.close_connection()
            self._flush()
        finally:
            self._writer.close()
            await self._writer.wait_closed()
            if self._reader_task:
                self._reader_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._reader_task

        logger.debug(f"HTTP/2 session closed with {self._authority.host}")
