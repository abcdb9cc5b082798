"""
http2-antifingerprint - Client

``connect`` opens an HTTP/2 session whose SETTINGS, TLS parameters and
header order are randomized according to AntiFingerprintOptions, and
returns a Connection that wraps the transport's request primitive.

A Connection owns its options, its seed cursor and its seed history.
Seeded reproducibility assumes requests on one connection are issued in a
single sequence; do not call ``request`` on the same seeded connection
from concurrently running tasks.
"""

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

from .assembler import SessionOptions, SessionOptionsAssembler
from .config import AntiFingerprintOptions, ConfigLoader, ProxyConfig
from .exceptions import ProxyTunnelError
from .header_order import HeaderOrderingEngine
from .proxy import close_tunnel, open_tunnel
from .random_source import SeedCursor
from .settings_generator import FingerprintSettingsGenerator, Http2Settings
from .tls_spoof import TlsSpoofGenerator, build_ssl_context
from .transport import Authority, H2Stream, H2Transport, StreamPair, fill_pseudo_headers

logger = logging.getLogger(__name__)

Listener = Callable[["Connection"], Any]


class Connection:
    """
    HTTP/2 session with fingerprint randomization applied per request.

    Usage:
        async with await connect("https://example.com", options={"seed": 7}) as conn:
            stream = conn.request({":path": "/"}, {}, {"isRequestDependsOnSeed": True})
            response = await stream.response()
    """

    def __init__(
        self,
        authority: Authority,
        transport: H2Transport,
        options: AntiFingerprintOptions,
        session: SessionOptions,
        settings_generator: FingerprintSettingsGenerator,
        listener: Listener | None = None,
        header_engine: HeaderOrderingEngine | None = None,
    ) -> None:
        self._authority = authority
        self._transport = transport
        self._options = options
        self._session = session
        self._settings = session.settings
        self._settings_generator = settings_generator
        self._listener = listener
        self._assembler = SessionOptionsAssembler(options)
        self._header_engine = header_engine or HeaderOrderingEngine()
        self._request_count = 0

    @property
    def authority(self) -> Authority:
        return self._authority

    @property
    def options(self) -> AntiFingerprintOptions:
        return self._options

    @property
    def listener(self) -> Listener | None:
        return self._listener

    @property
    def settings(self) -> Http2Settings:
        """SETTINGS most recently announced on this connection."""
        return self._settings

    @property
    def session_options(self) -> dict[str, Any]:
        return self._session.as_dict()

    @property
    def seed_history(self) -> tuple[Http2Settings, ...] | None:
        return self._settings_generator.history

    @property
    def transport(self) -> H2Transport:
        return self._transport

    @property
    def alpn_protocol(self) -> str | None:
        return self._transport.alpn_protocol

    @property
    def request_count(self) -> int:
        return self._request_count

    def request(
        self,
        headers: Mapping[str, Any],
        transport_options: dict[str, Any] | None = None,
        fingerprint_options: AntiFingerprintOptions | dict[str, Any] | None = None,
    ) -> H2Stream:
        """Reorder ``headers`` and open a stream.

        Raises:
            StrictModeViolationError: strict connection, an option argument missing
            HeaderPolicyConflictError: template order combined with shuffling
        """
        plan = self._assembler.plan_request(
            transport_options,
            fingerprint_options,
            seeded=self._settings_generator.is_seeded,
        )

        if plan.regenerate_settings:
            self._settings = self._settings_generator.generate()
            self._transport.update_settings(self._settings)

        filled = fill_pseudo_headers(headers, self._authority)
        ordered = self._header_engine.apply(filled, plan.header_policy)
        stream = self._transport.send_request(ordered, **plan.transport_options)
        self._request_count += 1
        return stream

    async def close(self) -> None:
        await self._transport.close()
        logger.info(f"Connection to {self._authority.host} closed after {self._request_count} requests")

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def _open_tunnelled(
    target: Authority,
    proxy: ProxyConfig,
    options: AntiFingerprintOptions,
    session: SessionOptions,
) -> StreamPair:
    """CONNECT through the proxy, then secure the tunnel for https targets.

    A caller-supplied ``create_connection`` is given the tunnel and takes
    the place of the default TLS handshake.
    """
    response, reader, writer = await open_tunnel(target.hostname, target.port, proxy)

    try:
        if options.on_switching_protocols:
            options.on_switching_protocols(response)

        if not response.ok:
            raise ProxyTunnelError(
                f"Proxy refused CONNECT to {target.host}: {response.status_code} {response.reason}",
                proxy_url=proxy.masked_url,
                status_code=response.status_code,
                is_auth_failure=response.status_code == 407,
            )

        if options.create_connection:
            return await options.create_connection(target, tunnel=(reader, writer))

        if session.tls is not None:
            context = build_ssl_context(session.tls, ca=session.ca)
            overrides = session.tls.tls_connect_overrides or {}
            await writer.start_tls(context, server_hostname=overrides.get("server_hostname", target.hostname))
    except BaseException:
        await close_tunnel((reader, writer))
        raise

    return reader, writer


async def connect(
    authority: str,
    listener: Listener | None = None,
    options: AntiFingerprintOptions | dict[str, Any] | None = None,
) -> Connection:
    """Open a fingerprint-randomized HTTP/2 session to ``authority``.

    The socket is closed again if any step after it was opened fails.

    Raises:
        TlsVersionOverrideError: forced TLS version without legacy spoof
        ProxyTunnelError: proxy answered CONNECT with a non-2xx status or a malformed head
    """
    options = ConfigLoader.coerce(options)
    target = Authority.parse(authority)
    proxy = options.proxy

    cursor = SeedCursor(options.seed) if options.seed is not None else None
    settings_generator = FingerprintSettingsGenerator(cursor)

    assembler = SessionOptionsAssembler(options)
    session = assembler.assemble(
        settings_generator,
        TlsSpoofGenerator(),
        proxied=proxy is not None,
        secure=target.secure,
    )

    if proxy is not None:
        streams = await _open_tunnelled(target, proxy, options, session)
    else:
        factory = options.create_connection or assembler.connection_factory(session)
        streams = await factory(target)

    reader, writer = streams
    try:
        transport = H2Transport(reader, writer, target, config_overrides=session.transport_extras)
        await transport.start(session.settings)
    except BaseException:
        await close_tunnel(streams)
        raise

    connection = Connection(
        authority=target,
        transport=transport,
        options=options,
        session=session,
        settings_generator=settings_generator,
        listener=listener,
    )

    via = f" via {proxy.masked_url}" if proxy else ""
    logger.info(f"Connected to {target.host}{via} (seeded={settings_generator.is_seeded})")

    if listener:
        result = listener(connection)
        if inspect.isawaitable(result):
            await result

    return connection
