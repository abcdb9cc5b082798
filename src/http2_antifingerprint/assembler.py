"""
http2-antifingerprint - Session Options Assembler

Glue between option records and the transport:
    - assembles per-connection session options (SETTINGS + TLS descriptor)
    - builds the default socket factory for direct connections
    - plans each request: strict mode, option merging, header policy and
      seeded SETTINGS regeneration

All checks run before anything is written to the socket.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .config import AntiFingerprintOptions, ConfigLoader
from .exceptions import StrictModeViolationError
from .header_order import HeaderOrderPolicy
from .settings_generator import FingerprintSettingsGenerator, Http2Settings
from .tls_spoof import TlsSpoofDescriptor, TlsSpoofGenerator, build_ssl_context
from .transport import Authority, StreamPair

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[Authority], Awaitable[StreamPair]]


@dataclass(frozen=True)
class SessionOptions:
    """Everything the transport needs to open one session."""

    settings: Http2Settings
    tls: TlsSpoofDescriptor | None = None
    ca: str | bytes | None = None
    transport_extras: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"settings": self.settings.to_dict()}
        if self.tls is not None:
            data.update(self.tls.as_dict())
        return data


@dataclass(frozen=True)
class RequestPlan:
    """Validated decisions for one outgoing request."""

    options: AntiFingerprintOptions
    header_policy: HeaderOrderPolicy
    regenerate_settings: bool
    transport_options: dict[str, Any] = field(default_factory=dict)


class SessionOptionsAssembler:
    """Merges connection-level and request-level options for one connection."""

    def __init__(self, connection_options: AntiFingerprintOptions) -> None:
        self._options = connection_options

    @property
    def options(self) -> AntiFingerprintOptions:
        return self._options

    @property
    def strict_mode(self) -> bool:
        return bool(self._options.strict_mode)

    def merge(self, request_options: AntiFingerprintOptions | dict[str, Any] | None) -> AntiFingerprintOptions:
        """Connection-level values win over request-level values."""
        if request_options is None:
            return self._options
        return ConfigLoader.merge(self._options, ConfigLoader.coerce(request_options))

    # -- connection --------------------------------------------------------

    def assemble(
        self,
        settings_generator: FingerprintSettingsGenerator,
        tls_generator: TlsSpoofGenerator,
        proxied: bool,
        secure: bool = True,
    ) -> SessionOptions:
        """Draw the connection's SETTINGS and, for TLS sessions, its TLS descriptor.

        Raises:
            TlsVersionOverrideError: forced TLS version without legacy spoof
        """
        tls_generator.validate_version_override(self._options)

        descriptor = tls_generator.generate(self._options, proxied=proxied) if secure else None

        return SessionOptions(
            settings=settings_generator.generate(),
            tls=descriptor,
            ca=self._options.ca,
            transport_extras=self._options.transport_extras,
        )

    @staticmethod
    def connection_factory(session: SessionOptions) -> ConnectionFactory:
        """Default socket factory for direct (non-proxied) connections."""

        async def create_connection(authority: Authority) -> StreamPair:
            if session.tls is None:
                return await asyncio.open_connection(authority.hostname, authority.port)

            context = build_ssl_context(session.tls, ca=session.ca)
            overrides = session.tls.tls_connect_overrides or {}
            return await asyncio.open_connection(
                authority.hostname,
                authority.port,
                ssl=context,
                server_hostname=overrides.get("server_hostname", authority.hostname),
            )

        return create_connection

    # -- requests ----------------------------------------------------------

    def plan_request(
        self,
        transport_options: dict[str, Any] | None,
        fingerprint_options: AntiFingerprintOptions | dict[str, Any] | None,
        seeded: bool,
    ) -> RequestPlan:
        """Validate and merge options for one request.

        Raises:
            StrictModeViolationError: strict connection, an option argument missing
            HeaderPolicyConflictError: template order combined with shuffling
        """
        if self.strict_mode:
            missing = [
                name
                for name, value in (
                    ("transport_options", transport_options),
                    ("fingerprint_options", fingerprint_options),
                )
                if value is None
            ]
            if missing:
                raise StrictModeViolationError(missing)

        merged = self.merge(fingerprint_options)
        policy = HeaderOrderPolicy.from_options(merged)

        regenerate = bool(merged.is_request_depends_on_seed)
        if regenerate and not seeded:
            logger.debug("isRequestDependsOnSeed ignored: connection has no seed")
            regenerate = False

        return RequestPlan(
            options=merged,
            header_policy=policy,
            regenerate_settings=regenerate,
            transport_options=dict(transport_options or {}),
        )
