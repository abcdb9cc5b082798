"""
http2-antifingerprint - TLS Spoofing

Turns fingerprint options into TLS handshake parameters:
    - protocol negotiation spoof (protocol subset + signature algorithms)
    - curve list spoof
    - secure-option bitmask spoof
    - cipher order preference spoof
    - protocol version window (direct connections only)
    - shuffled cipher list (direct connections only)

A TlsSpoofDescriptor is computed once per connection attempt and never
mutated. ``build_ssl_context`` only consumes ``connect_options()``, which
never contains the marker flags recording which facets were requested.
"""

import logging
import ssl
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, fields
from functools import reduce
from typing import Any

from .config import AntiFingerprintOptions, RuntimeSettings, settings
from .exceptions import TlsVersionOverrideError
from .random_source import RandomSource, default_source

logger = logging.getLogger(__name__)

TLS = ssl.TLSVersion

NEGOTIATION_PROTOCOLS = ("TLSv1_1", "TLSv1_2", "TLSv1_3")

PROTOCOL_VERSIONS: dict[str, ssl.TLSVersion] = {
    "TLSv1": TLS.TLSv1,
    "TLSv1_1": TLS.TLSv1_1,
    "TLSv1_2": TLS.TLSv1_2,
    "TLSv1_3": TLS.TLSv1_3,
}

SIGNATURE_ALGORITHMS = (
    "ecdsa_sha1",
    "rsa_pkcs1_sha1",
    "rsa_pkcs1_sha256",
    "rsa_pkcs1_sha384",
    "rsa_pkcs1_sha512",
    "rsa_pss_rsae_sha256",
    "rsa_pss_rsae_sha384",
    "rsa_pss_rsae_sha512",
    "ecdsa_secp256r1_sha256",
    "ecdsa_secp384r1_sha384",
    "ecdsa_secp521r1_sha512",
)

# OpenSSL short names; unsupported ones are skipped when the context is built
CURVES = (
    "X25519",
    "X448",
    "prime256v1",
    "secp384r1",
    "secp521r1",
    "secp224r1",
    "secp256k1",
    "brainpoolP256r1",
    "brainpoolP384r1",
    "brainpoolP512r1",
)

SECURE_OPTION_NAMES = (
    "OP_ALL",
    "OP_NO_SSLv2",
    "OP_NO_SSLv3",
    "OP_NO_TICKET",
    "OP_NO_COMPRESSION",
)

# Flags the ssl module does not export, as defined by OpenSSL
OPENSSL_OPTION_BITS = {
    "SSL_OP_CRYPTOPRO_TLSEXT_BUG": 1 << 31,
    "SSL_OP_ALLOW_UNSAFE_LEGACY_RENEGOTIATION": 1 << 18,
    "SSL_OP_NO_SESSION_RESUMPTION_ON_RENEGOTIATION": 1 << 16,
}

BASELINE_VERSION_WINDOWS: tuple[tuple[ssl.TLSVersion, ssl.TLSVersion], ...] = (
    (TLS.TLSv1, TLS.TLSv1_2),
    (TLS.TLSv1, TLS.TLSv1_3),
    (TLS.TLSv1_1, TLS.TLSv1_2),
    (TLS.TLSv1_1, TLS.TLSv1_3),
    (TLS.TLSv1_2, TLS.TLSv1_2),
    (TLS.TLSv1_2, TLS.TLSv1_3),
    (TLS.TLSv1_3, TLS.TLSv1_3),
)

LEGACY_VERSION_WINDOWS: tuple[tuple[ssl.TLSVersion, ssl.TLSVersion], ...] = (
    (TLS.TLSv1, TLS.TLSv1),
    (TLS.TLSv1, TLS.TLSv1_1),
    (TLS.TLSv1_1, TLS.TLSv1_1),
)

FORCED_VERSION_WINDOWS: dict[str, tuple[ssl.TLSVersion, ssl.TLSVersion]] = {
    "forceTlsV1": (TLS.TLSv1, TLS.TLSv1),
    "forceTlsV1dot1": (TLS.TLSv1_1, TLS.TLSv1_1),
    "forceTlsV1dot2": (TLS.TLSv1_2, TLS.TLSv1_2),
}

MARKER_NEGOTIATION = "negotiation_spoof"
MARKER_CURVE = "curve_spoof"
MARKER_SECURE_OPTIONS = "spoof_secure_options"
MARKER_HONOR_CIPHER_ORDER = "spoof_honor_cipher_order"

# Override keys consumed when wrapping the socket rather than by the context
SOCKET_OVERRIDE_KEYS = frozenset({"server_hostname"})


def secure_option_catalogue() -> list[int]:
    """Option flags available to the bitmask spoof on this ssl build."""
    flags = [int(getattr(ssl, name)) for name in SECURE_OPTION_NAMES if hasattr(ssl, name)]
    flags.extend(OPENSSL_OPTION_BITS.values())
    return flags


def default_cipher_catalogue() -> list[str]:
    """Cipher names the local OpenSSL offers by default, in preference order."""
    return [cipher["name"] for cipher in ssl.create_default_context().get_ciphers()]


def bitmask(flags: Sequence[int]) -> int:
    return reduce(lambda mask, flag: mask | flag, flags, 0)


@dataclass(frozen=True)
class TlsSpoofDescriptor:
    """TLS parameters for one connection attempt."""

    min_version: ssl.TLSVersion | None = None
    max_version: ssl.TLSVersion | None = None
    ciphers: str | None = None
    protocols: tuple[str, ...] | None = None
    sigalgs: str | None = None
    ecdh_curve: str | None = None
    secure_options: int | None = None
    honor_cipher_order: bool | None = None
    tls_connect_overrides: dict[str, Any] | None = None
    markers: frozenset[str] = field(default_factory=frozenset)

    def connect_options(self) -> dict[str, Any]:
        """Values handed to the TLS layer; marker flags are stripped."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "markers" and getattr(self, f.name) is not None
        }

    def as_dict(self) -> dict[str, Any]:
        """Inspection view: applied values plus requested-facet markers."""
        data = self.connect_options()
        data.update({marker: True for marker in sorted(self.markers)})
        return data


class TlsSpoofGenerator:
    """
    Draws TLS spoof parameters.

    Every facet is independent; ``generate`` combines the ones requested by
    the options into a TlsSpoofDescriptor.
    """

    def __init__(
        self,
        source: RandomSource | None = None,
        cipher_catalogue: Callable[[], list[str]] | None = None,
        curve_catalogue: Sequence[str] = CURVES,
        runtime: RuntimeSettings | None = None,
    ) -> None:
        self._source = source or default_source
        self._cipher_catalogue = cipher_catalogue or default_cipher_catalogue
        self._curve_catalogue = tuple(curve_catalogue)
        self._runtime = runtime or settings

    # -- facets ------------------------------------------------------------

    def negotiation_props(self) -> dict[str, Any]:
        protocols = self._source.shuffle(NEGOTIATION_PROTOCOLS)
        protocols = protocols[self._source.randint(0, len(protocols) - 1) :]

        sigalgs = self._source.shuffle(SIGNATURE_ALGORITHMS)
        sigalgs = sigalgs[self._source.randint(0, 7) :]

        return {"protocols": tuple(protocols), "sigalgs": ":".join(sigalgs)}

    def curve_props(self) -> dict[str, Any]:
        curves = self._source.shuffle(self._curve_catalogue)
        curves = curves[self._source.randint(0, max(len(curves) - 2, 0)) :]
        return {"ecdh_curve": ":".join(curves)}

    def secure_options_props(self) -> dict[str, Any]:
        flags = self._source.shuffle(secure_option_catalogue())
        flags = flags[self._source.randint(0, max(len(flags) - 2, 0)) :]
        return {"secure_options": bitmask(flags)}

    def honor_cipher_order_props(self) -> dict[str, Any]:
        return {"honor_cipher_order": self._source.coin()}

    def select_ciphers(self) -> str:
        """Shuffle a prefix of the library cipher list and drop 0-2 from the end."""
        ciphers = self._source.shuffle(self._cipher_catalogue()[: self._runtime.H2AF_CIPHER_PREFIX_LENGTH])

        for _ in range(self._source.randint(0, self._runtime.H2AF_MAX_DROPPED_CIPHERS)):
            if len(ciphers) > 1:
                ciphers.pop()

        return ":".join(ciphers).upper()

    # -- version window ----------------------------------------------------

    @staticmethod
    def validate_version_override(options: AntiFingerprintOptions) -> None:
        """Reject forced TLS versions the configuration cannot honour."""
        forced = options.forced_tls_versions
        if not forced:
            return

        if not options.legacy_tls_spoof:
            raise TlsVersionOverrideError(
                "Forcing a TLS version requires legacyTlsSpoof",
                forced_versions=forced,
            )

        if len(forced) > 1:
            raise TlsVersionOverrideError(
                "Only one TLS version can be forced at a time",
                forced_versions=forced,
            )

    def version_window_table(
        self,
        options: AntiFingerprintOptions,
    ) -> list[tuple[ssl.TLSVersion, ssl.TLSVersion]]:
        self.validate_version_override(options)

        forced = options.forced_tls_versions
        if forced:
            return [FORCED_VERSION_WINDOWS[forced[0]]]

        table = list(BASELINE_VERSION_WINDOWS)
        if options.legacy_tls_spoof:
            table.extend(LEGACY_VERSION_WINDOWS)
        return table

    def select_version_window(
        self,
        options: AntiFingerprintOptions,
    ) -> tuple[ssl.TLSVersion, ssl.TLSVersion]:
        table = self.version_window_table(options)
        return table[self._source.randint(0, len(table) - 1)]

    # -- descriptor --------------------------------------------------------

    def generate(
        self,
        options: AntiFingerprintOptions,
        proxied: bool = False,
    ) -> TlsSpoofDescriptor:
        """Build the descriptor for one connection attempt.

        Tunnelled connections receive no version window, cipher list or
        cipher order preference.
        """
        values: dict[str, Any] = {}
        markers: set[str] = set()

        if options.negotiation_spoof:
            values.update(self.negotiation_props())
            markers.add(MARKER_NEGOTIATION)

        if options.curve_spoof:
            values.update(self.curve_props())
            markers.add(MARKER_CURVE)

        if options.spoof_secure_options:
            values.update(self.secure_options_props())
            markers.add(MARKER_SECURE_OPTIONS)

        if not proxied:
            if options.spoof_honor_cipher_order:
                values.update(self.honor_cipher_order_props())
                markers.add(MARKER_HONOR_CIPHER_ORDER)

            values["min_version"], values["max_version"] = self.select_version_window(options)
            values["ciphers"] = self.select_ciphers()
        else:
            self.validate_version_override(options)

        if options.tls_connect_overrides:
            values["tls_connect_overrides"] = dict(options.tls_connect_overrides)

        descriptor = TlsSpoofDescriptor(markers=frozenset(markers), **values)
        logger.debug(f"TLS spoof descriptor (proxied={proxied}): {descriptor.as_dict()}")
        return descriptor


# ============================================
# SSL context construction
# ============================================


def _narrow_window(
    descriptor: TlsSpoofDescriptor,
) -> tuple[ssl.TLSVersion | None, ssl.TLSVersion | None]:
    """Intersect the version window with negotiated protocols, if both are set."""
    lo, hi = descriptor.min_version, descriptor.max_version
    if not descriptor.protocols:
        return lo, hi

    versions = sorted(PROTOCOL_VERSIONS[name] for name in descriptor.protocols)
    if lo is None and hi is None:
        return versions[0], versions[-1]

    narrowed_lo = max(lo, versions[0]) if lo is not None else versions[0]
    narrowed_hi = min(hi, versions[-1]) if hi is not None else versions[-1]
    if narrowed_lo > narrowed_hi:
        # No overlap; the version window wins
        return lo, hi
    return narrowed_lo, narrowed_hi


def _apply_curves(context: ssl.SSLContext, curve_list: str) -> None:
    """Apply the first curve of the list the local OpenSSL accepts."""
    for name in curve_list.split(":"):
        try:
            context.set_ecdh_curve(name)
        except (ValueError, ssl.SSLError) as e:
            logger.debug(f"Curve {name} rejected by OpenSSL: {e}")
            continue
        return
    logger.warning(f"No curve from spoofed list accepted, keeping defaults: {curve_list}")


def apply_tls_overrides(context: ssl.SSLContext, overrides: dict[str, Any]) -> None:
    """Apply caller overrides on top of the spoofed context."""
    for key, value in overrides.items():
        if key in SOCKET_OVERRIDE_KEYS:
            continue
        if key == "alpn_protocols":
            context.set_alpn_protocols(list(value))
        elif key == "ciphers":
            context.set_ciphers(value)
        elif key == "ecdh_curve":
            context.set_ecdh_curve(value)
        elif hasattr(context, key) and not callable(getattr(context, key)):
            setattr(context, key, value)
        else:
            logger.warning(f"Ignoring unsupported TLS override: {key}")


def build_ssl_context(
    descriptor: TlsSpoofDescriptor,
    ca: str | bytes | None = None,
) -> ssl.SSLContext:
    """Create a client SSLContext configured by ``descriptor``."""
    options = descriptor.connect_options()

    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.set_alpn_protocols(["h2"])

    lo, hi = _narrow_window(descriptor)
    if hi is not None:
        context.maximum_version = hi
    if lo is not None:
        context.minimum_version = lo

    legacy_only = hi is not None and hi < TLS.TLSv1_2
    cipher_string = options.get("ciphers")
    if legacy_only:
        cipher_string = f"{cipher_string or 'DEFAULT'}:@SECLEVEL=0"
    if cipher_string:
        context.set_ciphers(cipher_string)

    if "ecdh_curve" in options:
        _apply_curves(context, options["ecdh_curve"])

    if "secure_options" in options:
        context.options = int(context.options) | options["secure_options"]

    if options.get("honor_cipher_order"):
        context.options |= ssl.OP_CIPHER_SERVER_PREFERENCE

    if "sigalgs" in options:
        logger.debug(f"Signature algorithms recorded but not settable via ssl: {options['sigalgs']}")

    if ca:
        if isinstance(ca, bytes) or ca.lstrip().startswith("-----BEGIN"):
            context.load_verify_locations(cadata=ca.decode() if isinstance(ca, bytes) else ca)
        else:
            context.load_verify_locations(cafile=ca)

    if "tls_connect_overrides" in options:
        apply_tls_overrides(context, options["tls_connect_overrides"])

    return context
