"""
http2-antifingerprint - Option Models

Per-call configuration records accepted by ``connect`` and
``Connection.request``. Field names are snake_case; the camelCase names
used by JSON configuration files are accepted as aliases.

Every fingerprint flag defaults to None, meaning "not supplied". Consumers
apply the effective defaults so that merging connection-level and
request-level options can tell an explicit False from an absent key.
"""

from collections.abc import Callable
from typing import Any
from urllib.parse import quote, unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel

FORCED_TLS_VERSION_KEYS = {
    "force_tls_v1": "forceTlsV1",
    "force_tls_v1_dot1": "forceTlsV1dot1",
    "force_tls_v1_dot2": "forceTlsV1dot2",
}


class ProxyConfig(BaseModel):
    """HTTP proxy used for CONNECT tunnelling."""

    model_config = ConfigDict(frozen=True)

    scheme: str = "http"
    host: str
    port: int
    user: str | None = None
    password: SecretStr | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.user or self.password)

    @property
    def credentials(self) -> str:
        """``user:password`` as sent in Basic proxy authorization."""
        password = self.password.get_secret_value() if self.password else ""
        return f"{self.user or ''}:{password}"

    @property
    def url(self) -> str:
        if self.has_credentials:
            password = self.password.get_secret_value() if self.password else ""
            return f"{self.scheme}://{quote(self.user or '', safe='')}:{quote(password, safe='')}@{self.host}:{self.port}"
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def masked_url(self) -> str:
        if self.has_credentials:
            return f"{self.scheme}://***:***@{self.host}:{self.port}"
        return self.url

    @classmethod
    def from_url(cls, url: str) -> "ProxyConfig":
        """Parse ``scheme://[user:password@]host:port``."""
        parsed = urlparse(url)
        if not parsed.hostname or not parsed.port:
            raise ValueError(f"Proxy URL must include host and port: {url!r}")

        return cls(
            scheme=parsed.scheme or "http",
            host=parsed.hostname,
            port=parsed.port,
            user=unquote(parsed.username) if parsed.username else None,
            password=unquote(parsed.password) if parsed.password else None,
        )


class AntiFingerprintOptions(BaseModel):
    """
    Fingerprint configuration for one connection or one request.

    Unrecognized keys are kept and forwarded untouched to the transport
    (see ``transport_extras``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    proxy: ProxyConfig | None = None
    seed: int | float | None = None
    strict_mode: bool | None = None

    # Header ordering
    reorder_headers: bool | None = None
    reorder_pseudo_headers: bool | None = None
    ban_original_header_order: bool | None = None
    ban_original_pseudo_header_order: bool | None = None
    prefer_chrome_header_order: bool | None = None

    # TLS spoofing
    negotiation_spoof: bool | None = None
    curve_spoof: bool | None = None
    spoof_secure_options: bool | None = None
    spoof_honor_cipher_order: bool | None = None
    legacy_tls_spoof: bool | None = None
    force_tls_v1: bool | None = Field(default=None, alias="forceTlsV1")
    force_tls_v1_dot1: bool | None = Field(default=None, alias="forceTlsV1dot1")
    force_tls_v1_dot2: bool | None = Field(default=None, alias="forceTlsV1dot2")
    tls_connect_overrides: dict[str, Any] | None = None
    ca: str | bytes | None = None

    # Seeded per-request SETTINGS
    is_request_depends_on_seed: bool | None = None

    # Connection hooks
    on_switching_protocols: Callable[..., Any] | None = None
    create_connection: Callable[..., Any] | None = None

    @field_validator("proxy", mode="before")
    @classmethod
    def parse_proxy_url(cls, v: Any) -> Any:
        if isinstance(v, str):
            return ProxyConfig.from_url(v)
        return v

    @field_validator("seed", mode="before")
    @classmethod
    def reject_boolean_seed(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("seed must be a number, not a boolean")
        return v

    @property
    def forced_tls_versions(self) -> list[str]:
        """camelCase names of every forced TLS version flag set to True."""
        return [alias for name, alias in FORCED_TLS_VERSION_KEYS.items() if getattr(self, name)]

    @property
    def transport_extras(self) -> dict[str, Any]:
        """Unrecognized keys, passed through to the transport."""
        return dict(self.model_extra or {})

    def supplied(self) -> dict[str, Any]:
        """Keys the caller actually supplied, by field name, extras included."""
        data = self.model_dump(exclude_unset=True, exclude_none=True)
        data.update({k: v for k, v in self.transport_extras.items() if v is not None})
        return data
