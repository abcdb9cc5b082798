"""
http2-antifingerprint - Exception Classes

Exception Hierarchy:
    AntiFingerprintException (base)
    |-- AntiFingerprintConfigError   - Caller configuration errors
    |   |-- StrictModeViolationError   - request() without options in strict mode
    |   |-- HeaderPolicyConflictError  - Template order combined with shuffling
    |   |-- TlsVersionOverrideError    - Forced TLS version without legacy spoof
    |-- ProxyTunnelError             - Proxy refused the CONNECT tunnel

Configuration errors are raised synchronously before any frame is written.
Socket, TLS and HTTP/2 failures are not wrapped; they reach the caller as
raised by asyncio, ssl and h2.
"""

from typing import Any


class AntiFingerprintException(Exception):
    """Base exception for all http2-antifingerprint errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"[{details_str}]")
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class AntiFingerprintConfigError(AntiFingerprintException):
    """Invalid or contradictory configuration."""

    def __init__(
        self,
        message: str,
        config_keys: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if config_keys:
            merged["config_keys"] = ",".join(config_keys)
        super().__init__(message, merged)
        self.config_keys = config_keys or []


class StrictModeViolationError(AntiFingerprintConfigError):
    """Connection is in strict mode and request() was called without both option arguments."""

    def __init__(
        self,
        missing: list[str],
    ) -> None:
        super().__init__(
            "Connection.request requires options in strict mode. "
            "Usage: connection.request(headers, transport_options, fingerprint_options)",
            config_keys=["strictMode"],
            details={"missing": ",".join(missing)},
        )
        self.missing = missing


class HeaderPolicyConflictError(AntiFingerprintConfigError):
    """Fixed browser header order requested together with header shuffling."""

    def __init__(self, conflicting_keys: list[str]) -> None:
        super().__init__(
            "preferChromeHeaderOrder cannot be used with reorderPseudoHeaders or reorderHeaders at same time",
            config_keys=["preferChromeHeaderOrder", *conflicting_keys],
        )


class TlsVersionOverrideError(AntiFingerprintConfigError):
    """Forced TLS version is not allowed by the current configuration."""

    def __init__(
        self,
        message: str,
        forced_versions: list[str],
    ) -> None:
        super().__init__(
            message,
            config_keys=["legacyTlsSpoof", *forced_versions],
        )
        self.forced_versions = forced_versions


class ProxyTunnelError(AntiFingerprintException):
    """Proxy answered the CONNECT request with a non-success status."""

    def __init__(
        self,
        message: str,
        proxy_url: str | None = None,
        status_code: int | None = None,
        is_auth_failure: bool = False,
    ) -> None:
        details = {
            "proxy": proxy_url,
            "status_code": status_code,
            "is_auth_failure": is_auth_failure,
        }
        super().__init__(message, details)
        self.proxy_url = proxy_url
        self.status_code = status_code
        self.is_auth_failure = is_auth_failure
