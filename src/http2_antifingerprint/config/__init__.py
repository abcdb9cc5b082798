"""
http2-antifingerprint - Configuration Module

Loads option records for ``connect`` and ``Connection.request`` and holds
the process-wide runtime settings.

Usage:
    from http2_antifingerprint.config import ConfigLoader

    # From a JSON file using camelCase keys
    options = ConfigLoader.from_file("fingerprint.json")

    # From keyword-style dict
    options = ConfigLoader.from_dict({"seed": 7, "reorderHeaders": False})

    # Connection-level values win over request-level values
    merged = ConfigLoader.merge(connection_options, request_options)
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..exceptions import AntiFingerprintConfigError
from .base import FORCED_TLS_VERSION_KEYS, AntiFingerprintOptions, ProxyConfig
from .settings import RuntimeSettings, settings

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Builds and merges AntiFingerprintOptions.

    Usage:
        # From file
        options = ConfigLoader.from_file("fingerprint.json")

        # From dict
        options = ConfigLoader.from_dict({"curveSpoof": True})

        # Anything accepted by connect()/request()
        options = ConfigLoader.coerce(None)
    """

    @classmethod
    def from_file(cls, path: str | Path) -> AntiFingerprintOptions:
        """Load options from a JSON file.

        Raises:
            FileNotFoundError: If file not found
            AntiFingerprintConfigError: If JSON or option values are invalid
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise AntiFingerprintConfigError(f"Invalid JSON in configuration file: {e}") from e

        logger.info(f"Loaded fingerprint options from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AntiFingerprintOptions:
        """Validate a dict of options.

        Keys starting with ``_`` are treated as comments and dropped.
        """
        clean_data = {k: v for k, v in data.items() if not k.startswith("_")}

        try:
            return AntiFingerprintOptions.model_validate(clean_data)
        except ValidationError as e:
            raise AntiFingerprintConfigError(
                f"Option validation failed: {e}",
                config_keys=[str(err["loc"][0]) for err in e.errors() if err["loc"]],
            ) from e

    @classmethod
    def default(cls) -> AntiFingerprintOptions:
        return AntiFingerprintOptions()

    @classmethod
    def coerce(cls, options: AntiFingerprintOptions | dict[str, Any] | None) -> AntiFingerprintOptions:
        """Accept an options model, a plain dict, or None."""
        if options is None:
            return cls.default()
        if isinstance(options, AntiFingerprintOptions):
            return options
        return cls.from_dict(options)

    @classmethod
    def merge(
        cls,
        connection: AntiFingerprintOptions,
        request: AntiFingerprintOptions | None,
    ) -> AntiFingerprintOptions:
        """Merge request-level options under connection-level options.

        A key supplied at both levels keeps the connection-level value.
        """
        if request is None:
            return connection

        merged = request.supplied()
        merged.update(connection.supplied())
        return cls.from_dict(merged)


__all__ = [
    "AntiFingerprintOptions",
    "ConfigLoader",
    "FORCED_TLS_VERSION_KEYS",
    "ProxyConfig",
    "RuntimeSettings",
    "settings",
]
