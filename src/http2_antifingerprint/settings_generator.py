"""
http2-antifingerprint - SETTINGS Generator

Produces the HTTP/2 SETTINGS values announced by a connection. Unseeded
generators draw uniformly; seeded generators draw from the connection's
SeedCursor in a fixed field order and keep an append-only history so that
two connections with the same seed can be compared frame by frame.
"""

import logging
from dataclasses import asdict, dataclass

from h2.settings import SettingCodes

from .random_source import RandomSource, SeedCursor, default_source

logger = logging.getLogger(__name__)

MAX_16_BIT = 2**16 - 1
MIN_FRAME_SIZE = 2**14
MAX_FRAME_SIZE = 2**24 - 1


@dataclass(frozen=True)
class Http2Settings:
    """One SETTINGS snapshot. Field order is the draw order."""

    header_table_size: int
    enable_push: bool
    initial_window_size: int
    max_frame_size: int
    max_concurrent_streams: int
    max_header_list_size: int
    enable_connect_protocol: bool

    def as_h2_settings(self) -> dict[int, int]:
        """Map to h2 setting codes for ``H2Connection.update_settings``."""
        return {
            SettingCodes.HEADER_TABLE_SIZE: self.header_table_size,
            SettingCodes.ENABLE_PUSH: int(self.enable_push),
            SettingCodes.INITIAL_WINDOW_SIZE: self.initial_window_size,
            SettingCodes.MAX_FRAME_SIZE: self.max_frame_size,
            SettingCodes.MAX_CONCURRENT_STREAMS: self.max_concurrent_streams,
            SettingCodes.MAX_HEADER_LIST_SIZE: self.max_header_list_size,
            SettingCodes.ENABLE_CONNECT_PROTOCOL: int(self.enable_connect_protocol),
        }

    def to_dict(self) -> dict[str, int | bool]:
        return asdict(self)


class FingerprintSettingsGenerator:
    """
    Generates Http2Settings for one connection.

    With a cursor every field comes from ``seedint`` and each snapshot is
    appended to ``history``. Without one, fields come from ``randint`` and
    ``history`` is None.
    """

    def __init__(
        self,
        cursor: SeedCursor | None = None,
        source: RandomSource | None = None,
    ) -> None:
        self._cursor = cursor
        self._source = source or default_source
        self._history: list[Http2Settings] | None = [] if cursor is not None else None

    @property
    def is_seeded(self) -> bool:
        return self._cursor is not None

    @property
    def history(self) -> tuple[Http2Settings, ...] | None:
        if self._history is None:
            return None
        return tuple(self._history)

    def _draw(self, min_value: int, max_value: int) -> int:
        if self._cursor is not None:
            return self._source.seedint(min_value, max_value, self._cursor)
        return self._source.randint(min_value, max_value)

    def generate(self) -> Http2Settings:
        """Draw a new snapshot; seeded snapshots are recorded in history."""
        settings = Http2Settings(
            header_table_size=self._draw(0, MAX_16_BIT),
            enable_push=bool(self._draw(0, 1)),
            initial_window_size=self._draw(0, MAX_16_BIT),
            max_frame_size=self._draw(MIN_FRAME_SIZE, MAX_FRAME_SIZE),
            max_concurrent_streams=self._draw(0, MAX_16_BIT),
            max_header_list_size=self._draw(0, MAX_16_BIT),
            enable_connect_protocol=bool(self._draw(0, 1)),
        )

        if self._history is not None:
            self._history.append(settings)
            logger.debug(f"Seeded settings #{len(self._history)}: {settings.to_dict()}")
        else:
            logger.debug(f"Generated settings: {settings.to_dict()}")

        return settings
