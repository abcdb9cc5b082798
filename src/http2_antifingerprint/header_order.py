"""
http2-antifingerprint - Header Ordering

Rewrites the order of an outgoing header map. Two exclusive modes:

    Shuffle mode (default)
        Pseudo-headers and regular headers are shuffled independently and
        pseudo-headers are always emitted first. A "ban original order"
        flag retries the shuffle of a group until its order differs from
        the input; groups with fewer than two members are left alone.

    Template mode (prefer_chrome_header_order)
        Headers are emitted in Chrome's order for the request shape.
        Headers not named by the template are dropped.

Values are never altered; only insertion order changes.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .config import AntiFingerprintOptions
from .exceptions import HeaderPolicyConflictError
from .profiles import HEADER_METHOD, chrome_template_for, is_pseudo_header
from .random_source import RandomSource, default_source

logger = logging.getLogger(__name__)

HeaderSet = dict[str, Any]


@dataclass(frozen=True)
class HeaderOrderPolicy:
    """Effective header-ordering flags for one request."""

    reorder_headers: bool = True
    reorder_pseudo_headers: bool = True
    ban_original_header_order: bool = False
    ban_original_pseudo_header_order: bool = False
    prefer_chrome_header_order: bool = False

    @classmethod
    def from_options(cls, options: AntiFingerprintOptions) -> "HeaderOrderPolicy":
        """Resolve defaults and reject contradictory combinations.

        Raises:
            HeaderPolicyConflictError: template order requested together
                with an explicit request to shuffle either group
        """
        prefer_chrome = bool(options.prefer_chrome_header_order)

        if prefer_chrome:
            conflicting = [
                alias
                for alias, value in (
                    ("reorderHeaders", options.reorder_headers),
                    ("reorderPseudoHeaders", options.reorder_pseudo_headers),
                )
                if value
            ]
            if conflicting:
                raise HeaderPolicyConflictError(conflicting)

        def pick(value: bool | None, default: bool) -> bool:
            return default if value is None else value

        return cls(
            reorder_headers=pick(options.reorder_headers, True),
            reorder_pseudo_headers=pick(options.reorder_pseudo_headers, True),
            ban_original_header_order=pick(options.ban_original_header_order, False),
            ban_original_pseudo_header_order=pick(options.ban_original_pseudo_header_order, False),
            prefer_chrome_header_order=prefer_chrome,
        )


class HeaderOrderingEngine:
    """Applies a HeaderOrderPolicy to outgoing header maps."""

    def __init__(self, source: RandomSource | None = None) -> None:
        self._source = source or default_source

    def apply(self, headers: Mapping[str, Any], policy: HeaderOrderPolicy) -> HeaderSet:
        if policy.prefer_chrome_header_order:
            return self.apply_template(headers)
        return self.apply_shuffle(headers, policy)

    def _shuffle_group(self, group: list[str], ban_original: bool) -> list[str]:
        if len(group) < 2:
            return list(group)

        shuffled = self._source.shuffle(group)
        while ban_original and shuffled == group:
            shuffled = self._source.shuffle(group)
        return shuffled

    def apply_shuffle(self, headers: Mapping[str, Any], policy: HeaderOrderPolicy) -> HeaderSet:
        # With both groups pinned the caller's order is kept as-is
        if not policy.reorder_pseudo_headers and not policy.reorder_headers:
            return dict(headers)

        pseudo = [name for name in headers if is_pseudo_header(name)]
        regular = [name for name in headers if not is_pseudo_header(name)]

        if policy.reorder_pseudo_headers:
            pseudo = self._shuffle_group(pseudo, policy.ban_original_pseudo_header_order)

        if policy.reorder_headers:
            regular = self._shuffle_group(regular, policy.ban_original_header_order)

        return {name: headers[name] for name in [*pseudo, *regular]}

    def apply_template(self, headers: Mapping[str, Any]) -> HeaderSet:
        template = chrome_template_for(headers.get(HEADER_METHOD))

        ordered = {name: headers[name] for name in [*template.pseudo, *template.http] if name in headers}

        dropped = [name for name in headers if name not in ordered]
        if dropped:
            logger.debug(f"Headers outside {template.name} template dropped: {dropped}")

        return ordered
