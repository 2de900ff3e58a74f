"""Parsing of lookback window strings such as ``24h`` or ``1h30m``.

The format is the one operators already use for Prometheus-adjacent
tooling: one or more ``<number><unit>``
pairs, where the number may have a fraction and the unit is one of
``ns``, ``us`` (or ``µs``), ``ms``, ``s``, ``m``, ``h``.
"""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

# Longest units first so "ms" is not read as "m" followed by garbage.
_PART_RE = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration string into a ``timedelta``.

    Raises ``ValueError`` when the string is empty, has no unit or
    contains anything that is not a ``<number><unit>`` pair.  A sign is
    rejected: the window always reaches back from now.
    """
    raw = text.strip()

    if raw == "0":
        return timedelta(0)
    if not raw:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    pos = 0
    for match in _PART_RE.finditer(raw):
        if match.start() != pos:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(raw):
        raise ValueError(f"invalid duration {text!r}")

    return timedelta(seconds=total)
