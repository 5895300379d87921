"""Compact duration grammar used in policy tokens.

A timespan is either a bare integer count of seconds (``"90"``) or one or
more ``<digits><unit>`` runs written back to back (``"1h30m"``). Units are
case-sensitive and calendar-naive::

    y = 365d   M = 30d   w = 7d   d = 24h   h = 60m   m = 60s   s = 1s
"""

import re

from swr_cache.errors import MalformedTimespan

UNIT_MS: dict[str, int] = {
    "y": 31_536_000_000,
    "M": 2_592_000_000,
    "w": 604_800_000,
    "d": 86_400_000,
    "h": 3_600_000,
    "m": 60_000,
    "s": 1_000,
}

# Expire and stale windows added to the current time must stay within datetime range.
MAX_TIMESPAN_MS = 1_000 * UNIT_MS["y"]

_SECONDS = re.compile(r"\d+")
_RUN = re.compile(r"(\d+)([yMwdhms])")
_RUNS = re.compile(r"(?:\d+[yMwdhms])+")


def parse_timespan(timespan: str) -> int:
    """Convert a timespan string to milliseconds.

    Raises:
        MalformedTimespan: If the string is empty, uses an unknown unit, or
            contains any text outside of ``<digits><unit>`` runs, or if it is
            longer than :data:`MAX_TIMESPAN_MS`.
    """
    value = timespan.strip()

    if _SECONDS.fullmatch(value):
        ms = int(value) * 1000
    elif _RUNS.fullmatch(value):
        ms = sum(int(amount) * UNIT_MS[unit] for amount, unit in _RUN.findall(value))
    else:
        raise MalformedTimespan(timespan)

    if ms > MAX_TIMESPAN_MS:
        raise MalformedTimespan(
            timespan, f'Timespan "{timespan}" is longer than the maximum of 1000y'
        )
    return ms
