"""Duration strings such as ``"1m30s"``: parsing to seconds and formatting back."""

from __future__ import annotations

import re

_NANOSECOND = 1
_MICROSECOND = 1_000 * _NANOSECOND
_MILLISECOND = 1_000 * _MICROSECOND
_SECOND = 1_000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

_MAX_NANOSECONDS = 2**63 - 1

_UNITS = {
    "ns": _NANOSECOND,
    "us": _MICROSECOND,
    "\u00b5s": _MICROSECOND,  # micro sign
    "\u03bcs": _MICROSECOND,  # greek small letter mu
    "ms": _MILLISECOND,
    "s": _SECOND,
    "m": _MINUTE,
    "h": _HOUR,
}

_SEGMENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")


def parse_duration(text: str) -> float:
    """Parse a duration such as ``"300ms"``, ``"-1.5h"`` or ``"2h45m"`` into seconds.

    Valid units are ``ns``, ``us`` (or ``µs``), ``ms``, ``s``, ``m`` and ``h``.
    Raises ValueError for malformed input or values that overflow.
    """
    invalid = f"time: invalid duration {text!r}"
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise ValueError(invalid)

    limit = _MAX_NANOSECONDS + 1 if negative else _MAX_NANOSECONDS
    total = 0
    pos = 0
    while pos < len(rest):
        match = _SEGMENT.match(rest, pos)
        whole, fraction, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not fraction:
            raise ValueError(invalid)
        if not unit:
            raise ValueError(f"time: missing unit in duration {text!r}")
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f"time: unknown unit {unit!r} in duration {text!r}")
        total += int(whole or "0") * scale
        if fraction:
            total += int(fraction) * scale // 10 ** len(fraction)
        if total > limit:
            raise ValueError(invalid)
        pos = match.end()

    nanoseconds = -total if negative else total
    return nanoseconds / _SECOND


def _fraction(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    if not frac:
        return str(whole)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}"


def format_duration(seconds: float) -> str:
    """Format a number of seconds in the canonical form, e.g. ``"1h2m3.5s"``."""
    nanoseconds = round(seconds * _SECOND)
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    value = abs(nanoseconds)

    if value < _SECOND:
        if value < _MICROSECOND:
            text = f"{value}ns"
        elif value < _MILLISECOND:
            text = _fraction(value, 3) + "\u00b5s"
        else:
            text = _fraction(value, 6) + "ms"
        return sign + text

    minutes, remainder = divmod(value, _MINUTE)
    text = _fraction(remainder, 9) + "s"
    if minutes:
        hours, minutes = divmod(minutes, 60)
        text = f"{minutes}m{text}"
        if hours:
            text = f"{hours}h{text}"
    return sign + text