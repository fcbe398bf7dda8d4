from __future__ import annotations

import re

_FREQ_PATTERN = re.compile(
    r"^(?P<value>[-+]?\d+(?:\.\d+)?)\s*(?P<unit>[kKmMgG]?)\s*(?:[Hh][Zz]|[Ss](?:/[Ss])?|[Ss][Pp][Ss])?$"
)

_UNIT_MULTIPLIERS = {
    "": 1.0,
    "k": 1e3,
    "m": 1e6,
    "g": 1e9,
}


def parse_frequency_text(text: str | None) -> int | None:
    """Parse ``434.2M``, ``2.88 MHz``, ``2_880_000`` or ``250k`` into whole hertz.

    Sample rates use the same notation (``2.4M``, ``2.4 MS/s``). Returns None for
    blank, malformed or non-positive input.
    """
    if text is None:
        return None
    cleaned = text.strip().replace(",", "").replace("_", "")
    if not cleaned:
        return None
    match = _FREQ_PATTERN.match(cleaned)
    if not match:
        return None
    magnitude = float(match.group("value"))
    multiplier = _UNIT_MULTIPLIERS[match.group("unit").lower()]
    value = int(round(magnitude * multiplier))
    return value if value > 0 else None


__all__ = ["parse_frequency_text"]
