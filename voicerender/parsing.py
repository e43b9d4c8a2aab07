"""Shared parsing helpers for config values and markup time attributes."""

from __future__ import annotations

import re


_TIME_VALUE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)(ms|s)$")


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_time_to_ms(value: str) -> float | None:
    """Parse a markup time value (`300ms`, `0.4s`) into milliseconds.

    Returns `None` when the value is not a well-formed time token.
    """

    match = _TIME_VALUE_PATTERN.match(value.strip())
    if match is None:
        return None
    amount = float(match.group(1))
    if match.group(2) == "ms":
        return amount
    return amount * 1000.0


def format_seconds(milliseconds: float) -> str:
    """Format milliseconds as a one-decimal seconds token such as `0.4s`."""

    tenths = int(milliseconds / 100.0 + 0.5)
    return f"{tenths / 10:.1f}s"
