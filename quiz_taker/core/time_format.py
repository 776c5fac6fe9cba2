"""Helpers for the ``HH:MM:SS[.fff]`` time spans used by the quiz API."""

from __future__ import annotations

import math

from quiz_taker.constants.attempt_constants import ZERO_TIME_SPAN


def parse_time_span(value: str | None) -> float:
    """Return the total number of seconds in ``value``.

    Accepts ``HH:MM:SS``, ``HH:MM:SS.fff`` and the ``D.HH:MM:SS`` form .NET
    emits for spans longer than a day. Missing or malformed values yield NaN,
    which compares as neither lower nor equal to any other span.
    """
    if not value:
        return math.nan
    days = 0
    text = value.strip()
    head, sep, rest = text.partition(".")
    if sep and ":" not in head:
        try:
            days = int(head)
        except ValueError:
            return math.nan
        text = rest
    parts = text.split(":")
    if len(parts) != 3:
        return math.nan
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return math.nan
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def parse_time_limit(value: str | int | float | None) -> int | None:
    """Normalize a quiz time limit to whole seconds, ``None`` meaning unlimited."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        seconds = parse_time_span(value)
    if math.isnan(seconds) or seconds <= 0:
        return None
    return int(seconds)


def format_seconds(seconds: float | None) -> str:
    """Format a number of seconds as ``HH:MM:SS``."""
    if seconds is None or math.isnan(seconds) or seconds <= 0:
        return ZERO_TIME_SPAN
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
