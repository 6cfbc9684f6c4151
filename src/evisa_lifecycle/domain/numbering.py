"""Application number format: <PREFIX><YEAR><zero-padded per-year sequence>."""

from __future__ import annotations

DEFAULT_PREFIX = "EVISA"
DEFAULT_SEQUENCE_WIDTH = 6


def sequence_key(year: int) -> str:
    """Counter key under which the per-year sequence is incremented."""
    return f"application_number:{year}"


def format_application_number(
    year: int,
    sequence: int,
    prefix: str = DEFAULT_PREFIX,
    width: int = DEFAULT_SEQUENCE_WIDTH,
) -> str:
    if sequence < 1:
        raise ValueError(f"sequence must be 1-based, got {sequence}")
    return f"{prefix}{year}{sequence:0{width}d}"
