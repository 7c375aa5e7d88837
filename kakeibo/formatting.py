"""Formatting utilities for yen amounts and labels."""

from __future__ import annotations

from typing import Union

from .models import PURPOSE_LABELS, Purpose


def format_yen(amount: Union[float, int, None], include_sign: bool = True) -> str:
    """Format a yen amount with thousands separators and no decimals.

    Example:
        >>> format_yen(1234567)
        '¥1,234,567'
        >>> format_yen(-500)
        '-¥500'
        >>> format_yen(1200, include_sign=False)
        '1,200'
    """
    value = int(round(amount or 0))
    formatted = f"{abs(value):,}"
    if include_sign:
        formatted = f"¥{formatted}"
    return f"-{formatted}" if value < 0 else formatted


def purpose_label(value: str) -> str:
    """Japanese label for a purpose value; unknown values read as consumption."""
    return PURPOSE_LABELS[Purpose.coerce(value)]
