"""Count -> glyph sequence composition."""

from __future__ import annotations

from .models import Glyph, ThemeDescriptor

MAX_COUNT = 2**64 - 1


def digits_of(count: int, min_length: int = 0) -> list[int]:
    """Base-10 digits of ``count``, most significant first.

    ``min_length`` is a floor: shorter numbers are left-padded with zeros and
    longer numbers are never cut.
    """
    count = int(count)
    min_length = int(min_length)
    if count < 0 or count > MAX_COUNT:
        raise ValueError(f"count out of u64 range: {count}")
    if min_length < 0:
        raise ValueError(f"min_length must be >= 0, got {min_length}")

    digits = [int(c) for c in str(count)]
    pad = max(0, min_length - len(digits))
    return [0] * pad + digits


def compose_digits(count: int, min_length: int, theme: ThemeDescriptor) -> list[Glyph]:
    return [theme.glyph(d) for d in digits_of(count, min_length)]
