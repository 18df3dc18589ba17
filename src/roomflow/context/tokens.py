"""Approximate language-model token counts. Pure functions, no I/O."""

from __future__ import annotations

import math

# Dense scripts cost roughly two characters per token.
DENSE_RANGES: tuple[tuple[int, int], ...] = (
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0x3400, 0x4DBF),  # CJK Unified Ideographs Extension A
    (0x3000, 0x303F),  # CJK Symbols and Punctuation
    (0xFF00, 0xFFEF),  # Halfwidth and Fullwidth Forms
)


def is_dense_char(char: str) -> bool:
    code = ord(char)
    return any(start <= code <= end for start, end in DENSE_RANGES)


def estimate_tokens(text: str) -> int:
    """
    Estimate the token cost of text.

    Dense (CJK) characters count half a token each, everything else a
    quarter token. This is an approximation, not a tokenizer.
    """
    dense = sum(1 for char in text if is_dense_char(char))
    other = len(text) - dense
    return math.ceil(dense / 2 + other / 4)
