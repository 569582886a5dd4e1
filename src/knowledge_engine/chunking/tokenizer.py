"""
Token estimation heuristics.

Japanese text averages about 0.7 characters per token, Western text about 4.
No external tokenizer is used.
"""

import math
import re

CJK_PATTERN = re.compile(r'[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FFF]')

# Fraction of CJK characters above which text is estimated as Japanese
CJK_RATIO_THRESHOLD = 0.3
CJK_CHARS_PER_TOKEN = 0.7
LATIN_CHARS_PER_TOKEN = 4.0


def cjk_ratio(text: str) -> float:
    """Fraction of characters in Hiragana, Katakana or CJK Unified Ideographs."""
    if not text:
        return 0.0
    return len(CJK_PATTERN.findall(text)) / len(text)


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text span, rounding up.

    Args:
        text: Text to estimate

    Returns:
        Estimated token count (0 for an empty string)
    """
    if not text:
        return 0

    if cjk_ratio(text) > CJK_RATIO_THRESHOLD:
        return math.ceil(len(text) / CJK_CHARS_PER_TOKEN)
    return math.ceil(len(text) / LATIN_CHARS_PER_TOKEN)
