"""Slug generation and reading-time estimates for blog posts."""

import math
import re
import unicodedata

WORDS_PER_MINUTE = 200

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s_-]")
_SEPARATOR_RUNS = re.compile(r"[\s_-]+")


def slugify(title: str) -> str:
    """
    Derive a URL-safe slug from a title.

    Lowercases, folds accented letters to ASCII, strips anything that is not a
    letter, digit, whitespace or hyphen, then collapses separator runs into a
    single hyphen. ``"Hello, World!"`` becomes ``"hello-world"``. Returns an
    empty string when nothing usable is left.
    """
    folded = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = _NON_SLUG_CHARS.sub("", folded.lower())
    slug = _SEPARATOR_RUNS.sub("-", slug)
    return slug.strip("-")


def estimate_read_time(content: str) -> int:
    """Minutes needed to read ``content`` at WORDS_PER_MINUTE, never less than 1."""
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))
