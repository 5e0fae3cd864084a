"""Text normalization helpers used to build deduplication keys.

Extraction output from different chunks (and different providers) names
the same theme, quote or keyword with small variations: "Youth Mentoring",
"youth  mentoring", "“We need a youth hub.”" vs "We need a youth hub".
These helpers map such variants onto a single comparison key.  They never
change what is displayed, only how items are matched.
"""

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")

# Quote marks and dashes that models wrap around quoted speech.
_QUOTE_CHARS = "\"'“”‘’«»`"
_TRAILING_PUNCT = ".,;:!?…"


def collapse_whitespace(text: str) -> str:
    """Replace runs of whitespace with a single space and strip the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_key(name: str) -> str:
    """Return a case-insensitive comparison key for a name or term.

    NFKC folds compatibility characters (full-width letters, ligatures) and
    ``casefold`` handles case rules beyond ASCII.

    >>> normalize_key("  Youth   Mentoring ")
    'youth mentoring'
    """
    return collapse_whitespace(unicodedata.normalize("NFKC", name)).casefold()


def normalize_quote(text: str) -> str:
    """Return a comparison key for a quote's text.

    Surrounding quote marks and trailing punctuation are ignored so that
    the same sentence quoted by two chunks collapses into one entry.
    """
    key = normalize_key(text)
    key = key.strip(_QUOTE_CHARS + " ")
    key = key.rstrip(_TRAILING_PUNCT + " ")
    return key.strip(_QUOTE_CHARS + " ")


def count_words(text: str) -> int:
    """Count whitespace-delimited words."""
    return len(text.split())
