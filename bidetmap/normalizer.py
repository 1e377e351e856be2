"""
Venue name canonicalization shared by every matching strategy.
"""
import re

LEADING_WORDS = ("the", "at", "in", "by")

TRAILING_VENUE_WORDS = (
    "centre",
    "center",
    "mall",
    "plaza",
    "station",
    "park",
    "hub",
    "mrt",
    "cc",
)

ABBREVIATIONS = {
    "st": "street",
    "ave": "avenue",
    "blvd": "boulevard",
    "rd": "road",
    "dr": "drive",
    "jln": "jalan",
    "lor": "lorong",
    "bt": "bukit",
    "upp": "upper",
    "amk": "ang mo kio",
    "tpy": "toa payoh",
    "mbs": "marina bay sands",
    "sgh": "singapore general hospital",
    "ktph": "khoo teck puat hospital",
    "nus": "national university singapore",
    "ntu": "nanyang technological university",
    "smu": "singapore management university",
}

GENERIC_NOUNS = (
    "food",
    "hawker",
    "market",
    "shopping",
    "community",
    "club",
    "sports",
)

_BRACKETED = re.compile(r"\([^)]*\)|\[[^\]]*\]")
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _strip_leading(words):
    while len(words) > 1 and words[0] in LEADING_WORDS:
        words = words[1:]
    return words


def _strip_trailing(words):
    while len(words) > 1 and words[-1] in TRAILING_VENUE_WORDS:
        words = words[:-1]
    return words


def _expand(words):
    expanded = []
    for word in words:
        expanded.extend(ABBREVIATIONS.get(word, word).split())
    return expanded


def _drop_generic(words):
    kept = [w for w in words if w not in GENERIC_NOUNS]
    return kept if kept else words


def _normalize_once(text: str) -> str:
    text = text.lower()
    text = _BRACKETED.sub(" ", text)
    # Leading/trailing words may carry punctuation ("the," / "mall."), so
    # split on punctuation before the word-level steps
    words = _collapse(_PUNCTUATION.sub(" ", text)).split()
    words = _strip_leading(words)
    words = _strip_trailing(words)
    words = _expand(words)
    words = _drop_generic(words)
    return " ".join(words)


def normalize(name: str) -> str:
    """
    Canonicalize a free-text venue name into a comparable key.

    Lowercases, drops bracketed asides, leading articles and trailing venue
    words, turns punctuation into spaces, expands abbreviations and removes
    generic category nouns. The steps are repeated until the output is stable,
    so normalize(normalize(x)) == normalize(x).

    Args:
        name (str): Raw venue name.

    Returns:
        str: Normalized key ('' for falsy input).
    """
    if not name:
        return ""
    current = _normalize_once(str(name))
    # After the first pass only word removals remain, so this terminates
    while True:
        nxt = _normalize_once(current)
        if nxt == current:
            return current
        current = nxt


def compact_key(name: str) -> str:
    """Normalized name with spaces removed ("Vivo City" == "VivoCity")."""
    return normalize(name).replace(" ", "")


def alpha_numeric_only(name: str) -> str:
    """Lowercase and keep only [a-z0-9]; the coarsest comparable key."""
    if not name:
        return ""
    return _NON_ALNUM.sub("", str(name).lower())
