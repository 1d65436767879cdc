"""
Lexical Similarity Predicates
Deterministic name heuristics used by the policy evaluator.

Semantic similarity between taxonomy names is approximated lexically:
significant-token overlap, a fixed catch-all vocabulary, and fixed lists of
incompatible and related term pairs. Every predicate is pure and
case-insensitive.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

GENERIC_NAMES = frozenset({
    "other",
    "miscellaneous",
    "misc",
    "general",
    "generic",
    "uncategorized",
    "n/a",
    "unknown",
    "default",
})

# Words that mark a multi-word name as a bucket for unclassified records
CATCH_ALL_WORDS = frozenset({
    "other", "others", "misc", "miscellaneous", "uncategorized", "generic",
})

STOP_WORDS = frozenset({
    "about", "after", "all", "and", "any", "are", "but", "can", "for",
    "from", "had", "has", "have", "her", "his", "how", "into", "its",
    "not", "off", "our", "out", "over", "per", "than", "that", "the",
    "their", "them", "then", "there", "these", "they", "this", "too",
    "under", "very", "via", "was", "were", "what", "when", "where",
    "which", "while", "who", "why", "will", "with", "without", "you",
    "your",
})

# Term pairs that describe different root causes and must not be merged
INCOMPATIBLE_TERM_PAIRS: tuple[tuple[str, str], ...] = (
    ("calendar", "permission"),
    ("connection", "permission"),
    ("error", "confusion"),
    ("technical", "usability"),
    ("mobile", "desktop"),
    ("audio", "video"),
)

# Term pairs that indicate two parent themes cover the same area
RELATED_TERM_PAIRS: tuple[tuple[str, str], ...] = (
    ("error", "issue"),
    ("bug", "issue"),
    ("problem", "issue"),
    ("crash", "error"),
    ("failure", "error"),
    ("request", "improvement"),
    ("feature", "request"),
    ("ui", "interface"),
    ("login", "auth"),
    ("sign", "login"),
    ("sync", "connection"),
    ("performance", "speed"),
    ("audio", "sound"),
    ("account", "profile"),
)

MIN_SIGNIFICANT_LENGTH = 3
MIN_RELATED_TOKEN_LENGTH = 4

_EDGE_PUNCTUATION = re.compile(r"^[^\w/]+|[^\w/]+$")


# ---------------------------------------------------------------------------
# Tokenization
# ---------------------------------------------------------------------------

def _normalize(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def _raw_tokens(name: Optional[str]) -> list[str]:
    tokens = []
    for word in _normalize(name).split():
        token = _EDGE_PUNCTUATION.sub("", word)
        if token:
            tokens.append(token)
    return tokens


def significant_tokens(name: Optional[str]) -> set[str]:
    """Lowercased whitespace tokens, minus short tokens and stop words."""
    return {
        token for token in _raw_tokens(name)
        if len(token) >= MIN_SIGNIFICANT_LENGTH and token not in STOP_WORDS
    }


def _mentions(name: Optional[str], term: str) -> bool:
    # Short terms ("ui", "bug") only count as whole tokens
    if len(term) <= 3:
        return term in _raw_tokens(name)
    return term in _normalize(name)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def is_generic_name(name: Optional[str]) -> bool:
    """True for catch-all names such as "Other" or "Miscellaneous"."""
    normalized = _normalize(name)
    if normalized in GENERIC_NAMES:
        return True
    return normalized.endswith("s") and normalized[:-1] in GENERIC_NAMES


def find_exact_duplicate(name: Optional[str], sibling_names: Iterable[str]) -> Optional[str]:
    """Return the sibling whose name matches exactly (trimmed, any case)."""
    normalized = _normalize(name)
    if not normalized:
        return None
    for sibling in sibling_names:
        if _normalize(sibling) == normalized:
            return sibling
    return None


def find_word_overlap(
    new_name: Optional[str],
    sibling_names: Iterable[str],
    min_shared: int = 2,
) -> Optional[str]:
    """Return the first sibling sharing at least `min_shared` significant tokens."""
    tokens = significant_tokens(new_name)
    if len(tokens) < min_shared:
        return None
    for sibling in sibling_names:
        if len(tokens & significant_tokens(sibling)) >= min_shared:
            return sibling
    return None


def shared_tokens(a: Optional[str], b: Optional[str]) -> set[str]:
    return significant_tokens(a) & significant_tokens(b)


def is_moderate_similarity(a: Optional[str], b: Optional[str]) -> bool:
    """Exactly one shared significant token, and both names have two or more."""
    tokens_a = significant_tokens(a)
    tokens_b = significant_tokens(b)
    if len(tokens_a) < 2 or len(tokens_b) < 2:
        return False
    return len(tokens_a & tokens_b) == 1


def find_incompatible_pair(a: Optional[str], b: Optional[str]) -> Optional[tuple[str, str]]:
    """Return the incompatible term pair the two names straddle, if any."""
    if not _normalize(a) or not _normalize(b):
        return None
    for first, second in INCOMPATIBLE_TERM_PAIRS:
        if _mentions(a, first) and _mentions(b, second):
            return (first, second)
        if _mentions(a, second) and _mentions(b, first):
            return (second, first)
    return None


def is_low_similarity(a: Optional[str], b: Optional[str]) -> bool:
    return find_incompatible_pair(a, b) is not None


def are_parents_related(p1: Optional[str], p2: Optional[str]) -> bool:
    """True if two parent theme names plausibly cover the same area."""
    if not _normalize(p1) or not _normalize(p2):
        return False

    long_a = {t for t in significant_tokens(p1) if len(t) >= MIN_RELATED_TOKEN_LENGTH}
    long_b = {t for t in significant_tokens(p2) if len(t) >= MIN_RELATED_TOKEN_LENGTH}
    if long_a & long_b:
        return True

    for first, second in RELATED_TERM_PAIRS:
        if _mentions(p1, first) and _mentions(p2, second):
            return True
        if _mentions(p1, second) and _mentions(p2, first):
            return True
    return False


def is_catch_all_name(name: Optional[str]) -> bool:
    """Generic names, plus names built around a bucket word ("Misc Errors")."""
    if is_generic_name(name):
        return True
    return any(token in CATCH_ALL_WORDS for token in _raw_tokens(name))
