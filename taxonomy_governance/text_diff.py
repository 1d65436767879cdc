"""
Word-level Text Diff
Renders precise before/after comparisons for renamed or re-described
taxonomy entities.

The diff is a classic longest-common-subsequence over whitespace-separated
words. Backtracking prefers emitting an added word before a removed one
when the table ties; that ordering is part of the output contract and is
what keeps rendered diffs reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

ELLIPSIS = "..."
DEFAULT_CONTEXT_CHARS = 40


class SegmentKind(str, Enum):
    COMMON = "common"
    REMOVED = "removed"
    ADDED = "added"


@dataclass(frozen=True)
class DiffSegment:
    kind: SegmentKind
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "text": self.text}


def diff(old: str, new: str) -> list[DiffSegment]:
    """Compute a word-level inline diff between two strings.

    Segments after the first carry a single leading space so that joining
    all texts of a given side renders readable inline text.
    """
    if old == new:
        return [DiffSegment(SegmentKind.COMMON, old)]
    if not old:
        return [DiffSegment(SegmentKind.ADDED, new)]
    if not new:
        return [DiffSegment(SegmentKind.REMOVED, old)]

    old_words = old.split()
    new_words = new.split()
    n, m = len(old_words), len(new_words)

    # dp[i][j] = LCS length of old_words[:i] and new_words[:j]
    dp = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        for j in range(1, m + 1):
            if old_words[i - 1] == new_words[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    ops: list[tuple[SegmentKind, str]] = []
    i, j = n, m
    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_words[i - 1] == new_words[j - 1]:
            ops.append((SegmentKind.COMMON, old_words[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            ops.append((SegmentKind.ADDED, new_words[j - 1]))
            j -= 1
        else:
            ops.append((SegmentKind.REMOVED, old_words[i - 1]))
            i -= 1
    ops.reverse()

    kinds: list[SegmentKind] = []
    texts: list[str] = []
    for kind, word in ops:
        if kinds and kinds[-1] == kind:
            texts[-1] += " " + word
        else:
            kinds.append(kind)
            texts.append(word if not texts else " " + word)

    return [DiffSegment(kind, text) for kind, text in zip(kinds, texts)]


def truncate(
    segments: list[DiffSegment],
    max_context_chars: int = DEFAULT_CONTEXT_CHARS,
) -> list[DiffSegment]:
    """Collapse long unchanged runs so only context around each change shows.

    The first segment keeps only its tail, the last only its head, and
    interior segments keep both ends. An interior segment is only cut when
    cutting makes it shorter, which keeps the function idempotent.
    """
    limit = max_context_chars * 2
    last_index = len(segments) - 1
    result: list[DiffSegment] = []

    for index, segment in enumerate(segments):
        text = segment.text
        if segment.kind != SegmentKind.COMMON or len(text) <= limit:
            result.append(segment)
            continue

        if index == 0:
            result.append(DiffSegment(
                SegmentKind.COMMON, ELLIPSIS + text[len(text) - max_context_chars:],
            ))
        elif index == last_index:
            result.append(DiffSegment(
                SegmentKind.COMMON, text[:max_context_chars] + ELLIPSIS,
            ))
        elif len(text) > limit + len(ELLIPSIS):
            result.append(DiffSegment(
                SegmentKind.COMMON,
                text[:max_context_chars] + ELLIPSIS + text[len(text) - max_context_chars:],
            ))
        else:
            result.append(segment)

    return result


def render(segments: list[DiffSegment], side: str = "new") -> str:
    """Join the segments visible on one side ("old" or "new")."""
    hidden = SegmentKind.REMOVED if side == "new" else SegmentKind.ADDED
    return "".join(s.text for s in segments if s.kind != hidden)
