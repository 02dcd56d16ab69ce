from __future__ import annotations

import re

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Lower-case, drop punctuation, collapse whitespace."""
    lowered = str(text or "").lower()
    stripped = _PUNCTUATION_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def token_similarity(left: str, right: str) -> float:
    """Jaccard similarity over the whitespace tokens of two normalized strings."""
    left_tokens = {token for token in str(left or "").split(" ") if token}
    right_tokens = {token for token in str(right or "").split(" ") if token}
    if not left_tokens and not right_tokens:
        return 1.0
    if not left_tokens or not right_tokens:
        return 0.0
    common = len(left_tokens.intersection(right_tokens))
    denom = max(len(left_tokens.union(right_tokens)), 1)
    return float(common) / float(denom)


def is_contained(left: str, right: str) -> bool:
    left = str(left or "")
    right = str(right or "")
    if not left or not right:
        return False
    return left in right or right in left


def text_similarity(left: str, right: str) -> float:
    # containment counts as a full match
    if is_contained(left, right):
        return 1.0
    return token_similarity(left, right)
