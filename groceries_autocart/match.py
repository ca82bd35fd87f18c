from __future__ import annotations

import re
from typing import Sequence

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

_PACK_RE = re.compile(
    r"\b\d+(?:[.,]\d+)?\s*(?:kg|g|ml|l|vnt|units?|pcs|x)\b",
    re.IGNORECASE,
)


def tokens(text: str) -> set[str]:
    return set(_TOKEN_RE.findall(text.lower()))


def normalize_label(text: str) -> str:
    return " ".join(_TOKEN_RE.findall(text.lower()))


def strip_pack_size(text: str) -> str:
    """Drop size tokens like ``1L`` or ``500 g`` so only the product remains."""
    return normalize_label(_PACK_RE.sub(" ", text))


def without_pack_size(text: str) -> str:
    """Like :func:`strip_pack_size` but keeps case and punctuation, for search boxes."""
    return " ".join(_PACK_RE.sub(" ", text).split())


def score_relevance(query: str, title: str) -> float:
    """Share of query tokens found in ``title`` (0..1)."""
    q_tokens = tokens(query)
    t_tokens = tokens(title)
    if not q_tokens:
        return 0.0
    return len(q_tokens & t_tokens) / len(q_tokens)


def dice(a: str, b: str) -> float:
    """Token Dice coefficient of two labels (0..1)."""
    ta, tb = tokens(a), tokens(b)
    if not ta or not tb:
        return 0.0
    return 2 * len(ta & tb) / (len(ta) + len(tb))


def pick_best(query: str, titles: Sequence[str]) -> int | None:
    """Index of the most relevant title; ties keep the earlier card."""
    if not titles:
        return None
    best_idx, best_score = 0, -1.0
    for idx, title in enumerate(titles):
        score = score_relevance(query, title)
        if score > best_score:
            best_idx, best_score = idx, score
    return best_idx
