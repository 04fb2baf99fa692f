"""
Keyword-overlap agreement between provider answers.

Advisory only: a low score does not mean any answer is wrong, and the
dispatcher treats any failure here as "no consensus available".
"""
from __future__ import annotations

import re
from collections import Counter
from itertools import combinations
from typing import Optional, Sequence

from .base import Consensus, ProviderOutcome

_WORD = re.compile(r"[a-z0-9][a-z0-9'\-]*[a-z0-9]|[a-z0-9]")

_STOPWORDS = frozenset("""
about above after again against also although among an and any are around because been before
being below between both but can could does doing down during each either else even every few
for from further had has have having here hers herself himself however into its itself just
like made make many more most much must neither nor not now often only other otherwise our ours
ourselves out over own per rather same several shall should since some such than that the
their theirs them themselves then there these they this those though through thus too under
until upon very was were what when where whether which while who whom whose why will with
within without would yet you your yours yourself yourselves
""".split())

_MIN_WORD_LEN = 4
_MAX_KEYWORDS = 40


def extract_keywords(text: str, limit: int = _MAX_KEYWORDS) -> set[str]:
    """Most frequent content words (lower-cased, stopwords and short words removed)."""
    words = [
        w for w in _WORD.findall(text.lower())
        if len(w) >= _MIN_WORD_LEN and w not in _STOPWORDS and not w.isdigit()
    ]
    return {w for w, _ in Counter(words).most_common(limit)}


def _jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def _level(score: float) -> str:
    if score >= 0.5:
        return "high"
    if score >= 0.25:
        return "moderate"
    return "low"


def compute_consensus(outcomes: Sequence[ProviderOutcome]) -> Optional[Consensus]:
    """Mean pairwise Jaccard overlap of answer keywords; None for fewer than two answers."""
    answered = [o for o in outcomes if o.ok and o.response.strip()]
    if len(answered) < 2:
        return None

    keywords = {o.provider_id: extract_keywords(o.response) for o in answered}
    pairs = list(combinations(keywords.values(), 2))
    agreement = sum(_jaccard(a, b) for a, b in pairs) / len(pairs)

    shared = set.intersection(*keywords.values())
    return Consensus(
        agreement=round(agreement, 4),
        level=_level(agreement),
        shared_keywords=tuple(sorted(shared)),
        providers=tuple(keywords),
    )
