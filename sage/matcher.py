"""
FAQ Matcher Module

Selects the FAQ entry that best answers a free-text message.

Algorithm (per call):
1. Exact scan: the first entry whose lowercased question equals the
   lowercased query wins immediately with score 1.0. Both sides are also
   stripped of trailing "?", "!", "." and whitespace before comparing, so
   asking an FAQ question back without its question mark still takes the
   exact path.
2. Scored scan: keywords of the query are computed once; every entry is
   scored with sage.similarity.score and the strictly highest score is kept
   (ties keep the entry seen first).
3. The best candidate is accepted only if its score reaches the threshold.

The corpus is passed in by the caller on every call; nothing is cached here
so admin edits are visible on the very next message.
"""

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from sage.keywords import extract_keywords
from sage.models import FAQEntry, MatchCandidate
from sage.similarity import (
    ACCEPT_THRESHOLD,
    COURSE_CODE_BONUS,
    EXACT_MATCH_SCORE,
    relevance,
    score,
)

logger = logging.getLogger(__name__)

CorpusItem = Union[FAQEntry, dict]


def _normalize(text: str) -> str:
    return text.strip().lower().rstrip("?!. \t")


def _iter_entries(corpus: Iterable[CorpusItem]) -> Iterable[FAQEntry]:
    """Yield usable entries, skipping malformed documents."""
    for item in corpus:
        entry = item if isinstance(item, FAQEntry) else FAQEntry.from_document(item)
        if entry is None or not entry.question:
            logger.debug(f"Skipping malformed FAQ entry: {item!r}")
            continue
        yield entry


class FAQMatcher:
    """
    Matches free-text messages against an FAQ corpus.

    Example:
        matcher = FAQMatcher()
        candidate = matcher.match("homework policy for CS101", corpus)
        if candidate:
            print(candidate.entry.answer, candidate.score)
    """

    def __init__(
        self,
        threshold: float = ACCEPT_THRESHOLD,
        code_bonus: float = COURSE_CODE_BONUS,
    ):
        self.threshold = threshold
        self.code_bonus = code_bonus

    def match(self, query: str, corpus: Sequence[CorpusItem]) -> Optional[MatchCandidate]:
        """
        Find the best matching FAQ for a query.

        Args:
            query: Raw message text
            corpus: FAQ entries or raw store documents, in store order

        Returns:
            MatchCandidate, or None when nothing reaches the threshold
        """
        if not query or not corpus:
            return None

        normalized_query = _normalize(query)
        if not normalized_query:
            return None
        entries = list(_iter_entries(corpus))

        for entry in entries:
            if _normalize(entry.question) == normalized_query:
                logger.debug(f"Exact FAQ match: {entry.question!r}")
                return MatchCandidate(entry=entry, score=EXACT_MATCH_SCORE)

        query_tokens = extract_keywords(normalized_query)
        best: Optional[FAQEntry] = None
        best_score = 0.0

        for entry in entries:
            value = score(query_tokens, extract_keywords(entry.question), self.code_bonus)
            if value is None:
                continue
            if best is None or value > best_score:
                best = entry
                best_score = value

        if best is not None and best_score >= self.threshold:
            logger.debug(f"Scored FAQ match: {best.question!r} ({best_score:.2f})")
            return MatchCandidate(entry=best, score=best_score)

        return None

    def match_top_k(
        self,
        query: str,
        corpus: Sequence[CorpusItem],
        k: int = 3,
        min_relevance: float = 0.35,
    ) -> List[MatchCandidate]:
        """
        Rank related FAQs for a query that may not have a strong match.

        The relevance of each entry is the larger of its token score and its
        fuzzy relevance. Entries disqualified by a course code mismatch are
        never suggested.

        Args:
            query: Raw message text
            corpus: FAQ entries or raw store documents
            k: Maximum number of suggestions
            min_relevance: Entries below this relevance are dropped

        Returns:
            Up to k candidates, best first (ties in corpus order)
        """
        if not query or not corpus or k <= 0:
            return []

        query_tokens = extract_keywords(query)
        ranked: List[Tuple[float, int, FAQEntry]] = []

        for index, entry in enumerate(_iter_entries(corpus)):
            token_score = score(query_tokens, extract_keywords(entry.question), self.code_bonus)
            if token_score is None:
                continue
            value = max(token_score, relevance(query, entry.question))
            if value >= min_relevance:
                ranked.append((value, index, entry))

        ranked.sort(key=lambda item: (-item[0], item[1]))
        return [MatchCandidate(entry=entry, score=value) for value, _, entry in ranked[:k]]


def match(query: str, corpus: Sequence[Any]) -> Optional[FAQEntry]:
    """Convenience wrapper returning just the matched entry."""
    candidate = FAQMatcher().match(query, corpus)
    return candidate.entry if candidate else None
