"""
Similarity Scoring Module

Pure scoring functions used by the FAQ matcher.

Token score:
    base = |A & B| / max(|A|, |B|)

    The max() denominator is softer than a Jaccard union: a short query that
    is fully contained in a longer FAQ question still scores well.

Course codes:
    The first digit-bearing token of each side is its "code". Differing codes
    disqualify the pair outright (None), so "CS101 homework" never answers a
    "CS202 homework" question. Equal codes earn a fixed bonus.

Relevance:
    An edit-distance based metric (rapidfuzz token_set_ratio) used only to
    rank related FAQ suggestions.
"""

from typing import AbstractSet, Optional

from rapidfuzz import fuzz, utils

from sage.keywords import first_code

ACCEPT_THRESHOLD = 0.5
COURSE_CODE_BONUS = 0.2
EXACT_MATCH_SCORE = 1.0


def token_overlap(user_tokens: AbstractSet[str], faq_tokens: AbstractSet[str]) -> float:
    """Share of common tokens relative to the larger of the two sets."""
    denominator = max(len(user_tokens), len(faq_tokens))
    if denominator == 0:
        return 0.0
    return len(user_tokens & faq_tokens) / denominator


def codes_conflict(user_tokens: AbstractSet[str], faq_tokens: AbstractSet[str]) -> bool:
    """True when both sides carry a course code and the codes differ."""
    user_code = first_code(user_tokens)
    faq_code = first_code(faq_tokens)
    return user_code is not None and faq_code is not None and user_code != faq_code


def score(
    user_tokens: AbstractSet[str],
    faq_tokens: AbstractSet[str],
    code_bonus: float = COURSE_CODE_BONUS,
) -> Optional[float]:
    """
    Score a query token set against an FAQ question token set.

    Args:
        user_tokens: Keywords of the incoming message
        faq_tokens: Keywords of the FAQ question
        code_bonus: Added when both sides share the same course code

    Returns:
        Score in [0, 1 + code_bonus], or None when the pair is disqualified
        by mismatching course codes
    """
    user_code = first_code(user_tokens)
    faq_code = first_code(faq_tokens)

    if user_code is not None and faq_code is not None:
        if user_code != faq_code:
            return None
        return token_overlap(user_tokens, faq_tokens) + code_bonus

    return token_overlap(user_tokens, faq_tokens)


def is_acceptable(value: Optional[float], threshold: float = ACCEPT_THRESHOLD) -> bool:
    """Inclusive threshold check; disqualified pairs are never acceptable."""
    return value is not None and value >= threshold


def relevance(query: str, question: str) -> float:
    """
    Fuzzy relevance of a question to a query in [0, 1].

    Uses rapidfuzz's token_set_ratio on case-folded, punctuation-free text
    so word order and repeated words do not matter and small typos still
    score.
    """
    if not query or not question:
        return 0.0
    return fuzz.token_set_ratio(query, question, processor=utils.default_process) / 100.0
