"""
Keyword Extraction Module

Turns free text into the normalized token set used for FAQ matching.

Rules:
- Lowercase, then drop everything outside [a-z0-9] and whitespace
- Split on whitespace runs
- Keep tokens longer than two characters, or any token containing a digit
  so short course codes like "cs2" or "101" survive
- Duplicates collapse but first-seen order is kept, so "the first code in
  the text" is well defined
"""

import re
from typing import AbstractSet, Iterable, Optional

_NON_WORD = re.compile(r"[^a-z0-9\s]")
_DIGIT = re.compile(r"\d")

QUESTION_OPENERS = frozenset({
    "what", "whats", "how", "when", "where", "why", "who", "whom", "whose",
    "which", "can", "could", "should", "would", "will", "is", "are", "was",
    "were", "do", "does", "did", "has", "have", "may", "any", "anyone",
})


def extract_keywords(text: str) -> AbstractSet[str]:
    """
    Extract the meaningful-word set from text.

    Args:
        text: Arbitrary user or FAQ text

    Returns:
        Set-like view of normalized tokens in text order (empty for empty
        input). Supports len(), membership and the set operators.
    """
    if not text:
        return {}.keys()
    cleaned = _NON_WORD.sub("", text.lower())
    return dict.fromkeys(
        word for word in cleaned.split()
        if len(word) > 2 or _DIGIT.search(word)
    ).keys()


def has_digit(token: str) -> bool:
    return bool(_DIGIT.search(token))


def first_code(tokens: Iterable[str]) -> Optional[str]:
    """
    Return the course/item code carried by a token set, if any.

    The code is the first digit-bearing token in iteration order, which
    for extract_keywords output is the order of the text.
    """
    for token in tokens:
        if has_digit(token):
            return token
    return None


def looks_like_question(text: str, strict: bool = False) -> bool:
    """
    Decide whether a message is worth matching against the FAQ corpus.

    A message without keywords never qualifies. In non-strict mode every
    other message does and the matcher has the final say. In strict mode the
    message must end with "?" or open with an interrogative word.
    """
    if not extract_keywords(text):
        return False
    if not strict:
        return True

    stripped = text.strip()
    if stripped.endswith("?"):
        return True
    words = _NON_WORD.sub("", stripped.lower()).split()
    return bool(words) and words[0] in QUESTION_OPENERS
