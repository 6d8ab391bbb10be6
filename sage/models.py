"""
Core data records for the FAQ pipeline.

These types are deliberately platform-neutral: nothing here knows about
discord.py. The Discord layer builds an IncomingMessage from a
discord.Message and renders a MatchResult back into replies.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FAQEntry:
    """
    A single admin-curated FAQ.

    Attributes:
        question: Matching key, unique within a category
        answer: Reply body
        category: Hierarchical path separated by "/" (e.g. "Course/367")
        link: Optional supplementary URL
        faq_id: Stable identity used for usage statistics
    """
    question: str
    answer: str
    category: str = "General"
    link: Optional[str] = None
    faq_id: str = ""

    @property
    def top_level_category(self) -> str:
        """Segment of the category before the first "/"."""
        return self.category.split("/", 1)[0]

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> Optional["FAQEntry"]:
        """
        Build an entry from a raw store document.

        Returns None for documents without a usable question so a corpus
        scan can skip them.
        """
        if not isinstance(doc, dict):
            return None
        question = doc.get("question")
        if not isinstance(question, str) or not question.strip():
            return None

        raw_id = doc.get("_id")
        faq_id = str(raw_id) if raw_id is not None else question

        return cls(
            question=question,
            answer=str(doc.get("answer", "")),
            category=str(doc.get("category") or "General"),
            link=doc.get("link") or None,
            faq_id=faq_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "faq_id": self.faq_id,
            "question": self.question,
            "answer": self.answer,
            "category": self.category,
            "link": self.link,
        }


@dataclass(frozen=True)
class IncomingMessage:
    """Narrow view of an inbound chat message."""
    text: str
    user_id: str
    user_name: str
    now: float  # epoch seconds
    channel_id: Optional[str] = None
    guild_id: Optional[str] = None

    @property
    def now_ms(self) -> int:
        return int(self.now * 1000)


@dataclass(frozen=True)
class MatchCandidate:
    """An FAQ entry together with the score that selected it."""
    entry: FAQEntry
    score: float


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Result of a rate limit check.

    Attributes:
        admitted: Whether the message may proceed
        retry_after: Seconds until a slot frees up (denials only)
        should_warn: Whether the caller should notify the user now
    """
    admitted: bool
    retry_after: Optional[float] = None
    should_warn: bool = False


@dataclass(frozen=True)
class CooldownStatus:
    """Result of a cooldown check."""
    allowed: bool
    remaining_seconds: int = 0


class MatchOutcome(str, Enum):
    """Terminal state of one pass through the pipeline."""
    IGNORED = "ignored"
    RATE_LIMITED = "rate_limited"
    COOLDOWN = "cooldown"
    NO_MATCH = "no_match"
    MATCHED = "matched"


@dataclass
class MatchResult:
    """
    Outcome of processing one message, rendered by the bot framework.

    Attributes:
        outcome: Which branch of the pipeline terminated the message
        matched_faq: The selected FAQ (MATCHED only)
        score: Score of the selected FAQ
        rate_limit_denied: True when the rate limiter rejected the message
        retry_after: Seconds until the rate limit frees a slot
        cooldown_remaining: Seconds left on the FAQ cooldown
        should_warn: Whether a rate limit notice should be sent
        related: Related FAQs for callers that want suggestions
    """
    outcome: MatchOutcome
    matched_faq: Optional[FAQEntry] = None
    score: float = 0.0
    rate_limit_denied: bool = False
    retry_after: Optional[float] = None
    cooldown_remaining: int = 0
    should_warn: bool = False
    related: List[FAQEntry] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED

    @classmethod
    def ignored(cls) -> "MatchResult":
        return cls(outcome=MatchOutcome.IGNORED)

    @classmethod
    def no_match(cls) -> "MatchResult":
        return cls(outcome=MatchOutcome.NO_MATCH)


@dataclass
class FAQUsageSummary:
    """Aggregated usage figures for one FAQ, as returned by UsageTracker.get_stats."""
    faq_id: str
    question: str
    category: str
    usage_count: int
    positive: int = 0
    negative: int = 0
    last_used: Optional[float] = None

    @property
    def total_feedback(self) -> int:
        return self.positive + self.negative

    @property
    def positive_ratio(self) -> Optional[float]:
        """Share of positive feedback, or None without any feedback."""
        if self.total_feedback == 0:
            return None
        return self.positive / self.total_feedback
