"""
FAQ Pipeline Module

Orchestrates the handling of one incoming message:

    channel toggle -> rate limit (reserves a slot) -> question check
        -> cooldown -> corpus fetch -> match -> usage stats

The slot is reserved synchronously in the rate limiter, so concurrent
messages from one user cannot all slip past the limit while the cooldown
lookup is in flight. Ignored and cooldown-denied messages give their slot
back.

The pipeline never raises: store failures degrade to neutral outcomes in
the individual components, and anything unexpected is logged and turned
into NO_MATCH so one bad message cannot disturb the event loop.

Usage:
    pipeline = FAQPipeline.from_settings(DocumentStore())
    result = await pipeline.process(IncomingMessage(
        text="what is the homework policy",
        user_id="42", user_name="alice", now=time.time(),
    ))
    if result.matched:
        print(result.matched_faq.answer)
"""

import logging
from typing import List, Optional

from config.settings import Settings, get_settings
from sage.channel_settings import AutoResponseSettings
from sage.cooldown import CooldownGate
from sage.document_store import BaseDocumentStore
from sage.faq_store import FAQStore
from sage.keywords import looks_like_question
from sage.matcher import FAQMatcher
from sage.models import (
    IncomingMessage,
    MatchCandidate,
    MatchOutcome,
    MatchResult,
)
from sage.rate_limiter import RateLimiter
from sage.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)


class FAQPipeline:
    """
    Decides whether and how to answer a message from the FAQ corpus.

    All collaborators are injected so tests can run against an in-memory
    store and an isolated RateLimiter.
    """

    def __init__(
        self,
        faq_store: FAQStore,
        rate_limiter: RateLimiter,
        cooldown_gate: CooldownGate,
        usage_tracker: UsageTracker,
        matcher: Optional[FAQMatcher] = None,
        channel_settings: Optional[AutoResponseSettings] = None,
        strict_questions: bool = False,
        related_limit: int = 3,
        related_min_relevance: float = 0.35,
    ):
        self.faq_store = faq_store
        self.rate_limiter = rate_limiter
        self.cooldown_gate = cooldown_gate
        self.usage_tracker = usage_tracker
        self.matcher = matcher or FAQMatcher()
        self.channel_settings = channel_settings
        self.strict_questions = strict_questions
        self.related_limit = related_limit
        self.related_min_relevance = related_min_relevance

    @classmethod
    def from_settings(
        cls,
        store: BaseDocumentStore,
        settings: Optional[Settings] = None,
    ) -> "FAQPipeline":
        """
        Wire a pipeline from application settings.

        Args:
            store: Document store shared by all components
            settings: Optional Settings (defaults to get_settings())
        """
        settings = settings or get_settings()
        collections = settings.store

        return cls(
            faq_store=FAQStore(store, collections.faq_collection),
            rate_limiter=RateLimiter(
                max_per_window=settings.rate_limit.max_per_window,
                window_seconds=settings.rate_limit.window_seconds,
                warning_interval_seconds=settings.rate_limit.warning_interval_seconds,
            ),
            cooldown_gate=CooldownGate(
                store,
                collection=collections.client_data_collection,
                duration_ms=settings.cooldown.duration_ms,
            ),
            usage_tracker=UsageTracker(store, collections.stats_collection),
            matcher=FAQMatcher(
                threshold=settings.matching.threshold,
                code_bonus=settings.matching.course_code_bonus,
            ),
            channel_settings=AutoResponseSettings(store, collections.client_data_collection),
            strict_questions=settings.matching.strict_questions,
            related_limit=settings.matching.related_limit,
            related_min_relevance=settings.matching.related_min_relevance,
        )

    async def process(self, message: IncomingMessage) -> MatchResult:
        """
        Run one message through the pipeline.

        Args:
            message: Platform-neutral view of the message

        Returns:
            MatchResult describing what the caller should render
        """
        try:
            return await self._process(message)
        except Exception:
            logger.exception(f"FAQ pipeline failed for message from {message.user_id}")
            return MatchResult.no_match()

    async def _process(self, message: IncomingMessage) -> MatchResult:
        if self.channel_settings is not None:
            if not await self.channel_settings.is_enabled(message.channel_id):
                logger.debug(f"Auto-responses disabled in channel {message.channel_id}")
                return MatchResult.ignored()

        decision = self.rate_limiter.admit(message.user_id, message.now)
        if not decision.admitted:
            return MatchResult(
                outcome=MatchOutcome.RATE_LIMITED,
                rate_limit_denied=True,
                retry_after=decision.retry_after,
                should_warn=decision.should_warn,
            )

        if not looks_like_question(message.text, strict=self.strict_questions):
            self.rate_limiter.release(message.user_id, message.now)
            return MatchResult.ignored()

        status = await self.cooldown_gate.check_and_arm(message.user_id, message.now_ms)
        if not status.allowed:
            self.rate_limiter.release(message.user_id, message.now)
            return MatchResult(
                outcome=MatchOutcome.COOLDOWN,
                cooldown_remaining=status.remaining_seconds,
            )

        corpus = await self.faq_store.list_entries()
        candidate = self.matcher.match(message.text, corpus)
        if candidate is None:
            logger.debug(f"No FAQ match for message from {message.user_id}")
            return MatchResult.no_match()

        entry = candidate.entry
        await self.usage_tracker.record_usage(
            entry.faq_id,
            entry.question,
            entry.category,
            message.user_id,
            message.user_name,
            message.now,
        )

        logger.info(
            f"Answered {message.user_name} ({message.user_id}) with FAQ "
            f"{entry.question!r} (score {candidate.score:.2f})"
        )
        return MatchResult(
            outcome=MatchOutcome.MATCHED,
            matched_faq=entry,
            score=candidate.score,
        )

    async def lookup(self, text: str) -> MatchResult:
        """
        Match text without rate limiting, cooldowns or usage tracking.

        Used for explicit /ask requests. When no entry clears the threshold
        the result carries related suggestions instead.
        """
        try:
            corpus = await self.faq_store.list_entries()
            candidate = self.matcher.match(text, corpus)
            if candidate is not None:
                return MatchResult(
                    outcome=MatchOutcome.MATCHED,
                    matched_faq=candidate.entry,
                    score=candidate.score,
                )
            related = self.suggest(text, corpus)
        except Exception:
            logger.exception("FAQ lookup failed")
            return MatchResult.no_match()

        result = MatchResult.no_match()
        result.related = [c.entry for c in related]
        return result

    def suggest(self, text: str, corpus) -> List[MatchCandidate]:
        """Rank related FAQs for text using the configured limits."""
        return self.matcher.match_top_k(
            text,
            corpus,
            k=self.related_limit,
            min_relevance=self.related_min_relevance,
        )

    async def record_feedback(self, faq_id: str, sentiment: str) -> bool:
        """Forward a reaction to the usage tracker."""
        return await self.usage_tracker.record_feedback(faq_id, sentiment)
