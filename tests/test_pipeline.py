"""
Tests for FAQ Pipeline Module

End-to-end runs of the message pipeline against the in-memory store.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from config.settings import Settings
from sage.channel_settings import AutoResponseSettings
from sage.cooldown import CooldownGate
from sage.document_store import MemoryDocumentStore
from sage.errors import StoreError
from sage.faq_store import FAQStore
from sage.models import IncomingMessage, MatchOutcome
from sage.pipeline import FAQPipeline
from sage.rate_limiter import RateLimiter
from sage.usage_tracker import UsageTracker


class YieldingDocumentStore(MemoryDocumentStore):
    """In-memory store that suspends on every read and write, like a network backend."""

    async def get_by_id(self, collection, key):
        await asyncio.sleep(0)
        return await super().get_by_id(collection, key)

    async def upsert(self, collection, key, update):
        await asyncio.sleep(0)
        await super().upsert(collection, key, update)


def message(text, now=1000.0, user_id="42", user_name="alice", channel_id="c1", guild_id="g1"):
    return IncomingMessage(
        text=text,
        user_id=user_id,
        user_name=user_name,
        now=now,
        channel_id=channel_id,
        guild_id=guild_id,
    )


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def pipeline(store):
    return FAQPipeline(
        faq_store=FAQStore(store),
        rate_limiter=RateLimiter(max_per_window=5, window_seconds=60),
        cooldown_gate=CooldownGate(store, duration_ms=3000),
        usage_tracker=UsageTracker(store),
        channel_settings=AutoResponseSettings(store),
    )


async def seed(store, *faqs):
    ids = []
    for question, answer, category in faqs:
        ids.append(await store.insert("faqs", {
            "question": question,
            "answer": answer,
            "category": category,
        }))
    return ids


class TestProcess:
    """Tests for FAQPipeline.process."""

    @pytest.mark.asyncio
    async def test_exact_match(self, pipeline, store):
        """Round trip: a seeded FAQ answers its own question."""
        await seed(store, ("What is the homework policy?", "Late work not accepted.", "General"))

        result = await pipeline.process(message("what is the homework policy"))

        assert result.outcome is MatchOutcome.MATCHED
        assert result.matched is True
        assert result.matched_faq.answer == "Late work not accepted."
        assert result.score == 1.0
        assert result.rate_limit_denied is False

    @pytest.mark.asyncio
    async def test_scored_match_with_course_code(self, pipeline, store):
        await seed(store, ("What is the CS101 homework policy?", "See the syllabus.", "Course/101"))

        result = await pipeline.process(message("homework policy for CS101"))

        assert result.matched is True
        assert result.score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_cross_course_is_no_match(self, pipeline, store):
        await seed(store, ("CS101 homework policy", "No late work.", "Course/101"))

        result = await pipeline.process(message("CS202 homework policy"))

        assert result.outcome is MatchOutcome.NO_MATCH
        assert result.matched_faq is None

    @pytest.mark.asyncio
    async def test_usage_is_recorded(self, pipeline, store):
        (faq_id,) = await seed(store, ("When is the midterm?", "Week 7.", "Course/367"))

        await pipeline.process(message("when is the midterm", now=1000.0))
        await pipeline.process(message("when is the midterm", now=1010.0, user_id="43"))

        doc = await store.get_by_id("faq_stats", faq_id)
        assert doc["usageCount"] == 2
        assert [h["userId"] for h in doc["usageHistory"]] == ["42", "43"]

    @pytest.mark.asyncio
    async def test_cooldown_denies_second_question(self, pipeline, store):
        await seed(store, ("When is the midterm?", "Week 7.", "General"))

        await pipeline.process(message("when is the midterm", now=1000.0))
        result = await pipeline.process(message("when is the midterm", now=1001.0))

        assert result.outcome is MatchOutcome.COOLDOWN
        assert result.cooldown_remaining == 2
        assert result.matched_faq is None

    @pytest.mark.asyncio
    async def test_cooldown_arms_without_match(self, pipeline, store):
        """The gate throttles asking, not answering."""
        await seed(store, ("When is the midterm?", "Week 7.", "General"))

        first = await pipeline.process(message("parking permit office", now=1000.0))
        second = await pipeline.process(message("when is the midterm", now=1001.0))

        assert first.outcome is MatchOutcome.NO_MATCH
        assert second.outcome is MatchOutcome.COOLDOWN

    @pytest.mark.asyncio
    async def test_cooldown_denial_keeps_rate_limit_quota(self, pipeline):
        await pipeline.process(message("parking permit office", now=1000.0))
        await pipeline.process(message("parking permit office", now=1001.0))
        await pipeline.process(message("parking permit office", now=1002.0))

        assert pipeline.rate_limiter.usage("42", 1002.0) == 1

    @pytest.mark.asyncio
    async def test_rate_limit(self, pipeline, store):
        """Sixth question within a minute is rate limited and warned once."""
        await seed(store, ("When is the midterm?", "Week 7.", "General"))

        for i in range(5):
            result = await pipeline.process(message("when is the midterm", now=1000.0 + i * 4))
            assert result.matched is True

        denied = await pipeline.process(message("when is the midterm", now=1020.0))
        again = await pipeline.process(message("when is the midterm", now=1021.0))

        assert denied.outcome is MatchOutcome.RATE_LIMITED
        assert denied.rate_limit_denied is True
        assert denied.should_warn is True
        assert denied.retry_after == pytest.approx(40.0)
        assert again.rate_limit_denied is True
        assert again.should_warn is False

    @pytest.mark.asyncio
    async def test_concurrent_flood_respects_rate_limit(self):
        """Concurrent messages from one user cannot all slip past the limit."""
        store = YieldingDocumentStore()
        pipeline = FAQPipeline(
            faq_store=FAQStore(store),
            rate_limiter=RateLimiter(max_per_window=5, window_seconds=60),
            cooldown_gate=CooldownGate(store, duration_ms=3000),
            usage_tracker=UsageTracker(store),
            channel_settings=AutoResponseSettings(store),
        )

        results = await asyncio.gather(*(
            pipeline.process(message("parking permit office", now=1000.0))
            for _ in range(20)
        ))

        limited = [r for r in results if r.outcome is MatchOutcome.RATE_LIMITED]
        assert len(limited) >= 15
        assert pipeline.rate_limiter.usage("42", 1000.0) <= 5

    @pytest.mark.asyncio
    async def test_ignored_message_gives_slot_back(self, pipeline):
        for _ in range(10):
            await pipeline.process(message("ok", now=1000.0))

        result = await pipeline.process(message("parking permit office", now=1000.0))

        assert result.outcome is MatchOutcome.NO_MATCH

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_user(self, pipeline):
        for i in range(5):
            await pipeline.process(message("parking permit office", now=1000.0 + i * 4))

        result = await pipeline.process(message("parking permit office", now=1020.0, user_id="43"))

        assert result.outcome is MatchOutcome.NO_MATCH

    @pytest.mark.asyncio
    async def test_message_without_keywords_is_ignored(self, pipeline):
        result = await pipeline.process(message("ok"))

        assert result.outcome is MatchOutcome.IGNORED
        assert pipeline.rate_limiter.usage("42", 1000.0) == 0

    @pytest.mark.asyncio
    async def test_strict_mode_ignores_statements(self, store):
        pipeline = FAQPipeline(
            faq_store=FAQStore(store),
            rate_limiter=RateLimiter(),
            cooldown_gate=CooldownGate(store),
            usage_tracker=UsageTracker(store),
            strict_questions=True,
        )
        await seed(store, ("homework policy", "No late work.", "General"))

        statement = await pipeline.process(message("homework policy", now=1000.0))
        question = await pipeline.process(message("homework policy?", now=1010.0))

        assert statement.outcome is MatchOutcome.IGNORED
        assert question.matched is True

    @pytest.mark.asyncio
    async def test_disabled_channel_is_ignored(self, pipeline, store):
        await seed(store, ("When is the midterm?", "Week 7.", "General"))
        await pipeline.channel_settings.set_enabled("c1", False)

        muted = await pipeline.process(message("when is the midterm", channel_id="c1"))
        other = await pipeline.process(message("when is the midterm", channel_id="c2"))

        assert muted.outcome is MatchOutcome.IGNORED
        assert other.matched is True

    @pytest.mark.asyncio
    async def test_direct_messages_ignore_channel_settings(self, pipeline, store):
        await seed(store, ("When is the midterm?", "Week 7.", "General"))

        result = await pipeline.process(message("when is the midterm", channel_id=None, guild_id=None))

        assert result.matched is True

    @pytest.mark.asyncio
    async def test_empty_corpus(self, pipeline):
        result = await pipeline.process(message("when is the midterm"))

        assert result.outcome is MatchOutcome.NO_MATCH

    @pytest.mark.asyncio
    async def test_corpus_failure_is_no_match(self, pipeline, store):
        with patch.object(store, "find", AsyncMock(side_effect=StoreError("find"))):
            result = await pipeline.process(message("when is the midterm"))

        assert result.outcome is MatchOutcome.NO_MATCH

    @pytest.mark.asyncio
    async def test_unexpected_error_is_no_match(self, pipeline):
        """Test the pipeline never raises."""
        pipeline.faq_store.list_entries = AsyncMock(side_effect=RuntimeError("boom"))

        result = await pipeline.process(message("when is the midterm"))

        assert result.outcome is MatchOutcome.NO_MATCH


class TestLookup:
    """Tests for FAQPipeline.lookup."""

    @pytest.mark.asyncio
    async def test_lookup_match_is_not_throttled_or_tracked(self, pipeline, store):
        (faq_id,) = await seed(store, ("When is the midterm?", "Week 7.", "General"))

        first = await pipeline.lookup("when is the midterm")
        second = await pipeline.lookup("when is the midterm")

        assert first.matched is True
        assert second.matched is True
        assert await store.get_by_id("faq_stats", faq_id) is None

    @pytest.mark.asyncio
    async def test_lookup_suggests_related(self, pipeline, store):
        await seed(
            store,
            ("When and where is the final exam held this semester?", "Hall B.", "General"),
            ("How do I reset my password?", "Use the portal.", "General"),
        )

        result = await pipeline.lookup("final exam")

        assert result.outcome is MatchOutcome.NO_MATCH
        assert result.related
        assert result.related[0].answer == "Hall B."

    @pytest.mark.asyncio
    async def test_lookup_failure(self, pipeline):
        pipeline.faq_store.list_entries = AsyncMock(side_effect=RuntimeError("boom"))

        result = await pipeline.lookup("final exam")

        assert result.outcome is MatchOutcome.NO_MATCH
        assert result.related == []


class TestWiring:
    """Tests for from_settings and feedback forwarding."""

    def test_from_settings(self, store):
        settings = Settings()
        settings.rate_limit.max_per_window = 3
        settings.cooldown.duration_ms = 5000

        pipeline = FAQPipeline.from_settings(store, settings)

        assert pipeline.rate_limiter.max_per_window == 3
        assert pipeline.cooldown_gate.duration_ms == 5000
        assert pipeline.usage_tracker.collection == "faq_stats"
        assert pipeline.channel_settings is not None

    @pytest.mark.asyncio
    async def test_record_feedback(self, pipeline, store):
        assert await pipeline.record_feedback("faq-1", "positive") is True

        doc = await store.get_by_id("faq_stats", "faq-1")
        assert doc["feedback"]["positive"] == 1
