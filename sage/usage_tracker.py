"""
Usage Tracker Module

Records how often each FAQ is served and how users rate it.

Document layout (one per FAQ, keyed by faq id):
    {
        "_id": "<faq id>",
        "question": "...",
        "category": "Course/367",
        "usageCount": 3,
        "categories": {"Course/367": 3},
        "feedback": {"positive": 1, "negative": 0},
        "usageHistory": [{"userId": "...", "userName": "...", "timestamp": 1700000000.0}],
        "lastUsed": 1700000000.0
    }

Every write is one upsert with combined operators, so usageCount and the
length of usageHistory always move together.
"""

import logging
from typing import Iterable, List, Optional

from sage.document_store import BaseDocumentStore
from sage.errors import StoreError
from sage.models import FAQUsageSummary

logger = logging.getLogger(__name__)

SENTIMENTS = ("positive", "negative")


def _field_safe(name: str) -> str:
    """Make a category usable as a document field name."""
    safe = (name or "General").replace(".", "_")
    if safe.startswith("$"):
        safe = "_" + safe[1:]
    return safe


def _category_matches(category: str, wanted: str) -> bool:
    """A category filter matches itself and every sub-category."""
    return category == wanted or category.startswith(wanted + "/")


class UsageTracker:
    """
    Idempotent-increment statistics recorder keyed by FAQ identity.

    Example:
        tracker = UsageTracker(store)
        await tracker.record_usage(faq.faq_id, faq.question, faq.category,
                                   "42", "alice", time.time())
        await tracker.record_feedback(faq.faq_id, "positive")
    """

    def __init__(self, store: BaseDocumentStore, collection: str = "faq_stats"):
        self.store = store
        self.collection = collection

    async def record_usage(
        self,
        faq_id: str,
        question: str,
        category: str,
        user_id: str,
        user_name: str,
        now: float,
    ) -> bool:
        """
        Record one use of an FAQ.

        Args:
            faq_id: Identity of the FAQ
            question: FAQ question text (denormalized for reports)
            category: FAQ category
            user_id: Who triggered the answer
            user_name: Display name of that user
            now: Epoch seconds

        Returns:
            True if the usage was stored, False if the store failed
        """
        update = {
            "$inc": {
                "usageCount": 1,
                f"categories.{_field_safe(category)}": 1,
            },
            "$set": {
                "lastUsed": now,
                "question": question,
                "category": category,
            },
            "$push": {
                "usageHistory": {
                    "userId": user_id,
                    "userName": user_name,
                    "timestamp": now,
                },
            },
        }

        try:
            await self.store.upsert(self.collection, faq_id, update)
        except StoreError as e:
            logger.error(f"Failed to record usage of FAQ {faq_id!r}: {e}")
            return False

        logger.debug(f"Recorded usage of FAQ {faq_id!r} by {user_name} ({user_id})")
        return True

    async def record_feedback(self, faq_id: str, sentiment: str) -> bool:
        """
        Record a positive or negative rating of an FAQ.

        Args:
            faq_id: Identity of the FAQ
            sentiment: "positive" or "negative"

        Returns:
            True if the feedback was stored, False if the store failed

        Raises:
            ValueError: If sentiment is not recognised
        """
        if sentiment not in SENTIMENTS:
            raise ValueError(f"Unknown sentiment: {sentiment!r}")

        try:
            await self.store.upsert(
                self.collection,
                faq_id,
                {"$inc": {f"feedback.{sentiment}": 1}},
            )
        except StoreError as e:
            logger.error(f"Failed to record {sentiment} feedback for FAQ {faq_id!r}: {e}")
            return False

        logger.info(f"Recorded {sentiment} feedback for FAQ {faq_id!r}")
        return True

    async def get_stats(
        self,
        since: Optional[float] = None,
        user_id: Optional[str] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[FAQUsageSummary]:
        """
        Summarize FAQ usage, most used first.

        Args:
            since: Only count uses at or after this epoch-seconds instant
            user_id: Only count uses by this user
            category: Only include FAQs in this category or its sub-categories
            limit: Maximum number of summaries

        Returns:
            FAQUsageSummary list (empty on store failure)
        """
        query = {"usageHistory.userId": user_id} if user_id else None
        try:
            documents = await self.store.find(self.collection, query)
        except StoreError as e:
            logger.error(f"Failed to load FAQ usage statistics: {e}")
            return []

        summaries = []
        for doc in documents:
            doc_category = doc.get("category") or "General"
            if category and not _category_matches(doc_category, category):
                continue

            history = doc.get("usageHistory") or []
            if since is not None or user_id:
                count = sum(1 for use in self._filter_history(history, since, user_id))
            else:
                count = int(doc.get("usageCount", 0))

            if count == 0:
                continue

            feedback = doc.get("feedback") or {}
            summaries.append(FAQUsageSummary(
                faq_id=str(doc.get("_id")),
                question=doc.get("question", ""),
                category=doc_category,
                usage_count=count,
                positive=int(feedback.get("positive", 0)),
                negative=int(feedback.get("negative", 0)),
                last_used=doc.get("lastUsed"),
            ))

        summaries.sort(key=lambda s: s.usage_count, reverse=True)
        return summaries[:limit] if limit else summaries

    @staticmethod
    def _filter_history(
        history: Iterable[dict],
        since: Optional[float],
        user_id: Optional[str],
    ) -> Iterable[dict]:
        for use in history:
            if user_id and use.get("userId") != user_id:
                continue
            if since is not None and (use.get("timestamp") or 0) < since:
                continue
            yield use
