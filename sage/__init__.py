"""
Sage FAQ Bot - Core Source Module

This module contains the FAQ matching and rate-limiting pipeline:
- extract_keywords: Normalized token sets for matching
- FAQMatcher: Exact-match short-circuit plus scored fallback
- RateLimiter: Per-user sliding window admission control
- CooldownGate: Persisted per-user cooldown between FAQ answers
- UsageTracker: FAQ usage and feedback statistics
- DocumentStore: Memory / MongoDB persistence
- FAQPipeline: Orchestrates one message end to end
"""

from .keywords import extract_keywords, looks_like_question
from .models import (
    FAQEntry,
    IncomingMessage,
    MatchCandidate,
    MatchOutcome,
    MatchResult,
)
from .matcher import FAQMatcher
from .rate_limiter import RateLimiter
from .cooldown import CooldownGate
from .usage_tracker import UsageTracker
from .document_store import DocumentStore, MemoryDocumentStore, MongoDocumentStore
from .faq_store import FAQStore
from .pipeline import FAQPipeline
from .errors import StoreError

__all__ = [
    # Matching
    "extract_keywords",
    "looks_like_question",
    "FAQMatcher",
    # Admission control
    "RateLimiter",
    "CooldownGate",
    # Statistics
    "UsageTracker",
    # Persistence
    "DocumentStore",
    "MemoryDocumentStore",
    "MongoDocumentStore",
    "FAQStore",
    "StoreError",
    # Pipeline
    "FAQPipeline",
    "FAQEntry",
    "IncomingMessage",
    "MatchCandidate",
    "MatchOutcome",
    "MatchResult",
]
