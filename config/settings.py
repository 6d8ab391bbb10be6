"""
Configuration settings for the Sage FAQ bot.

This module handles all configuration management using environment variables.
No hardcoded values - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class StoreConfig:
    """Configuration for the document store backing FAQs, cooldowns and stats."""

    provider: Literal["memory", "mongodb"] = "mongodb"

    # MongoDB settings
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "sage"

    # Collection names
    faq_collection: str = "faqs"
    client_data_collection: str = "client_data"
    stats_collection: str = "faq_stats"
    responses_collection: str = "bot_responses"

    # JSON file of {question, answer, category, link} documents loaded into
    # the memory store at startup
    faq_seed_file: Optional[str] = None


@dataclass
class MatchingConfig:
    """Configuration for FAQ matching."""

    threshold: float = 0.5  # Minimum score for a scored match (inclusive)
    course_code_bonus: float = 0.2  # Added when both sides share a course code
    strict_questions: bool = False  # Require "?" or an interrogative opener

    # Related FAQ suggestions
    related_limit: int = 3
    related_min_relevance: float = 0.35


@dataclass
class RateLimitConfig:
    """Configuration for the per-user sliding window rate limit."""

    max_per_window: int = 5
    window_seconds: float = 60.0
    warning_interval_seconds: float = 30.0  # Min gap between DM warnings


@dataclass
class CooldownConfig:
    """Configuration for the per-user FAQ cooldown."""

    duration_ms: int = 3000


@dataclass
class FeedbackConfig:
    """Configuration for reaction feedback collection."""

    window_seconds: float = 60.0
    positive_emoji: str = "👍"
    negative_emoji: str = "👎"


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.store.provider)
        print(settings.rate_limit.max_per_window)
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cooldown: CooldownConfig = field(default_factory=CooldownConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)

    # Paths
    project_root: Path = field(default_factory=lambda: Path(__file__).parent.parent)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        store = StoreConfig(
            provider=os.getenv("STORE_PROVIDER", "mongodb"),  # type: ignore
            mongodb_uri=os.getenv("MONGODB_URI"),
            mongodb_database=os.getenv("MONGODB_DATABASE", "sage"),
            faq_collection=os.getenv("FAQ_COLLECTION", "faqs"),
            client_data_collection=os.getenv("CLIENT_DATA_COLLECTION", "client_data"),
            stats_collection=os.getenv("FAQ_STATS_COLLECTION", "faq_stats"),
            responses_collection=os.getenv("BOT_RESPONSES_COLLECTION", "bot_responses"),
            faq_seed_file=os.getenv("FAQ_SEED_FILE") or None,
        )

        matching = MatchingConfig(
            threshold=float(os.getenv("MATCH_THRESHOLD", "0.5")),
            course_code_bonus=float(os.getenv("COURSE_CODE_BONUS", "0.2")),
            strict_questions=_env_bool("STRICT_QUESTIONS", False),
            related_limit=int(os.getenv("RELATED_FAQ_LIMIT", "3")),
            related_min_relevance=float(os.getenv("RELATED_FAQ_MIN_RELEVANCE", "0.35")),
        )

        rate_limit = RateLimitConfig(
            max_per_window=int(os.getenv("RATE_LIMIT_MAX", "5")),
            window_seconds=float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
            warning_interval_seconds=float(os.getenv("RATE_LIMIT_WARNING_SECONDS", "30")),
        )

        cooldown = CooldownConfig(
            duration_ms=int(os.getenv("FAQ_COOLDOWN_MS", "3000")),
        )

        feedback = FeedbackConfig(
            window_seconds=float(os.getenv("FEEDBACK_WINDOW_SECONDS", "60")),
        )

        return cls(
            store=store,
            matching=matching,
            rate_limit=rate_limit,
            cooldown=cooldown,
            feedback=feedback,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
