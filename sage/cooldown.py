"""
Cooldown Gate Module

Per-user fixed-interval gate around FAQ answering, persisted in the
document store so it survives restarts.

Each record is {"_id": "faq_cooldown_<user_id>", "value": <expiry epoch ms>}.
The gate re-arms on every allowed check, whether or not the message later
matches an FAQ: it throttles how often a user asks, not how often they get
answers.

Two concurrent messages from the same user can both read "not on cooldown"
before either write lands. That race is accepted; the last write wins.
"""

import logging
import math

from sage.document_store import BaseDocumentStore
from sage.errors import StoreError
from sage.models import CooldownStatus

logger = logging.getLogger(__name__)

COOLDOWN_KEY_PREFIX = "faq_cooldown_"


def cooldown_key(user_id: str) -> str:
    """Store key of a user's cooldown record."""
    return f"{COOLDOWN_KEY_PREFIX}{user_id}"


class CooldownGate:
    """
    Suppresses FAQ answers for a user until their cooldown expires.

    Example:
        gate = CooldownGate(store, duration_ms=3000)
        status = await gate.check_and_arm("42", now_ms)
        if not status.allowed:
            print(f"wait {status.remaining_seconds}s")
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        collection: str = "client_data",
        duration_ms: int = 3000,
    ):
        self.store = store
        self.collection = collection
        self.duration_ms = duration_ms

    async def check_and_arm(self, user_id: str, now_ms: int) -> CooldownStatus:
        """
        Check the user's cooldown and re-arm it when the check passes.

        Store failures fail open: the message is allowed and the failure
        is logged.

        Args:
            user_id: Author of the message
            now_ms: Current instant in epoch milliseconds

        Returns:
            CooldownStatus
        """
        key = cooldown_key(user_id)

        try:
            record = await self.store.get_by_id(self.collection, key)
        except StoreError as e:
            logger.warning(f"Cooldown lookup failed for {user_id}, allowing: {e}")
            return CooldownStatus(allowed=True)

        expires_at = record.get("value") if record else None
        if isinstance(expires_at, (int, float)) and expires_at > now_ms:
            remaining = math.ceil((expires_at - now_ms) / 1000)
            logger.debug(f"User {user_id} on FAQ cooldown for {remaining}s")
            return CooldownStatus(allowed=False, remaining_seconds=remaining)

        try:
            await self.store.upsert(
                self.collection,
                key,
                {"$set": {"value": now_ms + self.duration_ms}},
            )
        except StoreError as e:
            logger.warning(f"Failed to arm cooldown for {user_id}: {e}")

        return CooldownStatus(allowed=True)
