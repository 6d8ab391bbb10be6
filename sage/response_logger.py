"""
Bot Response Logger

Keeps an audit trail of replies the bot sends, one document per reply, so
admins can review what the bot answered and to whom.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

from sage.document_store import BaseDocumentStore
from sage.errors import StoreError

logger = logging.getLogger(__name__)

ResponseType = Literal["faq", "command", "other"]


@dataclass
class BotResponseLog:
    """A single logged reply."""
    userId: str
    userName: str
    questionContent: str
    responseContent: str
    channelId: Optional[str]
    guildId: Optional[str]
    timestamp: float = field(default_factory=time.time)
    responseType: ResponseType = "other"
    metadata: Dict[str, Any] = field(default_factory=dict)


class BotResponseLogger:
    """Writes BotResponseLog entries to the document store and reads them back."""

    def __init__(self, store: BaseDocumentStore, collection: str = "bot_responses"):
        self.store = store
        self.collection = collection

    async def log_response(
        self,
        user_id: str,
        user_name: str,
        question: str,
        response: str,
        channel_id: Optional[str] = None,
        guild_id: Optional[str] = None,
        response_type: ResponseType = "other",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Log a reply. Direct messages (no guild) are not logged.

        Returns:
            True if an entry was written
        """
        if guild_id is None:
            return False

        entry = BotResponseLog(
            userId=user_id,
            userName=user_name,
            questionContent=question,
            responseContent=response,
            channelId=channel_id,
            guildId=guild_id,
            responseType=response_type,
            metadata=metadata or {},
        )

        try:
            await self.store.insert(self.collection, asdict(entry))
        except StoreError as e:
            logger.error(f"Error logging bot response: {e}")
            return False

        logger.debug(f"Logged bot response to user {user_name} ({user_id})")
        return True

    async def recent(
        self,
        limit: int = 10,
        guild_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return logged replies, newest first.

        Args:
            limit: Maximum number of entries
            guild_id: Only entries from this guild
            user_id: Only replies to this user

        Returns:
            Raw log documents (empty on store failure)
        """
        query = {}
        if guild_id is not None:
            query["guildId"] = guild_id
        if user_id is not None:
            query["userId"] = user_id

        try:
            documents = await self.store.find(self.collection, query or None)
        except StoreError as e:
            logger.error(f"Error reading bot responses: {e}")
            return []

        documents.sort(key=lambda doc: doc.get("timestamp") or 0, reverse=True)
        return documents[:max(limit, 0)]
