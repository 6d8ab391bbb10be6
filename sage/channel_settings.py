"""Per-channel switch for automatic FAQ replies."""

import logging
from typing import List, Optional

from sage.document_store import BaseDocumentStore
from sage.errors import StoreError

logger = logging.getLogger(__name__)

SETTINGS_KEY = "auto_response_settings"


class AutoResponseSettings:
    """
    Tracks channels where the bot must not auto-answer.

    Stored as {"_id": "auto_response_settings", "disabledChannels": [...]}.
    """

    def __init__(self, store: BaseDocumentStore, collection: str = "client_data"):
        self.store = store
        self.collection = collection

    async def disabled_channels(self) -> List[str]:
        """Return the disabled channel ids (may raise StoreError)."""
        doc = await self.store.get_by_id(self.collection, SETTINGS_KEY)
        if not doc:
            return []
        return list(doc.get("disabledChannels") or [])

    async def is_enabled(self, channel_id: Optional[str]) -> bool:
        """
        Whether auto-responses are on for a channel.

        A store failure leaves auto-responses on.
        """
        if channel_id is None:
            return True
        try:
            return channel_id not in await self.disabled_channels()
        except StoreError as e:
            logger.warning(f"Could not read auto-response settings: {e}")
            return True

    async def set_enabled(self, channel_id: str, enabled: bool) -> None:
        """Enable or disable auto-responses in a channel (may raise StoreError)."""
        operator = "$pull" if enabled else "$addToSet"
        await self.store.upsert(
            self.collection,
            SETTINGS_KEY,
            {operator: {"disabledChannels": channel_id}},
        )
        logger.info(
            f"Auto-responses {'enabled' if enabled else 'disabled'} in channel {channel_id}"
        )

    async def toggle(self, channel_id: str) -> bool:
        """
        Flip the auto-response state of a channel.

        Returns:
            True if auto-responses are now enabled
        """
        enabled = channel_id in await self.disabled_channels()
        await self.set_enabled(channel_id, enabled)
        return enabled
