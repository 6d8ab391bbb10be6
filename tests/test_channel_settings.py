"""
Tests for the per-channel auto-response switch.
"""

import pytest
from unittest.mock import AsyncMock

from sage.channel_settings import SETTINGS_KEY, AutoResponseSettings
from sage.document_store import MemoryDocumentStore
from sage.errors import StoreError


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def channel_settings(store):
    return AutoResponseSettings(store)


class TestAutoResponseSettings:

    @pytest.mark.asyncio
    async def test_enabled_by_default(self, channel_settings):
        assert await channel_settings.is_enabled("c1") is True
        assert await channel_settings.disabled_channels() == []

    @pytest.mark.asyncio
    async def test_disable_and_enable(self, channel_settings, store):
        await channel_settings.set_enabled("c1", False)
        await channel_settings.set_enabled("c1", False)

        assert await channel_settings.is_enabled("c1") is False
        doc = await store.get_by_id("client_data", SETTINGS_KEY)
        assert doc["disabledChannels"] == ["c1"]

        await channel_settings.set_enabled("c1", True)
        assert await channel_settings.is_enabled("c1") is True

    @pytest.mark.asyncio
    async def test_toggle(self, channel_settings):
        """Test toggle flips state and reports the new one."""
        assert await channel_settings.toggle("c1") is False
        assert await channel_settings.is_enabled("c1") is False
        assert await channel_settings.toggle("c1") is True
        assert await channel_settings.is_enabled("c1") is True

    @pytest.mark.asyncio
    async def test_channels_are_independent(self, channel_settings):
        await channel_settings.set_enabled("c1", False)

        assert await channel_settings.is_enabled("c2") is True

    @pytest.mark.asyncio
    async def test_no_channel_is_enabled(self, channel_settings):
        assert await channel_settings.is_enabled(None) is True

    @pytest.mark.asyncio
    async def test_store_failure_keeps_auto_responses_on(self):
        store = AsyncMock()
        store.get_by_id.side_effect = StoreError("find_one")

        assert await AutoResponseSettings(store).is_enabled("c1") is True
