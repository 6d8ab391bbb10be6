"""
Tests for Document Store Module

Covers the update/query helpers, the in-memory backend, the provider
facade and the MongoDB backend. MongoDB is mocked so no server is needed.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from pymongo.errors import PyMongoError

from config.settings import StoreConfig
from sage.cooldown import CooldownGate
from sage.document_store import (
    DocumentStore,
    MemoryDocumentStore,
    MongoDocumentStore,
    apply_update,
    matches_filter,
)
from sage.errors import StoreError
from sage.faq_store import FAQStore
from sage.usage_tracker import UsageTracker


class TestApplyUpdate:
    """Tests for MongoDB-style update operators."""

    def test_set_and_inc(self):
        doc = {"_id": "x", "count": 1}
        apply_update(doc, {"$set": {"name": "a"}, "$inc": {"count": 2, "fresh": 1}})

        assert doc == {"_id": "x", "count": 3, "fresh": 1, "name": "a"}

    def test_dotted_paths_create_subdocuments(self):
        doc = {}
        apply_update(doc, {"$inc": {"feedback.positive": 1}})
        apply_update(doc, {"$inc": {"feedback.positive": 1, "feedback.negative": 1}})

        assert doc == {"feedback": {"positive": 2, "negative": 1}}

    def test_push_and_each(self):
        doc = {}
        apply_update(doc, {"$push": {"items": 1}})
        apply_update(doc, {"$push": {"items": {"$each": [2, 3]}}})

        assert doc["items"] == [1, 2, 3]

    def test_add_to_set_and_pull(self):
        doc = {}
        apply_update(doc, {"$addToSet": {"ids": "a"}})
        apply_update(doc, {"$addToSet": {"ids": "a"}})
        apply_update(doc, {"$addToSet": {"ids": "b"}})
        apply_update(doc, {"$pull": {"ids": "a"}})

        assert doc["ids"] == ["b"]

    def test_set_on_insert_only_when_inserting(self):
        doc = {}
        apply_update(doc, {"$setOnInsert": {"created": 1}})
        assert "created" not in doc

        apply_update(doc, {"$setOnInsert": {"created": 1}}, inserting=True)
        assert doc["created"] == 1

    def test_pushed_values_are_copied(self):
        entry = {"userId": "1"}
        doc = {}
        apply_update(doc, {"$push": {"history": entry}})
        entry["userId"] = "changed"

        assert doc["history"] == [{"userId": "1"}]

    def test_unsupported_operator(self):
        with pytest.raises(ValueError):
            apply_update({}, {"$rename": {"a": "b"}})


class TestMatchesFilter:
    """Tests for the query subset."""

    def test_empty_query_matches_everything(self):
        assert matches_filter({"a": 1}, None) is True
        assert matches_filter({"a": 1}, {}) is True

    def test_equality_and_missing(self):
        assert matches_filter({"a": 1}, {"a": 1}) is True
        assert matches_filter({"a": 1}, {"a": 2}) is False
        assert matches_filter({"a": 1}, {"b": None}) is True

    def test_array_of_documents(self):
        doc = {"usageHistory": [{"userId": "1"}, {"userId": "2"}]}

        assert matches_filter(doc, {"usageHistory.userId": "2"}) is True
        assert matches_filter(doc, {"usageHistory.userId": "3"}) is False

    def test_comparison_operators(self):
        doc = {"t": 5}

        assert matches_filter(doc, {"t": {"$gte": 5, "$lte": 10}}) is True
        assert matches_filter(doc, {"t": {"$gte": 6}}) is False
        assert matches_filter(doc, {"t": {"$in": [1, 5]}}) is True
        assert matches_filter(doc, {"t": {"$exists": True}}) is True
        assert matches_filter(doc, {"u": {"$exists": True}}) is False

    def test_unsupported_query_operator(self):
        with pytest.raises(ValueError):
            matches_filter({"a": 1}, {"a": {"$regex": "x"}})


class TestMemoryDocumentStore:
    """Tests for MemoryDocumentStore."""

    @pytest.fixture
    def store(self):
        return MemoryDocumentStore()

    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates(self, store):
        await store.upsert("stats", "k", {"$inc": {"n": 1}})
        await store.upsert("stats", "k", {"$inc": {"n": 1}})

        assert await store.get_by_id("stats", "k") == {"_id": "k", "n": 2}
        assert store.count("stats") == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_by_id("stats", "nope") is None

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, store):
        await store.upsert("c", "k", {"$set": {"tags": ["a"]}})

        doc = await store.get_by_id("c", "k")
        doc["tags"].append("mutated")

        assert (await store.get_by_id("c", "k"))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_insert_generates_ids_in_order(self, store):
        first = await store.insert("faqs", {"question": "one"})
        second = await store.insert("faqs", {"question": "two"})

        assert first != second
        assert [d["question"] for d in await store.find("faqs")] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_insert_duplicate_id(self, store):
        await store.insert("faqs", {"_id": 1, "question": "one"})

        with pytest.raises(StoreError):
            await store.insert("faqs", {"_id": 1, "question": "again"})

    @pytest.mark.asyncio
    async def test_find_one_and_find_with_query(self, store):
        await store.insert("faqs", {"question": "a", "category": "General"})
        await store.insert("faqs", {"question": "b", "category": "Course"})

        found = await store.find_one("faqs", {"category": "Course"})
        assert found["question"] == "b"
        assert len(await store.find("faqs", {"category": "General"})) == 1
        assert await store.find_one("faqs", {"category": "Missing"}) is None

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.insert("faqs", {"question": "a"})
        store.clear()

        assert await store.find("faqs") == []


class TestDocumentStore:
    """Tests for the provider facade."""

    def test_memory_provider(self):
        store = DocumentStore(provider="memory")

        assert store.provider == "memory"
        assert isinstance(store.backend, MemoryDocumentStore)

    def test_mongodb_provider(self):
        config = StoreConfig(
            provider="mongodb",
            mongodb_uri="mongodb://localhost:27017",
            mongodb_database="sage_test",
        )
        store = DocumentStore(config=config)

        assert store.provider == "mongodb"
        assert isinstance(store.backend, MongoDocumentStore)
        assert store.backend.database_name == "sage_test"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            DocumentStore(provider="redis")

    @pytest.mark.asyncio
    async def test_mongodb_without_uri_degrades(self):
        """Components fall back to their store-failure behaviour when no URI is set."""
        config = StoreConfig(provider="mongodb", mongodb_uri=None)
        with patch("sage.document_store.get_settings") as mock_settings:
            mock_settings.return_value.store = config
            store = DocumentStore(config=config)

        status = await CooldownGate(store).check_and_arm("42", 1_000_000)
        stats = await UsageTracker(store).get_stats()
        entries = await FAQStore(store).list_entries()

        assert status.allowed is True
        assert stats == []
        assert entries == []

    @pytest.mark.asyncio
    async def test_delegates_to_backend(self):
        store = DocumentStore(provider="memory")
        await store.upsert("c", "k", {"$set": {"v": 1}})

        assert await store.get_by_id("c", "k") == {"_id": "k", "v": 1}
        assert await store.find_one("c", {"v": 1}) == {"_id": "k", "v": 1}
        await store.close()


class TestMongoDocumentStore:
    """Tests for MongoDocumentStore with a mocked client."""

    @pytest.fixture
    def collection(self):
        coll = MagicMock()
        coll.find_one = AsyncMock(return_value={"_id": "k", "value": 1})
        coll.update_one = AsyncMock()
        coll.insert_one = AsyncMock(return_value=MagicMock(inserted_id="new-id"))
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[{"_id": "a"}, {"_id": "b"}])
        coll.find.return_value = cursor
        return coll

    @pytest.fixture
    def mock_client(self, collection):
        client = MagicMock()
        client.admin.command = AsyncMock(return_value={"ok": 1})
        client.close = AsyncMock()
        db = MagicMock()
        db.__getitem__.return_value = collection
        client.__getitem__.return_value = db
        return client

    @pytest.fixture
    def store(self):
        return MongoDocumentStore(uri="mongodb://localhost:27017", database="sage_test")

    def test_initialization(self, store):
        assert store.uri == "mongodb://localhost:27017"
        assert store.database_name == "sage_test"
        assert store._client is None  # Lazy connection

    @pytest.mark.asyncio
    async def test_missing_uri(self):
        with patch("sage.document_store.get_settings") as mock_settings:
            mock_settings.return_value.store = StoreConfig(mongodb_uri=None)
            store = MongoDocumentStore()

        with pytest.raises(StoreError) as exc_info:
            await store.get_by_id("c", "k")

        assert exc_info.value.operation == "connect"
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    async def test_get_by_id(self, store, mock_client, collection):
        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            doc = await store.get_by_id("client_data", "k")

        assert doc == {"_id": "k", "value": 1}
        collection.find_one.assert_awaited_once_with({"_id": "k"})
        mock_client.admin.command.assert_awaited_once_with("ping")

    @pytest.mark.asyncio
    async def test_connects_once(self, store, mock_client):
        with patch("pymongo.AsyncMongoClient", return_value=mock_client) as factory:
            await store.get_by_id("c", "a")
            await store.get_by_id("c", "b")

        factory.assert_called_once_with("mongodb://localhost:27017")

    @pytest.mark.asyncio
    async def test_find(self, store, mock_client, collection):
        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            docs = await store.find("faqs")

        assert [d["_id"] for d in docs] == ["a", "b"]
        collection.find.assert_called_once_with({})

    @pytest.mark.asyncio
    async def test_upsert(self, store, mock_client, collection):
        update = {"$inc": {"usageCount": 1}}
        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            await store.upsert("faq_stats", "faq-1", update)

        collection.update_one.assert_awaited_once_with({"_id": "faq-1"}, update, upsert=True)

    @pytest.mark.asyncio
    async def test_insert(self, store, mock_client):
        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            assert await store.insert("bot_responses", {"userId": "1"}) == "new-id"

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, store, mock_client, collection):
        collection.update_one.side_effect = PyMongoError("write failed")

        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            with pytest.raises(StoreError) as exc_info:
                await store.upsert("faq_stats", "faq-1", {"$inc": {"usageCount": 1}})

        assert exc_info.value.operation == "upsert"

    @pytest.mark.asyncio
    async def test_connect_failure(self, store, mock_client):
        mock_client.admin.command.side_effect = PyMongoError("no server")

        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            with pytest.raises(StoreError) as exc_info:
                await store.find("faqs")

        assert exc_info.value.operation == "connect"
        assert store._client is None

    @pytest.mark.asyncio
    async def test_close(self, store, mock_client):
        with patch("pymongo.AsyncMongoClient", return_value=mock_client):
            await store.find("faqs")
            await store.close()

        mock_client.close.assert_awaited_once()
        assert store._client is None
