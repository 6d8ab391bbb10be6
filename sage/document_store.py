"""
Document Store Module

Key-value / document persistence for cooldowns, usage statistics, channel
settings and the FAQ corpus. Supports two backends:
- Memory: in-process, for local development and tests
- MongoDB: production, via pymongo's asyncio client

Design Rationale:
- Abstract interface for easy backend switching
- Every write is a single upsert carrying combined $inc/$set/$push
  operators, so concurrent updates to one document never interleave at
  the application level
- Backend errors are raised as StoreError; callers decide how to degrade

Documents are keyed by "_id" within named collections.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from config.settings import get_settings, StoreConfig
from sage.errors import StoreError

# Configure logging
logger = logging.getLogger(__name__)

Document = Dict[str, Any]

_MISSING = object()


def _get_path(doc: Any, path: str) -> Any:
    """Resolve a dotted path, collecting values through arrays."""
    current = doc
    for part in path.split("."):
        if isinstance(current, list):
            values = [item.get(part, _MISSING) for item in current if isinstance(item, dict)]
            current = [value for value in values if value is not _MISSING]
            continue
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _parent_for_write(doc: Document, path: str):
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    return current, parts[-1]


def _value_matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
        for op, operand in expected.items():
            if op == "$in":
                if isinstance(actual, list):
                    if not any(item in operand for item in actual):
                        return False
                elif actual not in operand:
                    return False
            elif op == "$exists":
                if (actual is not _MISSING) != bool(operand):
                    return False
            elif op == "$gte":
                if actual is _MISSING or actual < operand:
                    return False
            elif op == "$lte":
                if actual is _MISSING or actual > operand:
                    return False
            else:
                raise ValueError(f"Unsupported query operator: {op}")
        return True

    if actual is _MISSING:
        return expected is None
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def matches_filter(doc: Document, query: Optional[Document]) -> bool:
    """Evaluate a (small) subset of the MongoDB query language."""
    if not query:
        return True
    return all(_value_matches(_get_path(doc, key), value) for key, value in query.items())


def apply_update(doc: Document, update: Document, inserting: bool = False) -> Document:
    """
    Apply MongoDB-style update operators to a document in place.

    Supported: $set, $setOnInsert, $inc, $push (with $each), $addToSet,
    $pull. Dotted paths create intermediate documents as needed.
    """
    for op, fields in update.items():
        if op == "$setOnInsert" and not inserting:
            continue
        if op not in ("$set", "$setOnInsert", "$inc", "$push", "$addToSet", "$pull"):
            raise ValueError(f"Unsupported update operator: {op}")

        for path, value in fields.items():
            parent, key = _parent_for_write(doc, path)
            value = copy.deepcopy(value)

            if op in ("$set", "$setOnInsert"):
                parent[key] = value
            elif op == "$inc":
                parent[key] = parent.get(key, 0) + value
            elif op == "$push":
                items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
                parent.setdefault(key, []).extend(items)
            elif op == "$addToSet":
                target = parent.setdefault(key, [])
                if value not in target:
                    target.append(value)
            elif op == "$pull":
                parent[key] = [item for item in parent.get(key, []) if item != value]
    return doc


class BaseDocumentStore(ABC):
    """
    Abstract base class for document stores.

    All implementations must provide:
    - get_by_id: Fetch a document by key
    - find_one / find: Query documents
    - upsert: Atomically apply combined update operators, inserting if absent
    - insert: Add a new document
    """

    @abstractmethod
    async def get_by_id(self, collection: str, key: Any) -> Optional[Document]:
        """Return the document with the given _id, or None."""
        pass

    @abstractmethod
    async def find_one(self, collection: str, query: Document) -> Optional[Document]:
        """Return the first document matching the query, or None."""
        pass

    @abstractmethod
    async def find(self, collection: str, query: Optional[Document] = None) -> List[Document]:
        """Return all documents matching the query, in insertion order."""
        pass

    @abstractmethod
    async def upsert(self, collection: str, key: Any, update: Document) -> None:
        """
        Apply update operators to the document keyed by key.

        Args:
            collection: Collection name
            key: Value of _id
            update: Operators such as {"$inc": {...}, "$push": {...}}
        """
        pass

    @abstractmethod
    async def insert(self, collection: str, document: Document) -> Any:
        """Insert a document and return its _id."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class MemoryDocumentStore(BaseDocumentStore):
    """
    In-process document store.

    Best for:
    - Local development without a database
    - Tests

    No method awaits while holding state, so each call is atomic with
    respect to other asyncio tasks. Data is lost on restart.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[Any, Document]] = {}
        self._next_id = 0
        self._lock = threading.Lock()

        logger.info("MemoryDocumentStore initialized")

    def _collection(self, name: str) -> Dict[Any, Document]:
        return self._collections.setdefault(name, {})

    async def get_by_id(self, collection: str, key: Any) -> Optional[Document]:
        with self._lock:
            doc = self._collection(collection).get(key)
            return copy.deepcopy(doc) if doc is not None else None

    async def find_one(self, collection: str, query: Document) -> Optional[Document]:
        with self._lock:
            for doc in self._collection(collection).values():
                if matches_filter(doc, query):
                    return copy.deepcopy(doc)
            return None

    async def find(self, collection: str, query: Optional[Document] = None) -> List[Document]:
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._collection(collection).values()
                if matches_filter(doc, query)
            ]

    async def upsert(self, collection: str, key: Any, update: Document) -> None:
        with self._lock:
            docs = self._collection(collection)
            existing = docs.get(key)
            if existing is None:
                doc = apply_update({"_id": key}, update, inserting=True)
                docs[key] = doc
            else:
                apply_update(existing, update)

    async def insert(self, collection: str, document: Document) -> Any:
        with self._lock:
            doc = copy.deepcopy(document)
            if "_id" not in doc:
                self._next_id += 1
                doc["_id"] = f"{collection}_{self._next_id}"
            docs = self._collection(collection)
            if doc["_id"] in docs:
                raise StoreError("insert", KeyError(f"duplicate _id {doc['_id']!r}"))
            docs[doc["_id"]] = doc
            return doc["_id"]

    def count(self, collection: str) -> int:
        """Return number of documents in a collection."""
        return len(self._collection(collection))

    def clear(self) -> None:
        """Remove all data."""
        with self._lock:
            self._collections.clear()


class MongoDocumentStore(BaseDocumentStore):
    """
    MongoDB document store for production use.

    Uses pymongo's AsyncMongoClient so every read and write is an awaitable
    I/O boundary. The connection is opened lazily on first use.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        database: Optional[str] = None,
    ):
        """
        Initialize MongoDB document store.

        Args:
            uri: MongoDB connection URI (or from env)
            database: Database name
        """
        settings = get_settings()
        config = settings.store

        self.uri = uri or config.mongodb_uri
        self.database_name = database or config.mongodb_database

        self._client = None
        self._db = None

        logger.info(f"MongoDocumentStore initialized: db={self.database_name}")

    async def _connect(self):
        """Establish connection to MongoDB."""
        if self._db is not None:
            return

        if not self.uri:
            raise StoreError(
                "connect",
                ValueError("MongoDB URI not configured. Set MONGODB_URI environment variable."),
            )

        from pymongo import AsyncMongoClient
        from pymongo.errors import PyMongoError

        try:
            self._client = AsyncMongoClient(self.uri)
            self._db = self._client[self.database_name]

            # Test connection
            await self._client.admin.command("ping")
        except PyMongoError as e:
            self._client = None
            self._db = None
            raise StoreError("connect", e) from e

        logger.info("Connected to MongoDB")

    async def _collection(self, name: str):
        await self._connect()
        return self._db[name]

    async def get_by_id(self, collection: str, key: Any) -> Optional[Document]:
        return await self.find_one(collection, {"_id": key})

    async def find_one(self, collection: str, query: Document) -> Optional[Document]:
        from pymongo.errors import PyMongoError

        coll = await self._collection(collection)
        try:
            return await coll.find_one(query)
        except PyMongoError as e:
            raise StoreError("find_one", e) from e

    async def find(self, collection: str, query: Optional[Document] = None) -> List[Document]:
        from pymongo.errors import PyMongoError

        coll = await self._collection(collection)
        try:
            cursor = coll.find(query or {})
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreError("find", e) from e

    async def upsert(self, collection: str, key: Any, update: Document) -> None:
        from pymongo.errors import PyMongoError

        coll = await self._collection(collection)
        try:
            await coll.update_one({"_id": key}, update, upsert=True)
        except PyMongoError as e:
            raise StoreError("upsert", e) from e

    async def insert(self, collection: str, document: Document) -> Any:
        from pymongo.errors import PyMongoError

        coll = await self._collection(collection)
        try:
            result = await coll.insert_one(document)
        except PyMongoError as e:
            raise StoreError("insert", e) from e
        return result.inserted_id

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._db = None


class DocumentStore(BaseDocumentStore):
    """
    Main document store with unified interface.

    This is the class that other components should use.
    It handles provider selection based on configuration.

    Example:
        store = DocumentStore()  # provider from STORE_PROVIDER
        await store.upsert("client_data", "faq_cooldown_42", {"$set": {"value": 0}})
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[StoreConfig] = None,
    ):
        """
        Initialize the document store.

        Args:
            provider: "memory" or "mongodb" (default from config)
            config: Optional StoreConfig
        """
        settings = get_settings()
        self.config = config or settings.store

        provider = provider or self.config.provider

        if provider == "memory":
            self._store: BaseDocumentStore = MemoryDocumentStore()
        elif provider == "mongodb":
            self._store = MongoDocumentStore(
                uri=self.config.mongodb_uri,
                database=self.config.mongodb_database,
            )
        else:
            raise ValueError(f"Unknown document store provider: {provider}")

        self._provider = provider
        logger.info(f"DocumentStore initialized with {provider} backend")

    async def get_by_id(self, collection: str, key: Any) -> Optional[Document]:
        return await self._store.get_by_id(collection, key)

    async def find_one(self, collection: str, query: Document) -> Optional[Document]:
        return await self._store.find_one(collection, query)

    async def find(self, collection: str, query: Optional[Document] = None) -> List[Document]:
        return await self._store.find(collection, query)

    async def upsert(self, collection: str, key: Any, update: Document) -> None:
        await self._store.upsert(collection, key, update)

    async def insert(self, collection: str, document: Document) -> Any:
        return await self._store.insert(collection, document)

    async def close(self) -> None:
        await self._store.close()

    @property
    def provider(self) -> str:
        """Return the backend provider name."""
        return self._provider

    @property
    def backend(self) -> BaseDocumentStore:
        return self._store
