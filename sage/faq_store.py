"""Access to the admin-curated FAQ corpus."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from sage.document_store import BaseDocumentStore
from sage.errors import StoreError
from sage.models import FAQEntry

logger = logging.getLogger(__name__)

FAQ_FIELDS = ("question", "answer", "category", "link")


def load_faq_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read FAQ documents from a JSON file.

    The file holds a list of objects with "question", "answer", "category"
    and an optional "link". Objects without a usable question are skipped;
    unknown keys are dropped.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not a JSON list
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of FAQ objects")

    documents = []
    for index, item in enumerate(data):
        if FAQEntry.from_document(item) is None:
            logger.warning(f"{path}: skipping FAQ #{index} without a question")
            continue
        doc = {key: item[key] for key in FAQ_FIELDS if item.get(key) is not None}
        doc.setdefault("answer", "")
        doc.setdefault("category", "General")
        documents.append(doc)

    logger.info(f"Loaded {len(documents)} FAQs from {path}")
    return documents


class FAQStore:
    """
    Fetches the FAQ corpus from the document store.

    The corpus is fetched fresh on every call; admins edit FAQs through
    their own commands and those edits must show up on the next message.
    """

    def __init__(self, store: BaseDocumentStore, collection: str = "faqs"):
        self.store = store
        self.collection = collection

    async def list_all(self) -> List[Dict[str, Any]]:
        """Return every raw FAQ document in store order (may raise StoreError)."""
        return await self.store.find(self.collection)

    async def list_entries(self) -> List[FAQEntry]:
        """
        Return the corpus as FAQEntry records.

        Malformed documents are dropped. A store failure yields an empty
        corpus, which the pipeline treats as "no match".
        """
        try:
            documents = await self.list_all()
        except StoreError as e:
            logger.error(f"Failed to load FAQ corpus: {e}")
            return []

        entries = []
        for doc in documents:
            entry = FAQEntry.from_document(doc)
            if entry is None:
                logger.warning(f"Skipping malformed FAQ document: {doc.get('_id')!r}")
                continue
            entries.append(entry)
        return entries

    async def seed(self, documents: Iterable[Dict[str, Any]]) -> int:
        """
        Insert FAQ documents that are not already in the corpus.

        An FAQ is already present when one with the same category and
        question exists. May raise StoreError.

        Returns:
            Number of documents inserted
        """
        inserted = 0
        for doc in documents:
            existing = await self.store.find_one(
                self.collection,
                {"category": doc.get("category"), "question": doc.get("question")},
            )
            if existing is not None:
                continue
            await self.store.insert(self.collection, dict(doc))
            inserted += 1

        logger.info(f"Seeded {inserted} FAQs into {self.collection}")
        return inserted
