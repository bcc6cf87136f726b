"""
Record store for the Campus Marketplace.

Persistence is a key-value shim over named collections. Each collection is
read and written as a whole sequence of records (read-modify-write, last
write wins). Records are parsed into the typed models from ``schemas`` on
the way out; anything that does not validate is logged and skipped.

Two backends are provided:

- ``MemoryBackend`` keeps every collection as serialized JSON text in a
  dict, the way a browser storage area would.
- ``MongoBackend`` keeps every collection in a MongoDB collection.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Type

from bson import ObjectId
from pydantic import BaseModel, ValidationError

from config import Settings, settings
from schemas import Account, Listing, Message, Session

logger = logging.getLogger(__name__)

ACCOUNTS = "accounts"
LISTINGS = "listings"
MESSAGES = "messages"
CURRENT_SESSION = "current_session"

MODELS: Dict[str, Type[BaseModel]] = {
    ACCOUNTS: Account,
    LISTINGS: Listing,
    MESSAGES: Message,
    CURRENT_SESSION: Session,
}


def new_id() -> str:
    return str(ObjectId())


class MemoryBackend:
    """Collections serialized as text in a process-local dict."""

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def read(self, collection_name: str) -> List[dict]:
        raw = self._data.get(collection_name)
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable collection %s", collection_name)
            del self._data[collection_name]
            return []
        return records if isinstance(records, list) else []

    def write(self, collection_name: str, records: List[dict]) -> None:
        self._data[collection_name] = json.dumps(records)

    def remove(self, collection_name: str) -> None:
        self._data.pop(collection_name, None)

    def collection_names(self) -> List[str]:
        return sorted(self._data)

    def raw(self, collection_name: str) -> Optional[str]:
        return self._data.get(collection_name)


class MongoBackend:
    """Collections stored one-to-one as MongoDB collections."""

    name = "mongo"

    def __init__(self, database_url: str, database_name: str):
        from pymongo import MongoClient

        self.client = MongoClient(database_url)
        self.db = self.client[database_name]

    def read(self, collection_name: str) -> List[dict]:
        return list(self.db[collection_name].find({}, {"_id": 0}))

    def write(self, collection_name: str, records: List[dict]) -> None:
        collection = self.db[collection_name]
        collection.delete_many({})
        if records:
            # insert_many adds _id to the dicts it is handed
            collection.insert_many([dict(r) for r in records])

    def remove(self, collection_name: str) -> None:
        self.db[collection_name].delete_many({})

    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()


class RecordStore:
    """Typed access to the marketplace collections over a backend."""

    def __init__(self, backend=None):
        self.backend = backend if backend is not None else MemoryBackend()

    def _parse(self, collection_name: str, raw: dict):
        model = MODELS[collection_name]
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping invalid %s record %s: %s", collection_name, raw.get("id"), e.errors()[:1])
            return None

    def get_documents(self, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                      limit: Optional[int] = None) -> list:
        docs = []
        for raw in self.backend.read(collection_name):
            doc = self._parse(collection_name, raw)
            if doc is None:
                continue
            if filter_dict and any(getattr(doc, k, None) != v for k, v in filter_dict.items()):
                continue
            docs.append(doc)
            if limit is not None and len(docs) >= limit:
                break
        return docs

    def find_one(self, collection_name: str, filter_dict: Dict[str, Any]):
        found = self.get_documents(collection_name, filter_dict, limit=1)
        return found[0] if found else None

    def find_document(self, collection_name: str, doc_id: str):
        return self.find_one(collection_name, {"id": doc_id})

    def replace_documents(self, collection_name: str, docs: List[BaseModel]) -> None:
        self.backend.write(collection_name, [d.model_dump(mode="json") for d in docs])

    def create_document(self, collection_name: str, data: BaseModel) -> str:
        docs = self.get_documents(collection_name)
        docs.append(data)
        self.replace_documents(collection_name, docs)
        return getattr(data, "id", "")

    def update_document(self, collection_name: str, doc_id: str, changes: Dict[str, Any]):
        docs = self.get_documents(collection_name)
        model = MODELS[collection_name]
        for i, doc in enumerate(docs):
            if doc.id == doc_id:
                docs[i] = model.model_validate({**doc.model_dump(), **changes})
                self.replace_documents(collection_name, docs)
                return docs[i]
        return None

    def delete_document(self, collection_name: str, doc_id: str) -> bool:
        docs = self.get_documents(collection_name)
        kept = [d for d in docs if d.id != doc_id]
        if len(kept) == len(docs):
            return False
        self.replace_documents(collection_name, kept)
        return True

    # Session record
    def get_session(self) -> Optional[Session]:
        sessions = self.get_documents(CURRENT_SESSION, limit=1)
        return sessions[0] if sessions else None

    def set_session(self, session: Session) -> None:
        self.replace_documents(CURRENT_SESSION, [session])

    def clear_session(self) -> None:
        self.backend.remove(CURRENT_SESSION)

    def collection_names(self) -> List[str]:
        return self.backend.collection_names()


def build_store(config: Settings = settings) -> RecordStore:
    if config.store_backend == "mongo":
        if not config.database_url:
            raise RuntimeError("DATABASE_URL must be set when STORE_BACKEND=mongo")
        logger.info("Using MongoDB record store %s", config.database_name)
        return RecordStore(MongoBackend(config.database_url, config.database_name))
    logger.info("Using in-memory record store")
    return RecordStore(MemoryBackend())


_store: Optional[RecordStore] = None


def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = build_store()
    return _store
