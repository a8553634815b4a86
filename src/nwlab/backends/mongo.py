"""
Document backend: MongoDB.

Each entity with a JSON export becomes one collection. Loads drop the
collection and insert the staged documents in batches, so re-runs replace
rather than append. Collections are independent and load concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from itertools import islice

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from nwlab.backends.base import Backend
from nwlab.datasets.base import BackendKind, Entity
from nwlab.datasets.staged import count_documents, iter_documents
from nwlab.errors import LoadError, ResetError, SchemaError

logger = logging.getLogger(__name__)


class MongoBackend(Backend):
    """Drop-and-import loader for MongoDB."""

    kind = BackendKind.DOCUMENT
    service = "mongodb"
    concurrent_loads = True

    def __init__(self, settings=None, client: MongoClient | None = None):
        super().__init__(settings)
        self._client = client

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            timeout_ms = self.settings.connect_timeout * 1000
            self._client = MongoClient(
                self.settings.mongo_uri(),
                serverSelectionTimeoutMS=timeout_ms,
                connectTimeoutMS=timeout_ms,
            )
        return self._client

    @property
    def db(self):
        return self.client[self.settings.mongo_database]

    def ping(self) -> bool:
        self.client.admin.command("ping")
        return True

    def ensure_schema(self, entities: Sequence[Entity]) -> None:
        """Make sure every managed collection exists."""
        try:
            existing = set(self.db.list_collection_names())
            for entity in entities:
                if entity.name not in existing:
                    self.db.create_collection(entity.name)
        except PyMongoError as exc:
            raise SchemaError(f"cannot create collections: {exc}", backend=self.name) from exc

    def reset(self, entities: Sequence[Entity]) -> None:
        try:
            for entity in entities:
                self.db.drop_collection(entity.name)
        except PyMongoError as exc:
            raise ResetError(f"drop failed: {exc}", backend=self.name) from exc

    def load(self, entity: Entity) -> int:
        """Drop the collection, then insert the staged documents."""
        path = self.staged(entity.json_file)
        collection = self.db[entity.name]
        inserted = 0
        try:
            collection.drop()
            documents = iter_documents(path)
            while batch := list(islice(documents, self.settings.mongo_batch_size)):
                result = collection.insert_many(batch, ordered=True)
                inserted += len(result.inserted_ids)
        except (PyMongoError, ValueError, OSError) as exc:
            raise LoadError(
                f"import failed after {inserted:,} documents: {exc}",
                backend=self.name,
                entity=entity.name,
            ) from exc
        logger.debug("inserted %d documents into %s", inserted, entity.name)
        return inserted

    def count(self, entity: Entity) -> int:
        return self.db[entity.name].count_documents({})

    def expected_count(self, entity: Entity) -> int | None:
        return count_documents(self.staged(entity.json_file))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
