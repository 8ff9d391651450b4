"""
Remote data service for the storefront.

Each entity is a MongoDB collection (profiles, categories, products, reviews,
orders, order_items, cart_items, homepage_content, revoked_tokens). DataService
exposes them as plain rows: dicts with a string "id" instead of the Mongo "_id".
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import Conflict, RemoteFailure
from logging_setup import get_logger

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")

logger = get_logger("database")

Row = Dict[str, Any]
SortOrder = Sequence[Tuple[str, int]]

# natural keys the storefront relies on; ensure_indexes() makes them unique
UNIQUE_KEYS = {
    "profiles": [("email", ASCENDING)],
    "cart_items": [("user_id", ASCENDING), ("product_id", ASCENDING)],
}


def _connect() -> Optional[Database]:
    if not DATABASE_URL:
        return None
    client = MongoClient(DATABASE_URL)
    return client[DATABASE_NAME]


db = _connect()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_public(doc: Optional[Row]) -> Optional[Row]:
    if not doc:
        return doc
    row = dict(doc)
    row["id"] = str(row.pop("_id"))
    return row


def _object_id(value: Any) -> Any:
    # a malformed id is kept as-is so it simply matches no document
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return value


def _id_condition(value: Any) -> Any:
    if isinstance(value, dict):
        condition = {}
        for op, operand in value.items():
            if isinstance(operand, (list, tuple)):
                condition[op] = [_object_id(v) for v in operand]
            else:
                condition[op] = _object_id(operand)
        return condition
    return _object_id(value)


def to_query(filters: Optional[Row]) -> Row:
    query: Row = {}
    for key, value in (filters or {}).items():
        if key in ("$or", "$and"):
            query[key] = [to_query(f) for f in value]
        elif key == "id":
            query["_id"] = _id_condition(value)
        else:
            query[key] = value
    return query


def _as_row(data: Union[BaseModel, Row]) -> Row:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


class DataService:
    """Row-level select/insert/update/delete over a MongoDB database."""

    def __init__(self, database: Database):
        self._db = database

    def select(
        self,
        entity: str,
        filters: Optional[Row] = None,
        order: Optional[SortOrder] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        try:
            cursor = self._db[entity].find(to_query(filters))
            if order:
                cursor = cursor.sort(list(order))
            if limit:
                cursor = cursor.limit(limit)
            return [to_public(doc) for doc in cursor]
        except PyMongoError as e:
            raise self._failure("select", entity, e)

    def select_one(self, entity: str, filters: Row) -> Optional[Row]:
        try:
            return to_public(self._db[entity].find_one(to_query(filters)))
        except PyMongoError as e:
            raise self._failure("select", entity, e)

    def insert(self, entity: str, row: Union[BaseModel, Row]) -> Row:
        doc = self._stamped(row)
        try:
            result = self._db[entity].insert_one(doc)
        except DuplicateKeyError as e:
            raise self._conflict(entity, e)
        except PyMongoError as e:
            raise self._failure("insert", entity, e)
        doc["_id"] = result.inserted_id
        return to_public(doc)

    def insert_many(self, entity: str, rows: Sequence[Union[BaseModel, Row]]) -> List[Row]:
        if not rows:
            return []
        docs = [self._stamped(row) for row in rows]
        try:
            result = self._db[entity].insert_many(docs)
        except PyMongoError as e:
            raise self._failure("insert", entity, e)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc["_id"] = inserted_id
        return [to_public(doc) for doc in docs]

    def update(self, entity: str, patch: Row, filters: Row) -> int:
        changes = dict(patch)
        changes.setdefault("updated_at", utcnow())
        try:
            result = self._db[entity].update_many(to_query(filters), {"$set": changes})
        except PyMongoError as e:
            raise self._failure("update", entity, e)
        return result.matched_count

    def increment(self, entity: str, amounts: Row, filters: Row) -> int:
        """Atomically add `amounts` to numeric fields of the matching rows."""
        try:
            result = self._db[entity].update_many(
                to_query(filters), {"$inc": dict(amounts), "$set": {"updated_at": utcnow()}}
            )
        except PyMongoError as e:
            raise self._failure("update", entity, e)
        return result.matched_count

    def delete(self, entity: str, filters: Row) -> int:
        try:
            result = self._db[entity].delete_many(to_query(filters))
        except PyMongoError as e:
            raise self._failure("delete", entity, e)
        return result.deleted_count

    def count(self, entity: str, filters: Optional[Row] = None) -> int:
        try:
            return self._db[entity].count_documents(to_query(filters))
        except PyMongoError as e:
            raise self._failure("count", entity, e)

    def ensure_indexes(self) -> None:
        for entity, keys in UNIQUE_KEYS.items():
            try:
                self._db[entity].create_index(keys, unique=True)
            except PyMongoError as e:
                raise self._failure("index", entity, e)

    def ping(self) -> List[str]:
        """Return the collection names, failing if the database is unreachable."""
        try:
            return self._db.list_collection_names()
        except PyMongoError as e:
            raise self._failure("ping", "*", e)

    @staticmethod
    def _stamped(row: Union[BaseModel, Row]) -> Row:
        doc = _as_row(row)
        doc.pop("id", None)
        now = utcnow()
        for field in ("created_at", "updated_at"):
            if doc.get(field) is None:
                doc[field] = now
        return doc

    @staticmethod
    def _failure(operation: str, entity: str, error: PyMongoError) -> RemoteFailure:
        logger.error("remote_failure", operation=operation, entity=entity, error=str(error))
        return RemoteFailure(f"Could not {operation} {entity}: {str(error)[:80]}")

    @staticmethod
    def _conflict(entity: str, error: DuplicateKeyError) -> Conflict:
        logger.info("duplicate_row", entity=entity, error=str(error)[:80])
        return Conflict(f"{entity} row already exists")
