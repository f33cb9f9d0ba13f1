"""
Generic document repository over a pymongo collection.

A repository owns everything the store itself does not:
- schema validation (a pydantic model) on every write
- a "before persist" transform pipeline run on validated writes
- a default read predicate AND-ed into every read (e.g. soft-delete filtering)
- hidden fields that default reads never project
- the revision counter and created/updated timestamps
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, Mapping, Optional, Type

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, TypeAdapter, ValidationError
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from accounts.core.errors import CastError

# Revision counter - 0 on insert, incremented by every update
REVISION_FIELD = "__v"

# (changes, is_new) -> changes
PersistTransform = Callable[[dict[str, Any], bool], dict[str, Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def and_filters(*filters: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Combine filters with $and, skipping empty ones"""
    parts = [dict(f) for f in filters if f]
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}


class DocumentQuery:
    """
    Unexecuted read over a collection.

    Built up by chaining where/sort/select/skip/limit and run once with execute().
    """

    def __init__(
        self,
        collection: Collection,
        filter_: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.collection = collection
        self.filter: dict[str, Any] = dict(filter_ or {})
        self.projection: Optional[dict[str, Any]] = dict(projection) if projection else None
        self.sort_spec: list[tuple[str, int]] = []
        self.skip_count = 0
        self.limit_count = 0

    def where(self, conditions: Mapping[str, Any]) -> "DocumentQuery":
        self.filter = and_filters(self.filter, conditions)
        return self

    def sort(self, spec: Iterable[tuple[str, int]]) -> "DocumentQuery":
        self.sort_spec = list(spec)
        return self

    def select(self, projection: Mapping[str, Any]) -> "DocumentQuery":
        self.projection = dict(projection)
        return self

    def skip(self, count: int) -> "DocumentQuery":
        self.skip_count = count
        return self

    def limit(self, count: int) -> "DocumentQuery":
        self.limit_count = count
        return self

    def execute(self) -> list[dict[str, Any]]:
        cursor = self.collection.find(self.filter, self.projection)
        if self.sort_spec:
            cursor = cursor.sort(self.sort_spec)
        if self.skip_count:
            cursor = cursor.skip(self.skip_count)
        if self.limit_count:
            cursor = cursor.limit(self.limit_count)
        return list(cursor)


class DocumentRepository:
    """Base class - subclasses set the class attributes below"""

    collection_name: ClassVar[str]
    schema: ClassVar[Type[BaseModel]]
    hidden_fields: ClassVar[tuple[str, ...]] = ()
    default_filter: ClassVar[dict[str, Any]] = {}
    before_persist: ClassVar[tuple[PersistTransform, ...]] = ()
    # Fields callers can never write directly
    immutable_fields: ClassVar[tuple[str, ...]] = ("_id", "id", "created_at", "updated_at", REVISION_FIELD)

    def __init__(self, db: Database) -> None:
        self.db = db
        self.collection: Collection = db[self.collection_name]
        self._adapters: dict[str, TypeAdapter] = {}

    # Helpers
    # -----------------------------

    def scoped(self, filter_: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        """Filter with the default read predicate applied"""
        return and_filters(self.default_filter, filter_)

    def default_projection(self) -> dict[str, int]:
        projection = {field: 0 for field in self.hidden_fields}
        projection[REVISION_FIELD] = 0
        return projection

    @staticmethod
    def storage_field(field: str) -> str:
        """Map a public field name onto the stored one"""
        return "_id" if field == "id" else field

    @staticmethod
    def object_id(value: Any) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        try:
            return ObjectId(str(value))
        except (InvalidId, TypeError):
            raise CastError("_id", value)

    def cast_value(self, field: str, raw: Any) -> Any:
        """Convert a raw (query string) value to the field's schema type"""
        if field in ("_id", "id"):
            return self.object_id(raw)

        field_info = self.schema.model_fields.get(field)
        if field_info is None:
            # Unknown to the schema - compare as given
            return raw

        adapter = self._adapters.get(field)
        if adapter is None:
            adapter = TypeAdapter(field_info.annotation)
            self._adapters[field] = adapter
        try:
            value = adapter.validate_python(raw)
        except ValidationError:
            raise CastError(field, raw)
        return value.value if isinstance(value, Enum) else value

    def to_public(self, document: Optional[Mapping[str, Any]]) -> Optional[dict[str, Any]]:
        """Response shape: string id, no hidden or internal fields"""
        if document is None:
            return None
        public: dict[str, Any] = {}
        if "_id" in document:
            public["id"] = str(document["_id"])
        for key, value in document.items():
            if key == "_id" or key == REVISION_FIELD or key in self.hidden_fields:
                continue
            public[key] = str(value) if isinstance(value, ObjectId) else value
        return public

    def _writable(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in data.items() if k not in self.immutable_fields}

    def _run_before_persist(self, changes: dict[str, Any], is_new: bool) -> dict[str, Any]:
        for transform in self.before_persist:
            changes = transform(changes, is_new)
        return changes

    # Reads
    # -----------------------------

    def find(self, filter_: Optional[Mapping[str, Any]] = None) -> DocumentQuery:
        """Unexecuted query with default predicate and projection"""
        return DocumentQuery(self.collection, self.scoped(filter_), self.default_projection())

    def find_one(
        self,
        filter_: Mapping[str, Any],
        *,
        include_hidden: bool = False,
    ) -> Optional[dict[str, Any]]:
        projection = None if include_hidden else self.default_projection()
        return self.collection.find_one(self.scoped(filter_), projection)

    def find_by_id(self, document_id: Any, *, include_hidden: bool = False) -> Optional[dict[str, Any]]:
        return self.find_one({"_id": self.object_id(document_id)}, include_hidden=include_hidden)

    # Writes
    # -----------------------------

    def create(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Validate, transform and insert - returns the stored document"""
        validated = self.schema.model_validate(self._writable(data))
        document = validated.model_dump(exclude_none=True)
        document = self._run_before_persist(document, True)

        now = utcnow()
        document["created_at"] = now
        document["updated_at"] = now
        document[REVISION_FIELD] = 0

        result = self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    def update_by_id(
        self,
        document_id: Any,
        changes: Mapping[str, Any],
        *,
        unset: Iterable[str] = (),
        where: Optional[Mapping[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Apply a partial update and return the post-update document.

        The changes are merged over the stored document and the result is
        re-validated against the schema, so an update can never leave the
        document in a state create() would reject. Returns None if no
        document (visible through the default predicate) has that id.

        `where` adds conditions to the write filter itself: if the document
        stops matching them between the read and the write, nothing is written
        and None is returned.
        """
        oid = self.object_id(document_id)
        scoped_filter = self.scoped(and_filters({"_id": oid}, where))
        unset = tuple(unset)

        # Read the current state first - the schema is checked against the merged result
        existing = self.collection.find_one(scoped_filter)
        if existing is None:
            return None

        # Immutable fields (_id, timestamps, __v) are silently dropped
        requested = self._writable(changes)
        merged = {k: v for k, v in existing.items() if k not in unset}
        merged.update(requested)
        validated = self.schema.model_validate(merged).model_dump()

        updates = {
            key: validated[key]
            for key in requested
            if key in self.schema.model_fields
        }
        # Only the requested fields are written, after the pipeline (password hashing, ...)
        updates = self._run_before_persist(updates, False)
        updates["updated_at"] = utcnow()

        operation: dict[str, Any] = {"$set": updates, "$inc": {REVISION_FIELD: 1}}
        if unset:
            operation["$unset"] = {field: "" for field in unset}

        # Same filter on the write - None if the document stopped matching since the read
        return self.collection.find_one_and_update(
            scoped_filter,
            operation,
            return_document=ReturnDocument.AFTER,
        )

    def delete_by_id(self, document_id: Any) -> Optional[dict[str, Any]]:
        """Remove the document entirely - returns it, or None if absent"""
        return self.collection.find_one_and_delete(self.scoped({"_id": self.object_id(document_id)}))
