"""In-memory stand-ins for the parts of pymongo the repositories call."""

from __future__ import annotations

import copy
from types import SimpleNamespace
from typing import Any, Iterable, Mapping

from bson import ObjectId
from pymongo.errors import DuplicateKeyError


def _get_path(doc: Mapping[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def _equals(value: Any, expected: Any) -> bool:
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _compare(value: Any, expected: Any, op: str) -> bool:
    if value is None:
        return False
    try:
        if op == "$gt":
            return value > expected
        if op == "$gte":
            return value >= expected
        if op == "$lt":
            return value < expected
        return value <= expected
    except TypeError:
        return False


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and condition and all(k.startswith("$") for k in condition):
        for op, arg in condition.items():
            if op == "$eq" and not _equals(value, arg):
                return False
            if op == "$ne" and _equals(value, arg):
                return False
            if op in ("$gt", "$gte", "$lt", "$lte") and not _compare(value, arg, op):
                return False
            if op == "$in" and not any(_equals(value, item) for item in arg):
                return False
            if op == "$exists" and (value is not None) != bool(arg):
                return False
        return True
    return _equals(value, condition)


def matches(doc: Mapping[str, Any], filter_: Mapping[str, Any] | None) -> bool:
    for key, condition in (filter_ or {}).items():
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif not _match_condition(_get_path(doc, key), condition):
            return False
    return True


def project(doc: Mapping[str, Any], projection: Mapping[str, Any] | None) -> dict[str, Any]:
    doc = copy.deepcopy(dict(doc))
    if not projection:
        return doc
    inclusive = any(value for key, value in projection.items() if key != "_id")
    if inclusive:
        result = {key: doc[key] for key, value in projection.items() if value and key in doc}
        if projection.get("_id", 1) and "_id" in doc:
            result["_id"] = doc["_id"]
        return result
    return {key: value for key, value in doc.items() if projection.get(key, 1)}


def _sort_key(value: Any) -> tuple:
    # null sorts before everything, as in MongoDB
    return (0, 0) if value is None else (1, value)


class FakeCursor:
    def __init__(self, docs: list[dict[str, Any]], projection: Mapping[str, Any] | None) -> None:
        self._docs = docs
        self._projection = projection
        self.sort_spec: list[tuple[str, int]] = []
        self.skipped = 0
        self.limited = 0

    def sort(self, spec: Iterable[tuple[str, int]]) -> "FakeCursor":
        self.sort_spec = list(spec)
        for key, direction in reversed(self.sort_spec):
            self._docs.sort(key=lambda d: _sort_key(_get_path(d, key)), reverse=direction < 0)
        return self

    def skip(self, count: int) -> "FakeCursor":
        self.skipped = count
        self._docs = self._docs[count:]
        return self

    def limit(self, count: int) -> "FakeCursor":
        self.limited = count
        if count:
            self._docs = self._docs[:count]
        return self

    def __iter__(self):
        return iter([project(doc, self._projection) for doc in self._docs])


class FakeCollection:
    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: list[dict[str, Any]] = []
        self.unique_indexes: list[tuple[str, ...]] = []
        self.indexes: list[tuple[Any, dict[str, Any]]] = []
        # Every call is recorded so tests can assert on store access
        self.calls: list[str] = []

    def create_index(self, keys: Any, **kwargs: Any) -> str:
        self.indexes.append((keys, kwargs))
        fields = (keys,) if isinstance(keys, str) else tuple(key for key, _ in keys)
        if kwargs.get("unique"):
            self.unique_indexes.append(fields)
        return kwargs.get("name") or "_".join(fields)

    def _check_unique(self, candidate: Mapping[str, Any]) -> None:
        for fields in self.unique_indexes:
            values = {field: candidate.get(field) for field in fields}
            for other in self.docs:
                if other.get("_id") == candidate.get("_id"):
                    continue
                if all(other.get(field) == value for field, value in values.items()):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} dup key: {values}",
                        11000,
                        {"keyValue": values},
                    )

    def insert_one(self, document: dict[str, Any]) -> SimpleNamespace:
        self.calls.append("insert_one")
        document.setdefault("_id", ObjectId())
        self._check_unique(document)
        self.docs.append(copy.deepcopy(document))
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    def find_one(self, filter_: Mapping[str, Any] | None = None, projection: Mapping[str, Any] | None = None):
        self.calls.append("find_one")
        for doc in self.docs:
            if matches(doc, filter_):
                return project(doc, projection)
        return None

    def find(self, filter_: Mapping[str, Any] | None = None, projection: Mapping[str, Any] | None = None) -> FakeCursor:
        self.calls.append("find")
        self.last_filter = filter_
        self.last_cursor = FakeCursor([doc for doc in self.docs if matches(doc, filter_)], projection)
        return self.last_cursor

    def count_documents(self, filter_: Mapping[str, Any]) -> int:
        return sum(1 for doc in self.docs if matches(doc, filter_))

    @staticmethod
    def _apply_update(doc: dict[str, Any], update: Mapping[str, Any]) -> dict[str, Any]:
        updated = copy.deepcopy(doc)
        for key, value in update.get("$set", {}).items():
            updated[key] = copy.deepcopy(value)
        for key in update.get("$unset", {}):
            updated.pop(key, None)
        for key, amount in update.get("$inc", {}).items():
            updated[key] = updated.get(key, 0) + amount
        return updated

    def find_one_and_update(
        self,
        filter_: Mapping[str, Any],
        update: Mapping[str, Any],
        projection: Mapping[str, Any] | None = None,
        return_document: bool = False,
    ):
        self.calls.append("find_one_and_update")
        for index, doc in enumerate(self.docs):
            if matches(doc, filter_):
                updated = self._apply_update(doc, update)
                self._check_unique(updated)
                self.docs[index] = updated
                return project(updated if return_document else doc, projection)
        return None

    def update_many(self, filter_: Mapping[str, Any], update: Mapping[str, Any]) -> SimpleNamespace:
        self.calls.append("update_many")
        modified = 0
        for index, doc in enumerate(self.docs):
            if matches(doc, filter_):
                self.docs[index] = self._apply_update(doc, update)
                modified += 1
        return SimpleNamespace(matched_count=modified, modified_count=modified)

    def find_one_and_delete(self, filter_: Mapping[str, Any]):
        self.calls.append("find_one_and_delete")
        for index, doc in enumerate(self.docs):
            if matches(doc, filter_):
                return self.docs.pop(index)
        return None


class FakeDatabase:
    def __init__(self, name: str = "accounts_test") -> None:
        self.name = name
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection(name))

    def get_collection(self, name: str) -> FakeCollection:
        return self[name]
