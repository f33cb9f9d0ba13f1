"""
Generic CRUD handlers for any DocumentRepository.

ResourceService holds the store-facing logic; the factory functions below wrap
it into FastAPI endpoints that produce the {"status", "data"} envelope:

    router.add_api_route("/", get_all(UserRepository), methods=["GET"])
    router.add_api_route("/{document_id}", get_one(UserRepository), methods=["GET"])

Store and validation exceptions are not caught here - they propagate to the
exception handlers registered in accounts.core.errors.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Type
from fastapi import Body, Depends, Request, Response, status
from pymongo.database import Database
from accounts.core.database import get_db
from accounts.core.errors import BadRequestError, NotFoundError
from accounts.repositories.base import DocumentRepository
from accounts.services.query_features import QueryFeatures

NOT_FOUND_MESSAGE = "No document found with that ID"


@dataclass(frozen=True)
class Populate:
    """Expand the ObjectId reference(s) stored at `path` into documents"""
    path: str
    repository: Type[DocumentRepository]
    fields: tuple[str, ...] = ()


class ResourceService:
    def __init__(self, repository: DocumentRepository) -> None:
        self.repository = repository

    def _populate(self, document: dict[str, Any], populate: Sequence[Populate]) -> dict[str, Any]:
        for option in populate:
            reference = document.get(option.path)
            if reference is None:
                continue
            related = option.repository(self.repository.db)

            def expand(ref_id: Any) -> Optional[dict[str, Any]]:
                found = related.to_public(related.find_by_id(ref_id))
                if found is not None and option.fields:
                    found = {k: v for k, v in found.items() if k == "id" or k in option.fields}
                return found

            if isinstance(reference, list):
                document[option.path] = [doc for doc in map(expand, reference) if doc is not None]
            else:
                document[option.path] = expand(reference)
        return document

    def create(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return self.repository.to_public(self.repository.create(data))

    def get(self, document_id: Any, populate: Sequence[Populate] = ()) -> dict[str, Any]:
        document = self.repository.find_by_id(document_id)
        if document is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        if populate:
            document = self._populate(document, populate)
        return self.repository.to_public(document)

    def list(self, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        features = (
            QueryFeatures(self.repository.find(), params, self.repository)
            .filter()
            .sort()
            .limit_fields()
            .paginate()
        )
        return [self.repository.to_public(doc) for doc in features.query.execute()]

    def update(self, document_id: Any, changes: Mapping[str, Any]) -> dict[str, Any]:
        document = self.repository.update_by_id(document_id, changes)
        if document is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return self.repository.to_public(document)

    def delete(self, document_id: Any) -> None:
        # Checked before any store access
        if document_id is None or not str(document_id).strip():
            raise BadRequestError("Invalid ID provided")
        if self.repository.delete_by_id(document_id) is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)


# Endpoint factories
# -----------------------------
# Store-touching handlers are plain functions so FastAPI runs them in its
# threadpool; pymongo and bcrypt calls then never block the event loop.

def create_one(repository_cls: Type[DocumentRepository]):
    def handler(payload: dict[str, Any] = Body(...), db: Database = Depends(get_db)):
        document = ResourceService(repository_cls(db)).create(payload)
        return {"status": "success", "data": {"data": document}}

    handler.__name__ = f"create_{repository_cls.collection_name}"
    return handler


def get_one(repository_cls: Type[DocumentRepository], populate: Sequence[Populate] = ()):
    def handler(document_id: str, db: Database = Depends(get_db)):
        document = ResourceService(repository_cls(db)).get(document_id, populate)
        return {"status": "success", "data": {"data": document}}

    handler.__name__ = f"get_{repository_cls.collection_name}"
    return handler


def get_all(repository_cls: Type[DocumentRepository]):
    def handler(request: Request, db: Database = Depends(get_db)):
        documents = ResourceService(repository_cls(db)).list(request.query_params)
        return {"status": "success", "results": len(documents), "data": {"data": documents}}

    handler.__name__ = f"list_{repository_cls.collection_name}"
    return handler


def update_one(repository_cls: Type[DocumentRepository]):
    def handler(document_id: str, payload: dict[str, Any] = Body(...), db: Database = Depends(get_db)):
        document = ResourceService(repository_cls(db)).update(document_id, payload)
        return {"status": "success", "data": {"data": document}}

    handler.__name__ = f"update_{repository_cls.collection_name}"
    return handler


def delete_one(repository_cls: Type[DocumentRepository]):
    def handler(document_id: str, db: Database = Depends(get_db)):
        ResourceService(repository_cls(db)).delete(document_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    handler.__name__ = f"delete_{repository_cls.collection_name}"
    return handler
