from typing import Any
from fastapi import APIRouter, Body, Depends, Response, status
from pymongo.database import Database
from accounts.core.database import get_db
from accounts.api.dependencies import protect, restrict_to
from accounts.models.user import Role
from accounts.repositories.users import UserRepository
from accounts.services.auth_service import AuthService
from accounts.services.handler_factory import (
    ResourceService,
    create_one,
    delete_one,
    get_all,
    get_one,
    update_one,
)

router = APIRouter(prefix="/users", tags=["users"])


# Self-service routes - any signed-in user
# Declared before /{document_id} so the literal paths win

@router.get("/me")
def get_me(current_user: dict = Depends(protect), db: Database = Depends(get_db)):
    """Get current user information"""
    user = ResourceService(UserRepository(db)).get(current_user["_id"])
    return {"status": "success", "data": {"data": user}}


@router.patch("/update-me")
def update_me(
    body: dict[str, Any] = Body(...),
    current_user: dict = Depends(protect),
    db: Database = Depends(get_db),
):
    """Update name and email of the current user (not the password)"""
    user = AuthService(db).update_me(current_user, body)
    return {"status": "success", "data": {"user": user}}


@router.delete("/delete-me", status_code=status.HTTP_204_NO_CONTENT)
def delete_me(current_user: dict = Depends(protect), db: Database = Depends(get_db)):
    """Deactivate the current user - the account stays but is hidden from reads"""
    AuthService(db).deactivate(current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Admin routes - generic handlers from the factory
# restrict_to depends on protect, so identity is resolved before the role check

admin_only = [Depends(restrict_to(Role.ADMIN))]

router.add_api_route("", get_all(UserRepository), methods=["GET"], dependencies=admin_only)
router.add_api_route(
    "",
    create_one(UserRepository),
    methods=["POST"],
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
)
router.add_api_route("/{document_id}", get_one(UserRepository), methods=["GET"], dependencies=admin_only)
router.add_api_route("/{document_id}", update_one(UserRepository), methods=["PATCH"], dependencies=admin_only)
router.add_api_route(
    "/{document_id}",
    delete_one(UserRepository),
    methods=["DELETE"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=admin_only,
)
