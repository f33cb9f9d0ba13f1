from datetime import timedelta

import pytest
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from accounts.core.security import verify_password
from accounts.repositories.base import utcnow


def test_create_normalizes_email_and_hashes_password(users_repo):
    user = users_repo.create({
        "fullname": "  Jane Doe ",
        "email": "  Jane.Doe@Example.COM ",
        "password": "password123",
    })

    stored = users_repo.collection.docs[0]
    assert stored["email"] == "jane.doe@example.com"
    assert stored["fullname"] == "Jane Doe"
    assert stored["password"] != "password123"
    assert verify_password("password123", stored["password"])
    assert stored["role"] == "user"
    assert stored["active"] is True
    assert stored["photo"] == "default.jpg"
    assert stored["__v"] == 0
    assert "password_changed_at" not in stored
    assert user["_id"] == stored["_id"]


def test_create_validates_schema(users_repo):
    with pytest.raises(ValidationError):
        users_repo.create({"fullname": "Jane", "email": "not-an-email", "password": "password123"})

    with pytest.raises(ValidationError):
        users_repo.create({"fullname": "Jane", "email": "jane@example.com", "password": "short"})

    with pytest.raises(ValidationError):
        users_repo.create({"fullname": "Jane", "email": "jane@example.com", "password": "password123", "role": "owner"})

    assert users_repo.collection.docs == []


def test_create_rejects_duplicate_email_case_insensitively(users_repo, make_user):
    make_user(email="jane@example.com")

    with pytest.raises(DuplicateKeyError):
        make_user(email="JANE@example.com")


def test_default_reads_hide_password_and_inactive_users(users_repo, make_user):
    active = make_user(email="active@example.com")
    make_user(email="gone@example.com", active=False)

    found = users_repo.find_by_email("active@example.com")
    assert found["_id"] == active["_id"]
    assert "password" not in found
    assert "active" not in found

    assert users_repo.find_by_email("gone@example.com") is None
    assert users_repo.find_by_email("gone@example.com", include_hidden=True) is None
    assert "password" in users_repo.find_by_email("active@example.com", include_hidden=True)


def test_update_with_password_hashes_and_records_change_time(users_repo, make_user):
    user = make_user()
    before = utcnow()

    updated = users_repo.update_by_id(user["_id"], {"password": "new-password-1"})

    stored = users_repo.collection.docs[0]
    assert verify_password("new-password-1", stored["password"])
    assert before <= stored["password_changed_at"] <= utcnow()
    assert updated["__v"] == 1


def test_update_where_condition_guards_the_write(users_repo, make_user):
    user = make_user(reset_password_token="abc", reset_password_token_expires_at=utcnow() + timedelta(minutes=5))

    stale = users_repo.update_by_id(user["_id"], {"fullname": "Nope"}, where={"reset_password_token": "other"})
    applied = users_repo.update_by_id(user["_id"], {"fullname": "Yes"}, where={"reset_password_token": "abc"})

    assert stale is None
    assert applied["fullname"] == "Yes"


def test_update_revalidates_merged_document(users_repo, make_user):
    user = make_user()

    with pytest.raises(ValidationError):
        users_repo.update_by_id(user["_id"], {"email": "broken"})

    with pytest.raises(ValidationError):
        users_repo.update_by_id(user["_id"], {"password": "short"})


def test_update_ignores_immutable_and_unknown_fields(users_repo, make_user):
    user = make_user()
    created_at = users_repo.collection.docs[0]["created_at"]

    updated = users_repo.update_by_id(user["_id"], {
        "fullname": "Renamed",
        "created_at": utcnow() + timedelta(days=1),
        "__v": 42,
        "is_superuser": True,
    })

    assert updated["fullname"] == "Renamed"
    assert updated["created_at"] == created_at
    assert updated["__v"] == 1
    assert "is_superuser" not in updated


def test_update_unset_removes_fields(users_repo, make_user):
    user = make_user(reset_password_token="abc", reset_password_token_expires_at=utcnow())

    updated = users_repo.update_by_id(
        user["_id"], {}, unset=("reset_password_token", "reset_password_token_expires_at")
    )

    assert "reset_password_token" not in updated
    assert "reset_password_token_expires_at" not in updated


def test_update_of_inactive_user_finds_nothing(users_repo, make_user):
    user = make_user(active=False)

    assert users_repo.update_by_id(user["_id"], {"fullname": "Ghost"}) is None


def test_to_public_exposes_string_id_only(users_repo, make_user):
    user = make_user()

    public = users_repo.to_public(user)

    assert public["id"] == str(user["_id"])
    assert "_id" not in public
    assert "password" not in public
    assert "active" not in public
    assert "__v" not in public


def test_purge_expired_reset_tokens_clears_both_fields(users_repo, make_user):
    now = utcnow()
    expired = make_user(reset_password_token="old", reset_password_token_expires_at=now - timedelta(minutes=1))
    valid = make_user(reset_password_token="new", reset_password_token_expires_at=now + timedelta(minutes=30))

    assert users_repo.purge_expired_reset_tokens(now) == 1

    docs = {doc["_id"]: doc for doc in users_repo.collection.docs}
    assert "reset_password_token" not in docs[expired["_id"]]
    assert "reset_password_token_expires_at" not in docs[expired["_id"]]
    assert docs[valid["_id"]]["reset_password_token"] == "new"
