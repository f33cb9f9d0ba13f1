from datetime import datetime
from typing import Any, Optional
from accounts.core.security import get_password_hash
from accounts.models.user import User
from accounts.repositories.base import DocumentRepository, utcnow

RESET_TOKEN_FIELDS = ("reset_password_token", "reset_password_token_expires_at")


def hash_password(changes: dict[str, Any], is_new: bool) -> dict[str, Any]:
    """Replace a plaintext password with its bcrypt hash before it is written"""
    if "password" not in changes:
        return changes

    changes = dict(changes)
    changes["password"] = get_password_hash(changes["password"])
    if not is_new:
        # Tokens issued before this moment stop passing protect
        changes["password_changed_at"] = utcnow()
    return changes


class UserRepository(DocumentRepository):
    collection_name = "users"
    schema = User
    hidden_fields = ("password", "active")
    # Soft-deleted users are invisible to every read that goes through the repository
    default_filter = {"active": {"$ne": False}}
    before_persist = (hash_password,)

    def cast_value(self, field: str, raw: Any) -> Any:
        if field == "email" and isinstance(raw, str):
            raw = raw.strip().lower()
        return super().cast_value(field, raw)

    def find_by_email(self, email: str, *, include_hidden: bool = False) -> Optional[dict[str, Any]]:
        return self.find_one({"email": email.strip().lower()}, include_hidden=include_hidden)

    @staticmethod
    def reset_token_filter(hashed_token: str, now: datetime) -> dict[str, Any]:
        """Matches the holder of this reset token while it has not expired"""
        return {
            "reset_password_token": hashed_token,
            "reset_password_token_expires_at": {"$gt": now},
        }

    def purge_expired_reset_tokens(self, now: datetime) -> int:
        """Clear token and expiry together on every user whose token expired"""
        result = self.collection.update_many(
            {"reset_password_token_expires_at": {"$lte": now}},
            {"$unset": {field: "" for field in RESET_TOKEN_FIELDS}},
        )
        return result.modified_count
