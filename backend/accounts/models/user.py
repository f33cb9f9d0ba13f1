from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class Role(str, Enum):
    USER = "user"
    GUIDE = "guide"
    LEAD_GUIDE = "lead-guide"
    ADMIN = "admin"


def _normalize_email(value: Any) -> Any:
    # Emails are unique case-insensitively, so they are stored lowercase
    if isinstance(value, str):
        return value.strip().lower()
    return value


class User(BaseModel):
    """
    User document schema (collection: users).

    Validates every write to the collection - the repository runs it on create
    and on the merged document on update. Passwords reach this schema in clear
    and are hashed afterwards by the repository's before-persist pipeline.
    """
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    fullname: str = Field(..., min_length=1)
    email: EmailStr
    photo: str = "default.jpg"
    # min_length applies to the plaintext - a bcrypt hash is always longer
    password: str = Field(..., min_length=8)
    role: Role = Role.USER
    active: bool = True
    last_login: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    reset_password_token: Optional[str] = None
    reset_password_token_expires_at: Optional[datetime] = None
    verification_token: Optional[str] = None
    verification_token_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)

    @field_validator("fullname", mode="before")
    @classmethod
    def strip_fullname(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


# Request payloads
# -----------------------------
# Wire format uses passwordConfirm / currentPassword, so those fields carry aliases

class SignupPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fullname: str
    email: str
    password: str
    password_confirm: str = Field(..., alias="passwordConfirm")


class SigninPayload(BaseModel):
    # Both optional so a missing field produces the friendly 400 message
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordPayload(BaseModel):
    email: str


class ResetPasswordPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    password: str
    password_confirm: str = Field(..., alias="passwordConfirm")


class UpdatePasswordPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword")
    password: str
    password_confirm: str = Field(..., alias="passwordConfirm")
