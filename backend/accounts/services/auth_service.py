"""
Credential lifecycle: signup, signin, password reset and change, and session
resolution for protected routes.

Sessions are stateless JWTs. The only server-side invalidation is
password_changed_at: a token whose 'iat' is before it is rejected.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional
from pymongo.database import Database
from accounts.core.config import settings
from accounts.core.errors import (
    BadRequestError,
    CastError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from accounts.core.security import (
    create_access_token,
    decode_access_token,
    generate_reset_token,
    hash_reset_token,
    verify_password,
)
from accounts.models.user import (
    ResetPasswordPayload,
    Role,
    SignupPayload,
    UpdatePasswordPayload,
)
from accounts.repositories.base import utcnow
from accounts.repositories.users import RESET_TOKEN_FIELDS, UserRepository
from accounts.services.notifications import PasswordResetNotifier

logger = logging.getLogger(__name__)

PASSWORD_MISMATCH_MESSAGE = "password and passwordConfirm do not match"
INVALID_RESET_TOKEN_MESSAGE = "Token is invalid or has expired"
SELF_UPDATE_FIELDS = ("fullname", "email")


def changed_password_after(user: Mapping[str, Any], token_issued_at: float) -> bool:
    """True if the password changed after the token was issued"""
    changed_at: Optional[datetime] = user.get("password_changed_at")
    if not changed_at:
        return False
    if changed_at.tzinfo is None:
        # Stored datetimes are UTC
        changed_at = changed_at.replace(tzinfo=timezone.utc)
    return token_issued_at < changed_at.timestamp()


class AuthService:
    def __init__(self, db: Database) -> None:
        self.users = UserRepository(db)

    def _session(self, user: Mapping[str, Any]) -> tuple[dict[str, Any], str]:
        """Public user (password redacted) and a fresh token for it"""
        return self.users.to_public(user), create_access_token(str(user["_id"]))

    def signup(self, payload: SignupPayload) -> tuple[dict[str, Any], str]:
        if payload.password != payload.password_confirm:
            raise BadRequestError(PASSWORD_MISMATCH_MESSAGE)

        # Role is never taken from the request - self-registration always yields 'user'
        user = self.users.create({
            "fullname": payload.fullname,
            "email": payload.email,
            "password": payload.password,
            "role": Role.USER,
            "last_login": utcnow(),
        })
        logger.info(f"New user signed up: {user['email']}")
        return self._session(user)

    def signin(self, email: Optional[str], password: Optional[str]) -> tuple[dict[str, Any], str]:
        if not email or not password:
            raise BadRequestError("Please provide email and password!")

        # Password is a hidden field - ask for it explicitly
        user = self.users.find_by_email(email, include_hidden=True)

        # Same message for unknown email and wrong password - no email enumeration
        if user is None or not verify_password(password, user.get("password")):
            logger.warning(f"Failed signin attempt for {email}")
            raise UnauthorizedError("Incorrect email or password")

        updated = self.users.update_by_id(user["_id"], {"last_login": utcnow()})
        return self._session(updated or user)

    def forgot_password(
        self,
        email: str,
        build_reset_url: Callable[[str], str],
        notifier: PasswordResetNotifier,
    ) -> str:
        """Store a hashed reset token on the user and dispatch the raw one"""
        user = self.users.find_by_email(email)
        if user is None:
            raise ForbiddenError("There is no user with this email address.")

        raw_token, hashed_token = generate_reset_token()
        expires_at = utcnow() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        self.users.update_by_id(user["_id"], {
            "reset_password_token": hashed_token,
            "reset_password_token_expires_at": expires_at,
        })

        try:
            notifier.send_password_reset(self.users.to_public(user), build_reset_url(raw_token))
        except Exception:
            logger.exception(f"Password reset dispatch failed for {user['email']}")
            # Token and expiry are cleared together
            self.users.update_by_id(user["_id"], {}, unset=RESET_TOKEN_FIELDS)
            raise InternalError("There was an error sending the email. Try again later!")

        return raw_token

    def reset_password(self, raw_token: str, payload: ResetPasswordPayload) -> tuple[dict[str, Any], str]:
        if payload.password != payload.password_confirm:
            raise BadRequestError(PASSWORD_MISMATCH_MESSAGE)

        # Stored tokens are sha256 digests - hash the raw token the same way to look it up
        token_filter = self.users.reset_token_filter(hash_reset_token(raw_token), utcnow())
        user = self.users.find_one(token_filter)
        if user is None:
            raise BadRequestError(INVALID_RESET_TOKEN_MESSAGE)

        # The write matches on the token too, so a token is consumed at most once
        # The repository hashes the password and records password_changed_at
        updated = self.users.update_by_id(
            user["_id"],
            {"password": payload.password},
            unset=RESET_TOKEN_FIELDS,
            where=token_filter,
        )
        if updated is None:
            raise BadRequestError(INVALID_RESET_TOKEN_MESSAGE)

        logger.info(f"Password reset completed for {updated['email']}")
        return self._session(updated)

    def update_password(
        self,
        user: Mapping[str, Any],
        payload: UpdatePasswordPayload,
    ) -> tuple[dict[str, Any], str]:
        if payload.password != payload.password_confirm:
            raise BadRequestError(PASSWORD_MISMATCH_MESSAGE)

        stored = self.users.find_by_id(user["_id"], include_hidden=True)
        if stored is None or not verify_password(payload.current_password, stored.get("password")):
            raise UnauthorizedError("Your current password is wrong.")

        updated = self.users.update_by_id(user["_id"], {"password": payload.password})
        if updated is None:
            raise NotFoundError("No document found with that ID")
        return self._session(updated)

    def resolve_session(self, token: Optional[str]) -> dict[str, Any]:
        """
        Return the user a bearer token belongs to.

        Raises UnauthorizedError when there is no token, the user no longer
        exists (or was deactivated), or the password changed after issue.
        Expired and invalid tokens raise the token errors, which the error
        translator maps to 401 as well.
        """
        if not token:
            raise UnauthorizedError("Please login to get access!")

        payload = decode_access_token(token)

        try:
            user = self.users.find_by_id(payload.subject)
        except CastError:
            user = None
        if user is None:
            raise UnauthorizedError("The user associated with this token no longer exists.")

        if changed_password_after(user, payload.issued_at):
            raise UnauthorizedError("User recently changed password! Please log in again.")

        return user

    def update_me(self, user: Mapping[str, Any], body: Mapping[str, Any]) -> dict[str, Any]:
        if any(key in body for key in ("password", "passwordConfirm", "password_confirm")):
            raise BadRequestError(
                "This route is not for password updates. Please use /update-my-password."
            )

        changes = {key: body[key] for key in SELF_UPDATE_FIELDS if key in body}
        updated = self.users.update_by_id(user["_id"], changes)
        if updated is None:
            raise NotFoundError("No document found with that ID")
        return self.users.to_public(updated)

    def deactivate(self, user: Mapping[str, Any]) -> None:
        """Soft delete - the record stays but default reads no longer see it"""
        self.users.update_by_id(user["_id"], {"active": False})
        logger.info(f"User deactivated: {user.get('email')}")
