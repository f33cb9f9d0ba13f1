from typing import Any
from fastapi import APIRouter, Depends, Request, Response, status
from pymongo.database import Database
from accounts.core.config import settings
from accounts.core.database import get_db
from accounts.api.dependencies import SESSION_COOKIE, protect
from accounts.models.user import (
    ForgotPasswordPayload,
    ResetPasswordPayload,
    SigninPayload,
    SignupPayload,
    UpdatePasswordPayload,
)
from accounts.services.auth_service import AuthService
from accounts.services.notifications import PasswordResetNotifier, get_notifier

router = APIRouter(prefix="/users", tags=["auth"])

SIGNED_OUT_COOKIE_VALUE = "signed-out"
SIGNED_OUT_COOKIE_SECONDS = 10


def is_secure_request(request: Request) -> bool:
    """HTTPS directly, or behind a proxy that terminated TLS"""
    return (
        request.url.scheme == "https"
        or request.headers.get("x-forwarded-proto", "").lower() == "https"
    )


def send_token_response(
    request: Request,
    response: Response,
    user: dict[str, Any],
    token: str,
) -> dict[str, Any]:
    """Set the session cookie and build the token envelope"""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        max_age=settings.JWT_COOKIE_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=is_secure_request(request),
    )
    return {"status": "success", "token": token, "data": {"user": user}}

# REST api
# -----------------------------
# Store-touching handlers are plain functions (run in the threadpool)


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupPayload,
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
):
    """Register a new user and sign them in"""
    user, token = AuthService(db).signup(payload)
    return send_token_response(request, response, user, token)


@router.post("/signin")
def signin(
    payload: SigninPayload,
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
):
    """Exchange email and password for a session token"""
    user, token = AuthService(db).signin(payload.email, payload.password)
    return send_token_response(request, response, user, token)


@router.get("/signout")
async def signout(response: Response):
    """
    Sign out by overwriting the cookie with a dummy value that expires in 10 seconds.

    Tokens are stateless, so a copy of the token held elsewhere stays valid until it expires.
    """
    response.set_cookie(
        key=SESSION_COOKIE,
        value=SIGNED_OUT_COOKIE_VALUE,
        max_age=SIGNED_OUT_COOKIE_SECONDS,
        httponly=True,
    )
    return {"status": "success"}


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordPayload,
    request: Request,
    db: Database = Depends(get_db),
    notifier: PasswordResetNotifier = Depends(get_notifier),
):
    """Generate a password reset token and dispatch it to the user"""
    AuthService(db).forgot_password(
        payload.email,
        lambda raw_token: str(request.url_for("reset_password", token=raw_token)),
        notifier,
    )
    return {"status": "success", "message": "Token sent to email!"}


@router.patch("/reset-password/{token}", name="reset_password")
def reset_password(
    token: str,
    payload: ResetPasswordPayload,
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
):
    """Set a new password using a reset token and sign the user in"""
    user, session_token = AuthService(db).reset_password(token, payload)
    return send_token_response(request, response, user, session_token)


@router.patch("/update-my-password")
def update_my_password(
    payload: UpdatePasswordPayload,
    request: Request,
    response: Response,
    current_user: dict = Depends(protect),
    db: Database = Depends(get_db),
):
    """Change the password of the signed-in user - older tokens stop working"""
    user, token = AuthService(db).update_password(current_user, payload)
    return send_token_response(request, response, user, token)
