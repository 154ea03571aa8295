"""Authentication routes (register, verify, login, password reset, OAuth)."""

import json
import logging
import os
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from api.dependencies import (
    get_apple_oauth,
    get_google_oauth,
    get_notifier,
    get_password_hasher,
    get_user_repo,
)
from api.models import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailRequest,
)
from api.security import get_current_user_required, to_response
from domain.model.assertion import LinkOutcome
from domain.model.errors import DomainError
from domain.model.user import TokenPurpose, User
from port.notifier import NotifierPort
from port.oauth_provider import OAuthProviderPort
from port.password_hasher import PasswordHasher
from port.user_repository import UserRepository
from services import auth_service, identity_service
from services.token_service import issue_bearer_token, issue_oauth_state, verify_oauth_state
from utils.logging import mask_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    repo: UserRepository = Depends(get_user_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
    notifier: NotifierPort = Depends(get_notifier),
):
    """Register with email and password.

    A new account gets 201 and a verification email. An existing Google/Apple
    account gets 200 and a link-account email instead.
    """
    user, outcome = auth_service.register(
        repo, hasher, notifier, request.name, request.email, request.password,
    )

    if outcome == LinkOutcome.PENDING_VERIFICATION_LINK:
        body = MessageResponse(
            message="Account exists with social login. Check your email to link a password.",
            requires_verification=True,
            linking_account=True,
        )
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())

    return MessageResponse(
        message="Registration successful. Please check your email to verify your account.",
        requires_verification=True,
    )


@router.post("/verify-email", response_model=AuthResponse)
async def verify_email(
    request: VerifyEmailRequest,
    repo: UserRepository = Depends(get_user_repo),
    notifier: NotifierPort = Depends(get_notifier),
):
    user = identity_service.consume_verification_token(
        repo, request.token, TokenPurpose(request.action), notifier=notifier,
    )
    message = (
        "Password linked to your account"
        if request.action == TokenPurpose.LINK_ACCOUNT.value
        else "Email verified successfully"
    )
    return AuthResponse(message=message, token=issue_bearer_token(user.id), user=to_response(user))


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    request: EmailRequest,
    repo: UserRepository = Depends(get_user_repo),
    notifier: NotifierPort = Depends(get_notifier),
):
    identity_service.resend_verification(repo, notifier, request.email)
    return MessageResponse(message="Verification email sent")


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    repo: UserRepository = Depends(get_user_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    """Login user and return JWT token.

    Raises (via the domain error handler):
        401 invalid credentials, 400 OAuth-only account, 423 locked, 403 unverified
    """
    user, _ = auth_service.authenticate_password(repo, hasher, request.email, request.password)
    return AuthResponse(message="Login successful", token=issue_bearer_token(user.id), user=to_response(user))


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: EmailRequest,
    repo: UserRepository = Depends(get_user_repo),
    notifier: NotifierPort = Depends(get_notifier),
):
    auth_service.request_password_reset(repo, notifier, request.email)
    # Same answer whether or not the account exists
    return MessageResponse(message="If an account exists, a reset link has been sent")


@router.post("/reset-password", response_model=AuthResponse)
async def reset_password(
    request: ResetPasswordRequest,
    repo: UserRepository = Depends(get_user_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    user = auth_service.reset_password(repo, hasher, request.token, request.password)
    return AuthResponse(message="Password updated", token=issue_bearer_token(user.id), user=to_response(user))


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserResponse = Depends(get_current_user_required)):
    """Get current authenticated user info."""
    return current_user


# ── OAuth ────────────────────────────────────────────────


def _success_redirect(user: User) -> RedirectResponse:
    params = {"token": issue_bearer_token(user.id)}
    if user.needs_password_setup:
        params["action"] = "set-password"
    return RedirectResponse(f"{CLIENT_URL}/auth/success?{urlencode(params)}", status_code=status.HTTP_302_FOUND)


def _failure_redirect(provider: str) -> RedirectResponse:
    return RedirectResponse(
        f"{CLIENT_URL}/login?{urlencode({'error': f'{provider}_auth_failed'})}",
        status_code=status.HTTP_302_FOUND,
    )


async def _complete_oauth(
    provider: str,
    adapter: OAuthProviderPort,
    repo: UserRepository,
    hasher: PasswordHasher,
    notifier: NotifierPort,
    code: str | None,
    state: str | None,
    error: str | None = None,
    form_user: dict | None = None,
) -> RedirectResponse:
    if error or not code:
        logger.warning("OAuth callback without code", extra={"provider": provider, "error": error})
        return _failure_redirect(provider)
    if not verify_oauth_state(state, provider):
        logger.warning("OAuth state mismatch", extra={"provider": provider})
        return _failure_redirect(provider)

    try:
        assertion = await adapter.assert_identity(code, form_user=form_user)
        user, outcome = identity_service.resolve_assertion(repo, hasher, notifier, assertion)
    except DomainError as e:
        logger.warning(
            "OAuth sign-in failed",
            extra={"provider": provider, "error": type(e).__name__, "message": str(e)[:200]},
        )
        return _failure_redirect(provider)

    logger.info(
        "OAuth sign-in",
        extra={"provider": provider, "userId": user.id, "outcome": outcome.value, "email": mask_email(user.email)},
    )
    return _success_redirect(user)


@router.get("/google")
async def google_login(adapter: OAuthProviderPort = Depends(get_google_oauth)):
    return RedirectResponse(adapter.authorization_url(issue_oauth_state("google")), status_code=status.HTTP_302_FOUND)


@router.get("/google/callback")
async def google_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    adapter: OAuthProviderPort = Depends(get_google_oauth),
    repo: UserRepository = Depends(get_user_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
    notifier: NotifierPort = Depends(get_notifier),
):
    return await _complete_oauth("google", adapter, repo, hasher, notifier, code, state, error)


@router.get("/apple")
async def apple_login(adapter: OAuthProviderPort = Depends(get_apple_oauth)):
    return RedirectResponse(adapter.authorization_url(issue_oauth_state("apple")), status_code=status.HTTP_302_FOUND)


def _parse_form_user(raw: str | None) -> dict | None:
    """Apple posts the name as a JSON string, first authorization only."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed Apple user payload")
        return None
    return parsed if isinstance(parsed, dict) else None


@router.api_route("/apple/callback", methods=["GET", "POST"])
async def apple_callback(
    request: Request,
    adapter: OAuthProviderPort = Depends(get_apple_oauth),
    repo: UserRepository = Depends(get_user_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
    notifier: NotifierPort = Depends(get_notifier),
):
    if request.method == "POST":
        form = await request.form()
        fields = {key: form.get(key) for key in ("code", "state", "error", "user")}
    else:
        fields = {key: request.query_params.get(key) for key in ("code", "state", "error", "user")}

    return await _complete_oauth(
        "apple", adapter, repo, hasher, notifier,
        code=fields["code"],
        state=fields["state"],
        error=fields["error"],
        form_user=_parse_form_user(fields["user"]),
    )
