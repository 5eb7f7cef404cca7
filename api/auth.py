"""Auth API routes."""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Body, Cookie, Depends, HTTPException, Response, status
from fastapi.responses import RedirectResponse

from auth.config import AuthConfig
from auth.dependencies import (
    AuthServices,
    enforce_forgot_password_rate_limit,
    enforce_login_rate_limit,
    enforce_register_rate_limit,
    get_auth_config,
    get_auth_service,
    get_credential_service,
    get_current_user,
    get_oauth_service,
    get_services,
    set_cookie,
    to_http_exception,
)
from auth.exceptions import AuthException
from auth.schemas import (
    ApiResponse,
    AuthUser,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    GoogleAuthUrlResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
)
from auth.services.auth_service import AuthService
from auth.services.credential_service import CredentialService
from auth.services.oauth_service import OAuthService

router = APIRouter()

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
OAUTH_STATE_COOKIE = "oauth_state"
# Same body for known and unknown emails.
RESET_REQUESTED_MESSAGE = "If an account exists for that email, a password reset link has been sent"
VERIFICATION_REQUESTED_MESSAGE = "If the account needs verification, a new link has been sent"


def _set_session_cookies(response: Response, config: AuthConfig, tokens: dict) -> None:
    set_cookie(response, config, ACCESS_COOKIE, tokens["access_token"], max_age=config.access_token_ttl_seconds)
    set_cookie(response, config, REFRESH_COOKIE, tokens["refresh_token"], max_age=config.refresh_token_ttl_seconds)


def _clear_session_cookies(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(ACCESS_COOKIE, domain=config.COOKIE_DOMAIN)
    response.delete_cookie(REFRESH_COOKIE, domain=config.COOKIE_DOMAIN)


def _session_payload(result: dict) -> dict:
    return {
        "user": AuthUser.from_account(result["user"]).model_dump(),
        "access_token": result["tokens"]["access_token"],
    }


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    response: Response,
    _: None = Depends(enforce_register_rate_limit),
    config: AuthConfig = Depends(get_auth_config),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = await auth_service.register(payload.email, payload.password, payload.name)
    except AuthException as exc:
        raise to_http_exception(exc) from exc

    _set_session_cookies(response, config, result["tokens"])
    return ApiResponse(success=True, message="Registration successful", data=_session_payload(result))


@router.post("/login", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    response: Response,
    _: None = Depends(enforce_login_rate_limit),
    config: AuthConfig = Depends(get_auth_config),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = await auth_service.login(payload.email, payload.password)
    except AuthException as exc:
        raise to_http_exception(exc) from exc

    _set_session_cookies(response, config, result["tokens"])
    return ApiResponse(success=True, message="Login successful", data=_session_payload(result))


@router.post("/refresh-token", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def refresh_token(
    response: Response,
    payload: RefreshRequest | None = Body(default=None),
    refresh_token: str | None = Cookie(default=None),
    config: AuthConfig = Depends(get_auth_config),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    token = (payload.refresh_token if payload else None) or refresh_token
    try:
        result = await auth_service.refresh(token)
    except AuthException as exc:
        raise to_http_exception(exc) from exc

    _set_session_cookies(response, config, result["tokens"])
    return ApiResponse(success=True, message="Token refreshed", data=_session_payload(result))


@router.post("/logout", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout(
    response: Response,
    payload: RefreshRequest | None = Body(default=None),
    refresh_token: str | None = Cookie(default=None),
    config: AuthConfig = Depends(get_auth_config),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    token = (payload.refresh_token if payload else None) or refresh_token
    await auth_service.logout(token)
    _clear_session_cookies(response, config)
    return ApiResponse(success=True, message="Logged out successfully", data={})


@router.post("/forgot-password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def forgot_password(
    payload: ForgotPasswordRequest,
    _: None = Depends(enforce_forgot_password_rate_limit),
    credential_service: CredentialService = Depends(get_credential_service),
) -> ApiResponse:
    await credential_service.request_password_reset(payload.email)
    return ApiResponse(success=True, message=RESET_REQUESTED_MESSAGE, data={})


@router.put("/reset-password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def reset_password(
    payload: ResetPasswordRequest,
    response: Response,
    config: AuthConfig = Depends(get_auth_config),
    services: AuthServices = Depends(get_services),
) -> ApiResponse:
    try:
        account = await services.credentials.reset_password(payload.token, payload.password)
    except AuthException as exc:
        raise to_http_exception(exc) from exc

    # Every older session was revoked; the caller gets a fresh one.
    result = {"user": account, "tokens": await services.tokens.issue_token_pair(account)}
    _set_session_cookies(response, config, result["tokens"])
    return ApiResponse(success=True, message="Password reset successful", data=_session_payload(result))


@router.get("/verify-email/{token}", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def verify_email(
    token: str,
    credential_service: CredentialService = Depends(get_credential_service),
) -> ApiResponse:
    try:
        await credential_service.verify_email(token)
    except AuthException as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(success=True, message="Email verified successfully", data={})


@router.post("/resend-verification", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def resend_verification(
    payload: ResendVerificationRequest,
    _: None = Depends(enforce_forgot_password_rate_limit),
    credential_service: CredentialService = Depends(get_credential_service),
) -> ApiResponse:
    await credential_service.resend_verification(payload.email)
    return ApiResponse(success=True, message=VERIFICATION_REQUESTED_MESSAGE, data={})


@router.put("/change-password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def change_password(
    payload: ChangePasswordRequest,
    refresh_token: str | None = Cookie(default=None),
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        await auth_service.change_password(
            current_user["id"],
            payload.current_password,
            payload.new_password,
            refresh_token=refresh_token,
        )
    except AuthException as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(success=True, message="Password updated successfully", data={})


@router.get("/me", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def me(current_user: dict = Depends(get_current_user)) -> ApiResponse:
    return ApiResponse(
        success=True,
        message="User retrieved",
        data={"user": AuthUser.from_account(current_user).model_dump()},
    )


@router.get("/google/login", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def google_login(
    response: Response,
    config: AuthConfig = Depends(get_auth_config),
    oauth_service: OAuthService = Depends(get_oauth_service),
) -> ApiResponse:
    try:
        result = oauth_service.generate_auth_url()
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    set_cookie(response, config, key=OAUTH_STATE_COOKIE, value=result["state"], max_age=600)

    return ApiResponse(
        success=True,
        message="Google OAuth URL generated",
        data=GoogleAuthUrlResponse(**result).model_dump(),
    )


@router.get("/google/callback")
async def google_callback(
    code: str,
    state: str,
    oauth_state: str | None = Cookie(default=None),
    config: AuthConfig = Depends(get_auth_config),
    oauth_service: OAuthService = Depends(get_oauth_service),
):
    try:
        if not oauth_state:
            raise AuthException("Missing OAuth state. Please retry.", status_code=400)
        if oauth_state != state:
            raise AuthException("Invalid OAuth state.", status_code=400)

        result = await oauth_service.handle_google_callback(code)

        new_user = "true" if result.get("is_new_user") else "false"
        redirect_url = (
            f"{config.FRONTEND_URL}/auth/callback?auth=success&new_user={new_user}"
            f"#access_token={quote(result['tokens']['access_token'])}"
        )
        redirect_response = RedirectResponse(url=redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        _set_session_cookies(redirect_response, config, result["tokens"])
        redirect_response.delete_cookie(OAUTH_STATE_COOKIE, domain=config.COOKIE_DOMAIN)
        return redirect_response
    except AuthException as exc:
        error_message = quote(exc.message)
        redirect_url = f"{config.FRONTEND_URL}/login?auth=error&message={error_message}"
        error_response = RedirectResponse(url=redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        error_response.delete_cookie(OAUTH_STATE_COOKIE, domain=config.COOKIE_DOMAIN)
        return error_response
