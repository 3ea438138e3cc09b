"""
Sign-in API endpoints.

- GET  /auth/providers - enabled providers (no secrets)
- GET  /auth/signin/{provider} - start an SSO or OAuth sign in
- POST /auth/signin/{provider} - send an email sign-in link
- GET|POST /auth/callback/{provider} - complete a sign in
- GET  /auth/signin, /auth/error, /auth/verify-request - landing endpoints

The callback endpoint is a thin boundary: it turns the HTTP request into a
`CallbackRequest`, runs the orchestrator and renders the outcome as a 302.
"""

from typing import Any, Dict, List, Optional, cast

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from loguru import logger
from pydantic import BaseModel

from authflow.common.exceptions import BadRequestException, CallbackError, ErrorCode, NotFoundException
from authflow.common.response import error_response, success_response
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import ProviderKind
from authflow.core.oauth.factory import get_verifier
from authflow.core.oauth.protocols.email import EmailVerifier
from authflow.core.options import AuthOptions
from authflow.schemas.callback import CallbackOutcome, CallbackRequest
from authflow.services.callback_service import CallbackOrchestrator

LOG_PREFIX = "[AuthAPI]"
router = APIRouter(prefix="/v1/auth", tags=["Auth"])


def get_auth_options(request: Request) -> AuthOptions:
    """Options are built once by the app factory and stored on app.state."""
    return request.app.state.auth_options


# ==================== Response Models ====================


class ProviderInfo(BaseModel):
    """Provider info (no sensitive fields)."""

    id: str
    kind: str
    display_name: str
    icon: str
    signin_url: str
    callback_url: str


class ProvidersResponse(BaseModel):
    providers: List[ProviderInfo]


# ==================== API Endpoints ====================


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(options: AuthOptions = Depends(get_auth_options)) -> ProvidersResponse:
    """
    List enabled providers.

    Used by the frontend to render sign-in buttons.
    """
    return ProvidersResponse(providers=[ProviderInfo(**_provider_info(options, pid)) for pid in options.providers])


@router.get("/signin/{provider}")
async def signin(
    provider: str,
    request: Request,
    callback_url: Optional[str] = Query(None, alias="callbackUrl", description="Redirect URL after sign in"),
    options: AuthOptions = Depends(get_auth_options),
) -> RedirectResponse:
    """
    Start a redirect-based sign in (SSO or OAuth).

    The nonce/state binding and the verified callback URL go into cookies; the user is
    sent to the provider.
    """
    provider_config = options.get_provider(provider)
    if provider_config is None:
        raise NotFoundException(f"Provider '{provider}' not found")

    jar = CookieJar(request.cookies, options.settings)
    _remember_callback_url(options, jar, callback_url)

    try:
        url = await get_verifier(provider_config.kind).signin_url(provider_config, options, jar)
    except CallbackError as e:
        logger.error(f"{LOG_PREFIX} Cannot start sign in with {provider}: {e.code.value} - {e.message}")
        return _redirect(options.error_redirect(e.code, provider_config), jar)

    return _redirect(url, jar)


@router.post("/signin/{provider}")
async def signin_email(
    provider: str,
    request: Request,
    options: AuthOptions = Depends(get_auth_options),
) -> RedirectResponse:
    """Send an email sign-in link and redirect to the verify-request page."""
    provider_config = options.get_provider(provider)
    if provider_config is None:
        raise NotFoundException(f"Provider '{provider}' not found")
    if provider_config.kind is not ProviderKind.EMAIL:
        raise BadRequestException(f"Provider '{provider}' does not sign in by email")

    body = await _read_body(request)
    email = str(body.get("email") or "").strip().lower()
    if not email:
        raise BadRequestException("Email is required")

    jar = CookieJar(request.cookies, options.settings)
    _remember_callback_url(options, jar, _str_or_none(body.get("callbackUrl")))

    verifier = cast(EmailVerifier, get_verifier(ProviderKind.EMAIL))
    try:
        await verifier.send_verification(provider_config, options, email)
    except CallbackError as e:
        return _redirect(options.error_redirect(e.code, provider_config), jar)
    except Exception as e:
        logger.opt(exception=e).error(f"{LOG_PREFIX} Sending sign-in link with {provider} failed")
        return _redirect(options.error_redirect(ErrorCode.INTERNAL_ERROR, provider_config), jar)

    return _redirect(f"{options.settings.base_url}/verify-request", jar)


@router.api_route("/callback/{provider}", methods=["GET", "POST"])
async def callback(
    provider: str,
    request: Request,
    options: AuthOptions = Depends(get_auth_options),
) -> RedirectResponse:
    """
    Complete a sign in.

    Always answers with a redirect: the callback URL on success, the sign-in or error
    page otherwise.
    """
    body: Dict[str, Any] = {}
    if request.method == "POST":
        body = await _read_body(request)

    callback_request = CallbackRequest(
        provider_id=provider,
        method=request.method,
        query=dict(request.query_params),
        body=body,
        cookies=dict(request.cookies),
        callback_url=_str_or_none(body.get("callbackUrl")),
    )

    outcome = await CallbackOrchestrator(options).handle(callback_request)
    return _render(outcome)


@router.get("/signin")
async def signin_page(options: AuthOptions = Depends(get_auth_options)) -> Dict[str, Any]:
    """Default sign-in page: the providers to choose from."""
    return success_response(data={"providers": [_provider_info(options, pid) for pid in options.providers]})


@router.get("/verify-request")
async def verify_request_page() -> Dict[str, Any]:
    return success_response(message="Check your email: a sign-in link has been sent")


@router.get("/error")
async def error_page(
    error: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
) -> Dict[str, Any]:
    """Default error page: the sanitized error code as a JSON envelope."""
    return error_response(message=error or "Unknown", data={"error": error, "provider": provider})


# ==================== Helpers ====================


def _provider_info(options: AuthOptions, provider_id: str) -> Dict[str, Any]:
    info = options.providers[provider_id].public_info()
    info["signin_url"] = f"{options.settings.base_url}/signin/{provider_id}"
    info["callback_url"] = options.callback_endpoint(provider_id)
    return info


def _remember_callback_url(options: AuthOptions, jar: CookieJar, callback_url: Optional[str]) -> None:
    verified = options.verify_callback_url(callback_url)
    if verified:
        jar.set(options.settings.callback_url_cookie_name, verified)
    elif callback_url:
        logger.warning(f"{LOG_PREFIX} Ignoring callback URL outside the site: {callback_url}")


async def _read_body(request: Request) -> Dict[str, Any]:
    """JSON or form body; an unreadable body is treated as empty."""
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            data = await request.json()
            return data if isinstance(data, dict) else {}
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    except ValueError as e:
        logger.warning(f"{LOG_PREFIX} Unreadable request body: {e}")
        return {}


def _redirect(url: str, jar: CookieJar) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=302)
    for directive in jar.directives:
        directive.apply(response)
    return response


def _render(outcome: CallbackOutcome) -> RedirectResponse:
    response = RedirectResponse(url=outcome.redirect_url, status_code=302)
    for directive in outcome.cookies:
        directive.apply(response)
    return response


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None
