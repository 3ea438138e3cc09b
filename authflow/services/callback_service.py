"""
Callback orchestration - from an inbound callback to one terminal redirect.

Start -> Verifying -> Authorizing -> Issuing -> Done. Every failure, classified or not,
ends in a `CallbackOutcome` pointing at the sanitized error redirect; nothing raises
past `handle`.
"""

from typing import Any, Dict, Optional

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.events import SIGNIN
from authflow.core.oauth.config import ProviderConfig, ProviderKind
from authflow.core.oauth.factory import get_verifier
from authflow.core.options import AuthOptions
from authflow.models.auth import User
from authflow.schemas.callback import CallbackOutcome, CallbackRequest, OutcomeStatus, SessionArtifact
from authflow.services.authorizer import SigninAuthorizer
from authflow.services.session_issuer import SessionIssuer

LOG_PREFIX = "[Callback]"

# Outcomes that send the user back rather than report a fault
REJECTED_CODES = frozenset({ErrorCode.ACCESS_DENIED, ErrorCode.NO_PROFILE})


class CallbackOrchestrator:
    """Completes a sign in for one callback request."""

    def __init__(self, options: AuthOptions):
        self.options = options
        self.authorizer = SigninAuthorizer(options.callbacks, options.settings.collaborator_timeout)

    async def handle(self, request: CallbackRequest) -> CallbackOutcome:
        jar = CookieJar(request.cookies, self.options.settings)
        provider = self.options.get_provider(request.provider_id)

        try:
            if provider is None:
                raise CallbackError(ErrorCode.CONFIGURATION, f"Unknown provider: {request.provider_id}")
            return await self._run(request, provider, jar)
        except CallbackError as e:
            return self._failed(e, provider, jar)
        except Exception as e:
            logger.exception(f"{LOG_PREFIX} Unhandled error for provider {request.provider_id}: {e}")
            return self._failed(CallbackError(ErrorCode.INTERNAL_ERROR, str(e)), provider, jar)

    async def _run(self, request: CallbackRequest, provider: ProviderConfig, jar: CookieJar) -> CallbackOutcome:
        # 1. Verifying
        verifier = get_verifier(provider.kind)
        proof = await verifier.verify(request, provider, self.options, jar)
        logger.debug(f"{LOG_PREFIX} Verified {provider.id} identity {proof.account.key}")

        # 2. Authorizing
        await self.authorizer.authorize(proof)

        # 3. Issuing
        issuer = SessionIssuer(self.options, jar)
        is_new_user: Optional[bool]
        if provider.kind is ProviderKind.CREDENTIALS:
            user, is_new_user = User.from_profile(proof.profile), None
        else:
            user, is_new_user = await issuer.create_or_resolve_user(proof)
        session = await issuer.issue(user, proof, is_new_user)

        # 4. Notify
        event: Dict[str, Any] = {"user": user, "account": proof.account}
        if is_new_user is not None:
            event["isNewUser"] = is_new_user
        await self.options.events.dispatch(SIGNIN, event)

        logger.info(f"{LOG_PREFIX} Sign in completed via {provider.id} for user {user.id} (new={is_new_user})")
        return self._success(request, jar, session, bool(is_new_user))

    def _success(
        self,
        request: CallbackRequest,
        jar: CookieJar,
        session: SessionArtifact,
        is_new_user: bool,
    ) -> CallbackOutcome:
        settings = self.options.settings
        # The callback URL cookie stays set so the new-user page can resume the journey
        if is_new_user and settings.pages_new_user:
            redirect_url = settings.pages_new_user
        else:
            callback_url = request.callback_url or jar.get(settings.callback_url_cookie_name)
            redirect_url = self.options.verify_callback_url(callback_url) or settings.site

        return CallbackOutcome(
            status=OutcomeStatus.SUCCESS,
            redirect_url=redirect_url,
            cookies=list(jar.directives),
            session=session,
        )

    def _failed(self, error: CallbackError, provider: Optional[ProviderConfig], jar: CookieJar) -> CallbackOutcome:
        redirect_url = self.options.error_redirect(error.code, provider)
        provider_id = provider.id if provider else "?"
        if error.code is ErrorCode.INTERNAL_ERROR:
            logger.error(f"{LOG_PREFIX} {provider_id}: {error.code.value} - {error.message}")
        else:
            logger.warning(f"{LOG_PREFIX} {provider_id}: {error.code.value} - {error.message}")

        return CallbackOutcome(
            status=OutcomeStatus.REJECTED if error.code in REJECTED_CODES else OutcomeStatus.FAILED,
            redirect_url=redirect_url,
            cookies=jar.without(self.options.settings.session_cookie_name),
            error=error.code,
        )
