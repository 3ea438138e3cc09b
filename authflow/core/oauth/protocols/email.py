"""
Email magic-link verifier.

Sign in stores a single-use token through the adapter and mails a link to the callback;
the callback looks the token up, deletes it, and resolves the user by email.
"""

from datetime import timedelta
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import ProviderConfig, ProviderKind
from authflow.core.oauth.protocols.base import Account, AuthProof, BaseVerifier, Profile
from authflow.core.security import generate_token
from authflow.models.auth import utcnow
from authflow.utils.hooks import call_hook, with_timeout

if TYPE_CHECKING:
    from authflow.core.options import AuthOptions
    from authflow.repositories.base import AuthAdapter
    from authflow.schemas.callback import CallbackRequest

LOG_PREFIX = "[EmailSignin]"


class EmailVerifier(BaseVerifier):
    """Email magic-link verifier."""

    kind = ProviderKind.EMAIL

    def _adapter(self, options: "AuthOptions") -> "AuthAdapter":
        if options.adapter is None:
            logger.error(f"{LOG_PREFIX} Email sign in requires an adapter")
            raise CallbackError(ErrorCode.CONFIGURATION, "Email sign in requires an adapter")
        return options.adapter

    async def send_verification(self, provider: ProviderConfig, options: "AuthOptions", email: str) -> str:
        """
        Create a verification request and deliver the sign-in link.

        Returns:
            The sign-in URL that was sent

        Raises:
            CallbackError: CONFIGURATION when there is no adapter or no way to deliver the link
        """
        adapter = self._adapter(options)
        timeout = options.settings.collaborator_timeout

        if provider.send_verification_request is None and not options.settings.debug:
            raise CallbackError(ErrorCode.CONFIGURATION, f"Email provider {provider.id} has no send_verification_request")

        token = generate_token(32)
        max_age = provider.max_age or options.settings.email_token_max_age
        expires = utcnow() + timedelta(seconds=max_age)
        await with_timeout(adapter.create_verification_request(email, token, expires), timeout)

        url = f"{options.callback_endpoint(provider.id)}?{urlencode({'email': email, 'token': token})}"

        if provider.send_verification_request is None:
            # Debug mode only: no mailer configured, surface the link in the log
            logger.info(f"{LOG_PREFIX} [DEV] Sign-in link for {email}: {url}")
        else:
            await call_hook(provider.send_verification_request, email, url, provider, timeout=timeout)
            logger.info(f"{LOG_PREFIX} Sign-in link sent to {email}")
        return url

    async def verify(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        options: "AuthOptions",
        jar: CookieJar,
    ) -> AuthProof:
        adapter = self._adapter(options)
        timeout = options.settings.collaborator_timeout

        token = request.query.get("token")
        email = request.query.get("email")
        if not token or not email:
            raise CallbackError(ErrorCode.VERIFICATION_FAILED, "Missing token or email")

        record = await with_timeout(adapter.get_verification_request(email, token), timeout)
        if record is None or record.is_expired():
            raise CallbackError(ErrorCode.VERIFICATION_FAILED, "Unknown or expired verification token")

        # Single use from here on, even if a later step fails
        await with_timeout(adapter.delete_verification_request(email, token), timeout)

        user = await with_timeout(adapter.get_user_by_email(email), timeout)
        if user is not None:
            profile = Profile(id=user.id, email=user.email, name=user.name, image=user.image)
        else:
            profile = Profile(email=email)

        account = Account(
            id=provider.id,
            provider_id=provider.id,
            kind=ProviderKind.EMAIL,
            provider_account_id=email,
        )
        return AuthProof(profile=profile, account=account)
