"""
Credentials (username/password) verifier.

Only for POST callbacks and only with JWT sessions. The provider's `authorize` decides:
a user dict signs in, a falsy result is bad credentials, and an exception is treated as
a configuration problem rather than bad credentials.
"""

from typing import TYPE_CHECKING, Any, Dict, Mapping

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import ProviderConfig, ProviderKind
from authflow.core.oauth.protocols.base import Account, AuthProof, BaseVerifier, Profile
from authflow.utils.hooks import call_hook

if TYPE_CHECKING:
    from authflow.core.options import AuthOptions
    from authflow.schemas.callback import CallbackRequest

LOG_PREFIX = "[Credentials]"

BODY_METHODS = frozenset({"POST"})


class CredentialsVerifier(BaseVerifier):
    """Credentials verifier."""

    kind = ProviderKind.CREDENTIALS

    async def verify(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        options: "AuthOptions",
        jar: CookieJar,
    ) -> AuthProof:
        if request.method.upper() not in BODY_METHODS:
            raise CallbackError(ErrorCode.MISSING_PARAMETERS, f"Credentials callback needs a POST body, got {request.method}")

        if not options.settings.session_jwt:
            logger.error(f"{LOG_PREFIX} Signing in with credentials is only supported with JWT sessions")
            raise CallbackError(ErrorCode.CONFIGURATION, "Credentials require JWT sessions")

        if provider.authorize is None:
            logger.error(f"{LOG_PREFIX} Provider {provider.id} must define authorize() to use credentials")
            raise CallbackError(ErrorCode.CONFIGURATION, "Credentials provider has no authorize()")

        credentials: Dict[str, Any] = dict(request.body)

        try:
            user = await call_hook(provider.authorize, credentials, timeout=options.settings.collaborator_timeout)
        except Exception as e:
            logger.opt(exception=e).error(f"{LOG_PREFIX} authorize() for {provider.id} raised")
            raise CallbackError(ErrorCode.CONFIGURATION, "authorize() raised") from e

        if not user:
            raise CallbackError(ErrorCode.INVALID_CREDENTIALS, "authorize() returned no user")

        if isinstance(user, Mapping):
            profile = Profile.from_mapping(user)
        elif hasattr(user, "__dict__"):
            profile = Profile.from_mapping(vars(user))
        else:
            raise CallbackError(ErrorCode.CONFIGURATION, f"authorize() returned {type(user).__name__}, expected a user")

        account = Account(id=provider.id, provider_id=provider.id, kind=ProviderKind.CREDENTIALS)
        return AuthProof(profile=profile, account=account, raw=credentials)
