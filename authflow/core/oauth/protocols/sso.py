"""
Signed-payload SSO verifier (Discourse-style "sso provider").

Flow:
1. Sign in: random nonce; payload `nonce=<hex>&return_sso_url=<callback>` is base64-encoded
   and HMAC-signed with the provider secret; HMAC(nonce) is kept in a short-lived cookie
2. The SSO server authenticates the user and redirects back with `sso` and `sig`
3. Callback: signature first, then nonce against the cookie, then the identity fields
"""

from typing import TYPE_CHECKING, Dict
from urllib.parse import quote, unquote

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import ProviderConfig, ProviderKind
from authflow.core.oauth.nonce import NonceBinder
from authflow.core.oauth.protocols.base import Account, AuthProof, BaseVerifier, Profile
from authflow.core.oauth.signed_payload import SignedPayloadCodec

if TYPE_CHECKING:
    from authflow.core.options import AuthOptions
    from authflow.schemas.callback import CallbackRequest

LOG_PREFIX = "[SSO]"

REQUIRED_FIELDS = ("external_id", "email", "username")


class SSOVerifier(BaseVerifier):
    """Signed-payload SSO verifier."""

    kind = ProviderKind.SSO

    def _secret(self, provider: ProviderConfig) -> str:
        if not provider.secret:
            raise CallbackError(ErrorCode.CONFIGURATION, f"SSO provider {provider.id} has no secret")
        return provider.secret

    def _nonce_binder(self, provider: ProviderConfig, options: "AuthOptions") -> NonceBinder:
        return NonceBinder(self._secret(provider), options.settings.nonce_cookie_name)

    async def signin_url(self, provider: ProviderConfig, options: "AuthOptions", jar: CookieJar) -> str:
        if not provider.url:
            raise CallbackError(ErrorCode.CONFIGURATION, f"SSO provider {provider.id} has no url")

        nonce = self._nonce_binder(provider, options).bind(jar, options.settings.nonce_max_age)
        payload_b64, signature = SignedPayloadCodec(self._secret(provider)).sign(
            {"nonce": nonce, "return_sso_url": options.callback_endpoint(provider.id)}
        )

        logger.info(f"{LOG_PREFIX} Redirecting to {provider.id} for sign in")
        return f"{provider.url.rstrip('/')}/session/sso_provider?sso={quote(payload_b64, safe='')}&sig={signature}"

    async def verify(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        options: "AuthOptions",
        jar: CookieJar,
    ) -> AuthProof:
        binder = self._nonce_binder(provider, options)
        sso = request.query.get("sso")
        sig = request.query.get("sig")

        # The binding is cleared on every attempt, whichever check fails
        if not sso or not sig:
            jar.pop(binder.cookie_name)
            raise CallbackError(ErrorCode.MISSING_PARAMETERS, "Missing sso / sig query")

        try:
            fields = SignedPayloadCodec(self._secret(provider)).verify(unquote(sso), sig)
        except CallbackError:
            jar.pop(binder.cookie_name)
            raise

        if not binder.consume_and_verify(fields.get("nonce"), jar):
            raise CallbackError(ErrorCode.NONCE_MISMATCH, "Non-matching nonce")

        missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
        if missing:
            raise CallbackError(ErrorCode.INCOMPLETE_PROFILE, f"Missing {', '.join(missing)} in payload")

        return AuthProof(profile=self._profile(fields), account=self._account(provider, fields))

    def _profile(self, fields: Dict[str, str]) -> Profile:
        known = {"nonce", "external_id", "email", "username", "name", "avatar_url", "admin", "moderator", "return_sso_url"}
        return Profile(
            id=fields["external_id"],
            email=fields["email"],
            name=fields.get("name") or fields["username"],
            image=fields.get("avatar_url") or "",
            username=fields["username"],
            admin=fields.get("admin") == "true",
            moderator=fields.get("moderator") == "true",
            extra={k: v for k, v in fields.items() if k not in known},
        )

    def _account(self, provider: ProviderConfig, fields: Dict[str, str]) -> Account:
        return Account(
            id=fields["external_id"],
            provider_id=provider.id,
            kind=ProviderKind.SSO,
            provider_account_id=fields["external_id"],
        )
