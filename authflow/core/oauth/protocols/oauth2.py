"""
Standard OAuth2 authorization-code verifier.

The code exchange and profile fetch belong to an `OAuthTransport`; the verifier only
checks the state binding and classifies the transport result:
1. state param vs state cookie (one-time binding)
2. transport: code -> access_token -> userinfo
3. no profile -> NO_PROFILE (ambiguous cancel/error, user goes back to sign in)
"""

import asyncio
import base64
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, cast
from urllib.parse import parse_qs, urlencode

import httpx
from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import ProviderConfig, ProviderKind
from authflow.core.oauth.nonce import NonceBinder
from authflow.core.oauth.protocols.base import Account, AuthProof, BaseVerifier, Profile
from authflow.utils.hooks import with_timeout

if TYPE_CHECKING:
    from authflow.core.options import AuthOptions
    from authflow.schemas.callback import CallbackRequest

LOG_PREFIX = "[OAuth2]"


class OAuthTransport(ABC):
    """Code exchange and profile fetch for OAuth providers."""

    @abstractmethod
    def authorization_url(self, provider: ProviderConfig, redirect_uri: str, state: Optional[str]) -> str:
        ...

    @abstractmethod
    async def get_user_info(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        redirect_uri: str,
    ) -> Optional[AuthProof]:
        """
        Returns:
            AuthProof, or None when the provider gave no profile (e.g. the user cancelled)

        Raises:
            Exception: Transport or provider failure
        """


class HttpxOAuthTransport(OAuthTransport):
    """OAuth2 transport over httpx."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def authorization_url(self, provider: ProviderConfig, redirect_uri: str, state: Optional[str]) -> str:
        if not provider.authorize_url:
            raise CallbackError(ErrorCode.CONFIGURATION, f"No authorization URL configured for {provider.id}")

        params = {
            "client_id": provider.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": provider.scope,
        }
        if state:
            params["state"] = state

        # Google needs access_type=offline to return a refresh_token
        if provider.id == "google":
            params["access_type"] = "offline"
            params["prompt"] = "consent"

        return f"{provider.authorize_url}?{urlencode(params)}"

    async def get_user_info(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        redirect_uri: str,
    ) -> Optional[AuthProof]:
        error = request.query.get("error")
        if error:
            logger.warning(f"{LOG_PREFIX} Provider {provider.id} returned error: {error} - {request.query.get('error_description')}")
            return None

        code = request.query.get("code")
        if not code:
            logger.warning(f"{LOG_PREFIX} Callback for {provider.id} has no authorization code")
            return None

        tokens = await self._exchange_code_for_tokens(provider, code, redirect_uri)
        access_token = tokens.get("access_token")
        if not access_token:
            raise ValueError("No access token in response")

        raw_info = await self._fetch_userinfo(provider, access_token)
        return self.parse_user_info(provider, raw_info, tokens)

    def parse_user_info(
        self,
        provider: ProviderConfig,
        raw_info: Dict[str, Any],
        tokens: Dict[str, Any],
    ) -> Optional[AuthProof]:
        """Map raw userinfo through the provider's user_mapping."""
        mapping = provider.user_mapping
        provider_account_id = str(raw_info.get(mapping.get("id", "sub")) or "")
        if not provider_account_id:
            logger.error(f"{LOG_PREFIX} Userinfo from {provider.id} has no '{mapping.get('id', 'sub')}' field")
            return None

        profile = Profile(
            id=provider_account_id,
            email=raw_info.get(mapping.get("email", "email")),
            name=raw_info.get(mapping.get("name", "name")),
            image=raw_info.get(mapping.get("avatar", "picture")),
        )

        expires_at = None
        expires_in = tokens.get("expires_in")
        if expires_in:
            expires_at = int(datetime.now(timezone.utc).timestamp()) + int(expires_in)

        account = Account(
            id=provider_account_id,
            provider_id=provider.id,
            kind=ProviderKind.OAUTH,
            provider_account_id=provider_account_id,
            access_token=tokens.get("access_token"),
            refresh_token=tokens.get("refresh_token"),
            expires_at=expires_at,
        )
        return AuthProof(profile=profile, account=account, raw=raw_info)

    async def _exchange_code_for_tokens(
        self,
        provider: ProviderConfig,
        code: str,
        redirect_uri: str,
    ) -> Dict[str, Any]:
        """Exchange the authorization code for tokens."""
        if not provider.token_url:
            raise ValueError(f"No token URL configured for {provider.id}")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        headers: Dict[str, str] = {"Accept": "application/json"}

        if provider.token_endpoint_auth_method == "client_secret_post":
            data["client_id"] = provider.client_id
            data["client_secret"] = provider.client_secret
        else:
            # client_secret_basic
            credentials = base64.b64encode(f"{provider.client_id}:{provider.client_secret}".encode()).decode()
            headers["Authorization"] = f"Basic {credentials}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(provider.token_url, data=data, headers=headers)

        if response.status_code != 200:
            logger.error(f"{LOG_PREFIX} Token exchange failed: {response.status_code} - {response.text}")
            raise ValueError(f"Token exchange failed: {response.status_code}")

        # GitHub may answer application/x-www-form-urlencoded
        if "application/json" in response.headers.get("content-type", ""):
            tokens = cast(Dict[str, Any], response.json())
        else:
            tokens = {k: v[0] for k, v in parse_qs(response.text).items()}

        logger.info(f"{LOG_PREFIX} Token exchange successful for {provider.id}")
        return tokens

    async def _fetch_userinfo(self, provider: ProviderConfig, access_token: str) -> Dict[str, Any]:
        if not provider.userinfo_url:
            raise ValueError(f"No userinfo URL configured for {provider.id}")

        headers = {
            "Authorization": f"Bearer {access_token}",
            **provider.userinfo_headers,
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(provider.userinfo_url, headers=headers)

        if response.status_code != 200:
            logger.error(f"{LOG_PREFIX} Userinfo fetch failed: {response.status_code} - {response.text}")
            raise ValueError(f"Failed to fetch userinfo: {response.status_code}")

        userinfo = cast(Dict[str, Any], response.json())

        # GitHub: /user may omit the email
        if provider.id == "github" and not userinfo.get("email"):
            userinfo["email"] = await self._fetch_github_email(access_token)

        logger.info(f"{LOG_PREFIX} Userinfo fetched for {provider.id}")
        return userinfo

    async def _fetch_github_email(self, access_token: str) -> Optional[str]:
        """Primary verified GitHub email."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    "https://api.github.com/user/emails",
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/vnd.github+json",
                    },
                )
            response.raise_for_status()
            emails = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"{LOG_PREFIX} Failed to fetch GitHub email: {e}")
            return None

        for email in emails:
            if email.get("primary") and email.get("verified"):
                return cast(Optional[str], email.get("email"))
        for email in emails:
            if email.get("verified"):
                return cast(Optional[str], email.get("email"))
        return None


class OAuth2Verifier(BaseVerifier):
    """OAuth authorization-code verifier."""

    kind = ProviderKind.OAUTH

    def _state_binder(self, options: "AuthOptions") -> NonceBinder:
        return NonceBinder(options.settings.secret_key, options.settings.state_cookie_name)

    async def signin_url(self, provider: ProviderConfig, options: "AuthOptions", jar: CookieJar) -> str:
        state = None
        if provider.check_state:
            state = self._state_binder(options).bind(jar, options.settings.nonce_max_age)
        return options.oauth_transport.authorization_url(provider, options.callback_endpoint(provider.id), state)

    async def verify(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        options: "AuthOptions",
        jar: CookieJar,
    ) -> AuthProof:
        if provider.check_state:
            if not self._state_binder(options).consume_and_verify(request.query.get("state"), jar):
                raise CallbackError(ErrorCode.NONCE_MISMATCH, "OAuth state does not match its binding")

        try:
            proof = await with_timeout(
                options.oauth_transport.get_user_info(request, provider, options.callback_endpoint(provider.id)),
                options.settings.collaborator_timeout,
            )
        except CallbackError:
            raise
        except asyncio.TimeoutError as e:
            raise CallbackError(ErrorCode.PROVIDER_ERROR, f"{provider.id} did not answer in time") from e
        except Exception as e:
            logger.error(f"{LOG_PREFIX} Transport error for {provider.id}: {e}")
            raise CallbackError(ErrorCode.PROVIDER_ERROR, str(e)) from e

        if proof is None:
            raise CallbackError(ErrorCode.NO_PROFILE, f"{provider.id} returned no profile")

        logger.debug(f"{LOG_PREFIX} Callback profile for {provider.id}: {proof.profile.id}")
        return proof
