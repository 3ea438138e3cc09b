"""
Process-wide auth options.

Built once at startup and handed to the callback orchestrator by reference. Nothing in
here changes per request.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union
from urllib.parse import urlencode, urlparse

from authflow.common.exceptions import ErrorCode, public_error_code
from authflow.core.events import EventDispatcher
from authflow.core.oauth.config import ProviderConfig, ProviderConfigLoader
from authflow.core.oauth.protocols.base import Account, Profile
from authflow.core.oauth.protocols.oauth2 import HttpxOAuthTransport, OAuthTransport
from authflow.core.settings import Settings
from authflow.repositories.base import AuthAdapter

SigninHook = Callable[[Profile, Account, Optional[Dict[str, Any]]], Union[bool, Awaitable[bool]]]
JwtHook = Callable[[Dict[str, Any], Optional[Dict[str, Any]]], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]


async def allow_signin(profile: Profile, account: Account, raw: Optional[Dict[str, Any]]) -> bool:
    return True


async def passthrough_jwt(payload: Dict[str, Any], raw: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return payload


@dataclass(frozen=True)
class Callbacks:
    """
    User hooks.

    - signin(profile, account, raw) -> bool: returning False denies the sign in
    - jwt(payload, raw) -> payload: transforms the session token payload before signing
    """

    signin: SigninHook = allow_signin
    jwt: JwtHook = passthrough_jwt


@dataclass(frozen=True)
class AuthOptions:
    """Everything the callback pipeline needs, fixed at configuration time."""

    settings: Settings
    providers: Mapping[str, ProviderConfig]
    adapter: Optional[AuthAdapter] = None
    callbacks: Callbacks = field(default_factory=Callbacks)
    events: EventDispatcher = field(default_factory=EventDispatcher)
    oauth_transport: OAuthTransport = field(default_factory=HttpxOAuthTransport)

    @classmethod
    def from_loader(cls, settings: Settings, loader: ProviderConfigLoader, **kwargs: Any) -> "AuthOptions":
        return cls(settings=settings, providers=loader.get_all_providers(), **kwargs)

    def get_provider(self, provider_id: str) -> Optional[ProviderConfig]:
        return self.providers.get(provider_id)

    def callback_endpoint(self, provider_id: str) -> str:
        return f"{self.settings.base_url}/callback/{provider_id}"

    def error_redirect(self, code: ErrorCode, provider: Optional[ProviderConfig] = None) -> str:
        """Sanitized redirect target for a failure."""
        if code is ErrorCode.NO_PROFILE:
            return self.settings.signin_page

        params = {"error": public_error_code(code, provider.kind.value if provider else None)}
        if code is ErrorCode.INVALID_CREDENTIALS and provider is not None:
            params["provider"] = provider.id
        return f"{self.settings.error_page}?{urlencode(params)}"

    def verify_callback_url(self, url: Optional[str]) -> Optional[str]:
        """
        Accept only callback URLs on the site or auth origin.

        Relative paths are resolved against the site. Anything else is dropped.
        """
        if not url:
            return None
        if url.startswith("/") and not url.startswith("//"):
            return f"{self.settings.site}{url}"

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return None
        for allowed in (self.settings.site, self.settings.base_url):
            allowed_url = urlparse(allowed)
            if (parsed.scheme, parsed.netloc) == (allowed_url.scheme, allowed_url.netloc):
                return url
        return None
