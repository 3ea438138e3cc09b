"""
Shared fixtures: settings, providers and options wired to an in-memory adapter.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

import pytest

from authflow.core.cookies import CookieJar
from authflow.core.events import EventDispatcher
from authflow.core.oauth.config import ProviderConfig, ProviderKind
from authflow.core.oauth.nonce import NonceBinder
from authflow.core.oauth.protocols.base import Account, AuthProof, Profile
from authflow.core.oauth.protocols.oauth2 import OAuthTransport
from authflow.core.oauth.signed_payload import SignedPayloadCodec
from authflow.core.options import AuthOptions, Callbacks
from authflow.core.settings import Settings
from authflow.repositories.memory import InMemoryAdapter
from authflow.schemas.callback import CallbackRequest

SITE = "https://app"
BASE_URL = "https://auth.example/api/v1/auth"
SSO_SECRET = "s3cret"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "secret_key": "test-secret",
        "site": SITE,
        "base_url": BASE_URL,
        "log_dir": None,
        "collaborator_timeout": 2.0,
    }
    values.update(overrides)
    return Settings(**values)


class FakeOAuthTransport(OAuthTransport):
    """Transport returning a canned proof (or raising) instead of calling a provider."""

    def __init__(self, proof: Optional[AuthProof] = None, error: Optional[Exception] = None):
        self.proof = proof
        self.error = error
        self.calls = 0

    def authorization_url(self, provider: ProviderConfig, redirect_uri: str, state: Optional[str]) -> str:
        return f"https://provider.example/authorize?redirect_uri={quote(redirect_uri, safe='')}&state={state}"

    async def get_user_info(self, request, provider, redirect_uri):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.proof


def oauth_proof(provider_id: str = "github", account_id: str = "gh-1", email: str = "octo@example.com") -> AuthProof:
    profile = Profile(id=account_id, email=email, name="Octo", image="https://img/octo.png")
    account = Account(
        id=account_id,
        provider_id=provider_id,
        kind=ProviderKind.OAUTH,
        provider_account_id=account_id,
        access_token="gho_token",
    )
    return AuthProof(profile=profile, account=account, raw={"id": account_id, "login": "octo"})


def sso_callback_query(fields: Dict[str, str], secret: str = SSO_SECRET) -> Dict[str, str]:
    payload_b64, sig = SignedPayloadCodec(secret).sign(fields)
    return {"sso": payload_b64, "sig": sig}


def nonce_binding(nonce: str, settings: Settings, secret: str = SSO_SECRET) -> Dict[str, str]:
    return {settings.nonce_cookie_name: NonceBinder(secret, settings.nonce_cookie_name).binding_for(nonce)}


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def sso_provider() -> ProviderConfig:
    return ProviderConfig(
        id="discourse",
        kind=ProviderKind.SSO,
        display_name="Discourse",
        secret=SSO_SECRET,
        url="https://forum.example",
    )


@pytest.fixture
def oauth_provider() -> ProviderConfig:
    return ProviderConfig(
        id="github",
        kind=ProviderKind.OAUTH,
        display_name="GitHub",
        client_id="cid",
        client_secret="csecret",
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        userinfo_url="https://api.github.com/user",
    )


@pytest.fixture
def email_provider() -> ProviderConfig:
    return ProviderConfig(id="email", kind=ProviderKind.EMAIL, display_name="Email")


@pytest.fixture
def credentials_provider() -> ProviderConfig:
    async def authorize(credentials: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if credentials.get("username") == "ann" and credentials.get("password") == "pw":
            return {"id": "u-ann", "email": "ann@example.com", "name": "Ann"}
        return None

    return ProviderConfig(id="password", kind=ProviderKind.CREDENTIALS, authorize=authorize)


@pytest.fixture
def adapter() -> InMemoryAdapter:
    return InMemoryAdapter()


@pytest.fixture
def transport() -> FakeOAuthTransport:
    return FakeOAuthTransport(proof=oauth_proof())


@pytest.fixture
def options(settings, adapter, transport, sso_provider, oauth_provider, email_provider, credentials_provider) -> AuthOptions:
    providers = {p.id: p for p in (sso_provider, oauth_provider, email_provider, credentials_provider)}
    return AuthOptions(
        settings=settings,
        providers=providers,
        adapter=adapter,
        callbacks=Callbacks(),
        events=EventDispatcher(timeout=1.0),
        oauth_transport=transport,
    )


@pytest.fixture
def jar(settings) -> CookieJar:
    return CookieJar({}, settings)


def callback_request(provider_id: str, **kwargs: Any) -> CallbackRequest:
    return CallbackRequest(provider_id=provider_id, **kwargs)
